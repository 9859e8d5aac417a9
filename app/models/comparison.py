"""
비교 레코드 모델
"""
from sqlalchemy import Column, String, Text, JSON, DateTime, Integer, Numeric

from app.database import Base


class ComparisonModel(Base):
    """벤더 견적 비교 레코드"""
    __tablename__ = "comparisons"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)

    # 상태: submitted, processing, completed, failed
    status = Column(String, nullable=False, default="submitted", index=True)
    version = Column(Integer, nullable=False, default=0)  # 전이마다 증가 (compare-and-set)
    processing_started_at = Column(DateTime)
    failure_reason = Column(Text)

    # 생성 시 한 번만 기록
    source_files_json = Column(JSON, nullable=False)

    # 정규화 + 집계 결과
    items_json = Column(JSON, nullable=False, default=list)
    vendors_json = Column(JSON, nullable=False, default=list)
    total_value = Column(Numeric(14, 2), nullable=False, default=0)

    memo = Column(Text)

    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime, nullable=False)

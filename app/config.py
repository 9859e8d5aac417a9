"""
QuoteCompare 애플리케이션 설정
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # 데이터베이스
    DATABASE_URL: str = "sqlite:///./data/quotecompare.db"
    SQLITE_BUSY_TIMEOUT_SECONDS: float = 30.0

    # 환경
    ENVIRONMENT: str = "development"
    DEBUG: bool = False

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # 파일 저장
    DATA_DIR: str = "./data"
    UPLOAD_DIR: str = "./data/uploads"

    # 추출 / 메모 LLM 게이트웨이
    LLM_API_URL: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    LLM_API_KEY: str = ""
    LLM_MODEL: str = "google/gemini-2.5-flash"
    LLM_TIMEOUT_SECONDS: float = 120.0

    # 처리 한도
    MAX_DOCUMENT_CHARS: int = 50_000
    MAX_SOURCE_FILES: int = 3
    STALE_PROCESSING_SECONDS: int = 900

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()

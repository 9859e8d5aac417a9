"""
데이터베이스 연결 설정

상태 전이는 조건부 UPDATE 한 번으로 결정되므로, 여러 워커가 같은 SQLite 파일을
동시에 갱신할 때 잠금 오류 대신 busy timeout 만큼 기다리도록 설정한다.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from app.config import settings


def _connect_args(url: str) -> dict:
    if not url.startswith("sqlite"):
        return {}
    # SQLite 사용 시 check_same_thread=False 필요 (백그라운드 작업은 스레드풀에서 실행)
    return {"check_same_thread": False, "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS}


engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args(settings.DATABASE_URL),
    echo=settings.DEBUG,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

"""
Database engine, session factory and declarative base.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from meetfood.core.config import settings


def _connect_args() -> dict:
    # Bound every statement so a stuck query fails the step instead of hanging it
    if settings.database_url.startswith("postgresql"):
        return {"options": f"-c statement_timeout={settings.db_statement_timeout_ms}"}
    return {}


engine = create_engine(
    settings.database_url,
    echo=settings.db_echo_sql,
    pool_pre_ping=True,
    connect_args=_connect_args(),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency yielding a request-scoped session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

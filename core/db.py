from pydantic_settings import BaseSettings
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker


class DatabaseSettings(BaseSettings):
    """Database configuration from environment"""
    database_url: str = "sqlite:///./seller_analytics.db"

    class Config:
        env_file = ".env"
        extra = "ignore"


# Initialize settings
db_settings = DatabaseSettings()

# Repositories run inside worker threads (asyncio.to_thread)
_connect_args = {"check_same_thread": False} if db_settings.database_url.startswith("sqlite") else {}

engine = create_engine(
    db_settings.database_url,
    connect_args=_connect_args,
    pool_pre_ping=True,
    pool_recycle=300
)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def ping_database(session_factory=SessionLocal) -> bool:
    """Return True when the database answers a trivial query"""
    with session_factory() as session:
        session.execute(text("SELECT 1"))
    return True

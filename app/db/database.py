from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import get_settings

DATABASE_URL = get_settings().database_url


def build_engine(url: str) -> Engine:
    """Create an engine; pool tuning only applies to server databases."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise each thread sees its own empty database
        return create_engine(url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})

    # Connection pool optimization (defaults: pool_size=5, max_overflow=10, recycle=-1, pre_ping=False)
    return create_engine(
        url,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,      # Recycle connections after 1 hour
        pool_pre_ping=True      # Test connection health before use
    )


engine = build_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative models
Base = declarative_base()

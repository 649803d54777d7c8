"""
Database engine and session factory.
Both are built explicitly at process start and passed to the components that
need them.
"""
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """Create an engine with pre-ping so stale pooled connections are replaced."""
    return create_engine(database_url, echo=echo, pool_pre_ping=True, future=True)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

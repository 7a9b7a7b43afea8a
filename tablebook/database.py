from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from .config import settings


def make_engine(url: str, **kwargs):
    """Create an engine configured for the given database type"""
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        return create_engine(url, connect_args=connect_args, **kwargs)
    kwargs.setdefault("isolation_level", settings.db_isolation_level)
    return create_engine(url, **kwargs)


engine = make_engine(settings.database_url)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Initialize database with tables"""
    from .models import Base
    Base.metadata.create_all(bind=bind or engine)

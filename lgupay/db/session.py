from pathlib import Path
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session, declarative_base

from lgupay.core.config import settings

Base = declarative_base()

def make_session_factory(db_url: str):
    """Engine + session factory for ``db_url``; tables are created on first use."""
    # SQLite needs this to share a file db across threads in simple dev setups
    connect_args = {"check_same_thread": False} if db_url.startswith("sqlite") else {}
    eng = create_engine(db_url, echo=False, future=True, connect_args=connect_args)
    import lgupay.db.models as _models  # noqa: F401
    Base.metadata.create_all(bind=eng)
    return sessionmaker(bind=eng, autoflush=False, autocommit=False, expire_on_commit=False)

_connect_args = {"check_same_thread": False} if settings.DB_URL.startswith("sqlite") else {}
engine = create_engine(settings.DB_URL, echo=False, future=True, connect_args=_connect_args)
SessionLocal = scoped_session(sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False))

def init_db():
    if settings.DB_URL.startswith("sqlite:///"):
        Path(settings.DB_URL[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)
    # Import models here so they are registered on Base
    import lgupay.db.models as _models  # noqa: F401
    Base.metadata.create_all(bind=engine)

"""
Database engine and session helpers.

All tables are declared in models.py against ``Base``. Route handlers get a
session through the ``get_db`` dependency; the app calls ``init_db`` once at
startup.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from config import DATABASE_URL


class Base(DeclarativeBase):
    pass


def make_engine(url: str = DATABASE_URL, **kwargs):
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create missing tables and make sure the settings row exists."""
    from models import StoreSettings

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    session = sessionmaker(bind=bind)()
    try:
        if session.get(StoreSettings, 1) is None:
            session.add(StoreSettings(id=1))
            session.commit()
    finally:
        session.close()

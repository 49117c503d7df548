"""Engine, session factory and the store-error boundary shared by every caller."""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from . import config
from .errors import StoreError

logger = logging.getLogger(__name__)


def make_engine(url: str = config.DATABASE_URL):
    # sqlite connections are handed across FastAPI's worker threads
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = make_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def store_call(db: Session, action: str) -> Iterator[None]:
    """Roll back, log and re-raise any SQLAlchemy failure as ``StoreError``."""
    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("store error while %s", action)
        raise StoreError(f"could not {action}") from exc

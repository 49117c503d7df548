from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from monthly_ledger.db import Base
from monthly_ledger.models import User


def memory_sessionmaker():
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def add_user(db, username="ana"):
    u = User(username=username, password_hash="x")
    db.add(u)
    db.commit()
    db.refresh(u)
    return u

# monthly_ledger/config.py
import os
from typing import Optional


def _normalize_database_url(url: str) -> str:
    # hosted Postgres usually hands out postgres://, SQLAlchemy wants a driver
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://") and "+psycopg" not in url and "+psycopg2" not in url:
        url = url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def _optional(name: str) -> Optional[str]:
    v = os.getenv(name, "").strip()
    return v or None


DATABASE_URL = _normalize_database_url(os.getenv("DATABASE_URL", "sqlite:///./local.db"))

# client key travels with every browser call; service key only with the rollover trigger
CLIENT_KEY = _optional("LEDGER_CLIENT_KEY")
SERVICE_KEY = _optional("LEDGER_SERVICE_KEY")

SESSION_COOKIE = "ledger_session"
SESSION_TTL_DAYS = int(os.getenv("SESSION_TTL_DAYS", "30"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))

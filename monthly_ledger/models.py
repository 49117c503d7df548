# monthly_ledger/models.py
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    func,
)
from sqlalchemy.orm import relationship

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    # sqlite hands timezone-aware columns back naive; they were written as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    sessions = relationship("UserSession", back_populates="user", cascade="all, delete-orphan")
    settings = relationship("UserSettings", back_populates="user", uselist=False, cascade="all, delete-orphan")


class UserSession(Base):
    __tablename__ = "user_sessions"

    token = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False)

    user = relationship("User", back_populates="sessions")


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(50), nullable=False)
    # lowercase name, kept for lookups by label
    value = Column(String(50), nullable=False)
    # True: classifies fixed expenses (rent, utilities); False: variable ones
    is_fixed = Column(Boolean, nullable=False, default=False, index=True)
    color = Column(String(20), nullable=False, default="#64748b")

    expenses = relationship("Expense", back_populates="category")


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(Integer, ForeignKey("expense_categories.id"), nullable=False, index=True)

    description = Column(String(200), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    is_fixed = Column(Boolean, nullable=False, default=False, index=True)

    # NULL while the expense belongs to the open ledger; "YYYY-MM" once rolled over
    archived_period = Column(String(7), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    category = relationship("ExpenseCategory", back_populates="expenses")


class CreditCard(Base):
    __tablename__ = "credit_cards"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(50), nullable=False)
    color = Column(String(20), nullable=False, default="#64748b")
    last_numbers = Column(String(4), nullable=True)
    credit_limit = Column(Numeric(12, 2), nullable=True)
    closing_day = Column(Integer, nullable=True)
    due_day = Column(Integer, nullable=True)

    payments = relationship("CreditCardPayment", back_populates="card")


class CreditCardPayment(Base):
    __tablename__ = "credit_card_payments"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    card_id = Column(Integer, ForeignKey("credit_cards.id"), nullable=False, index=True)

    description = Column(String(200), nullable=False)
    # per-installment amount
    amount = Column(Numeric(12, 2), nullable=False)
    current_installment = Column(Integer, nullable=False, default=1)
    total_installments = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    card = relationship("CreditCard", back_populates="payments")

    @property
    def is_terminal(self) -> bool:
        return self.current_installment >= self.total_installments

    @property
    def remaining_installments(self) -> int:
        return self.total_installments - self.current_installment


class UserSettings(Base):
    __tablename__ = "user_settings"

    id = Column(Integer, primary_key=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)

    monthly_income = Column(Numeric(12, 2), nullable=False, default=0)
    name = Column(String(100), nullable=True)
    currency = Column(String(10), nullable=True)
    language = Column(String(10), nullable=True)
    theme = Column(String(10), nullable=True)

    user = relationship("User", back_populates="settings")


class RolloverRun(Base):
    """One row per month the rollover has touched; guards against double runs."""

    __tablename__ = "rollover_runs"

    id = Column(Integer, primary_key=True)
    period = Column(String(7), nullable=False, unique=True)

    installments_advanced_at = Column(DateTime(timezone=True), nullable=True)
    installments_advanced = Column(Integer, nullable=False, default=0)
    expenses_reset_at = Column(DateTime(timezone=True), nullable=True)
    expenses_archived = Column(Integer, nullable=False, default=0)

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session, joinedload

from . import validation
from .db import store_call
from .errors import ConflictError, NotFoundError
from .models import (
    CreditCard,
    CreditCardPayment,
    Expense,
    ExpenseCategory,
    UserSettings,
)
from .validation import Number


def _owned(db: Session, model, obj_id: int, owner_id: int, label: str):
    obj = db.execute(
        select(model).where(model.id == obj_id, model.owner_id == owner_id)
    ).scalar_one_or_none()
    if obj is None:
        # someone else's row looks exactly like a missing one
        raise NotFoundError(f"{label} {obj_id} not found")
    return obj


# ---------- Expense categories ----------

def list_categories(db: Session, owner_id: int, is_fixed: Optional[bool] = None) -> List[ExpenseCategory]:
    q = select(ExpenseCategory).where(ExpenseCategory.owner_id == owner_id)
    if is_fixed is not None:
        q = q.where(ExpenseCategory.is_fixed == is_fixed)
    with store_call(db, "list categories"):
        return list(db.execute(q.order_by(ExpenseCategory.name)).scalars().all())


def create_category(
    db: Session,
    owner_id: int,
    name: str,
    is_fixed: bool = False,
    color: Optional[str] = None,
) -> ExpenseCategory:
    name = validation.required_text(name, "name", 50)
    color = validation.optional_text(color, 20) or "#64748b"

    obj = ExpenseCategory(
        owner_id=owner_id,
        name=name,
        value=name.lower(),
        is_fixed=bool(is_fixed),
        color=color,
    )
    with store_call(db, "create category"):
        db.add(obj)
        db.commit()
        db.refresh(obj)
    return obj


def update_category(
    db: Session,
    owner_id: int,
    category_id: int,
    name: Optional[str] = None,
    is_fixed: Optional[bool] = None,
    color: Optional[str] = None,
) -> ExpenseCategory:
    if name is not None:
        name = validation.required_text(name, "name", 50)
    color = validation.optional_text(color, 20)

    with store_call(db, "update category"):
        obj = _owned(db, ExpenseCategory, category_id, owner_id, "category")
        if name is not None:
            obj.name = name
            obj.value = name.lower()
        if color:
            obj.color = color
        if is_fixed is not None and bool(is_fixed) != obj.is_fixed:
            obj.is_fixed = bool(is_fixed)
            # keep the expense classification in step with its category
            for e in obj.expenses:
                e.is_fixed = obj.is_fixed
        db.commit()
        db.refresh(obj)
    return obj


def delete_category(db: Session, owner_id: int, category_id: int) -> None:
    with store_call(db, "delete category"):
        obj = _owned(db, ExpenseCategory, category_id, owner_id, "category")
        in_use = db.execute(
            select(func.count(Expense.id)).where(Expense.category_id == obj.id)
        ).scalar_one()
        if in_use:
            raise ConflictError(f"category {category_id} is used by {in_use} expense(s)")
        db.delete(obj)
        db.commit()


# ---------- Expenses ----------

def list_expenses(db: Session, owner_id: int, is_fixed: Optional[bool] = None) -> List[Expense]:
    """Expenses of the open ledger, newest first. Archived periods are skipped."""
    q = (
        select(Expense)
        .options(joinedload(Expense.category))
        .where(Expense.owner_id == owner_id, Expense.archived_period.is_(None))
    )
    if is_fixed is not None:
        q = q.where(Expense.is_fixed == is_fixed)
    q = q.order_by(desc(Expense.created_at), desc(Expense.id))
    with store_call(db, "list expenses"):
        return list(db.execute(q).scalars().all())


def create_expense(
    db: Session,
    owner_id: int,
    description: str,
    amount: Number,
    category_id: int,
) -> Expense:
    description = validation.required_text(description, "description", 200)
    amount = validation.positive_amount(amount)

    with store_call(db, "create expense"):
        category = _owned(db, ExpenseCategory, category_id, owner_id, "category")
        obj = Expense(
            owner_id=owner_id,
            category_id=category.id,
            description=description,
            amount=amount,
            is_fixed=category.is_fixed,
        )
        db.add(obj)
        db.commit()
        db.refresh(obj)
    return obj


def update_expense(
    db: Session,
    owner_id: int,
    expense_id: int,
    description: Optional[str] = None,
    amount: Optional[Number] = None,
    category_id: Optional[int] = None,
) -> Expense:
    if description is not None:
        description = validation.required_text(description, "description", 200)
    if amount is not None:
        amount = validation.positive_amount(amount)

    with store_call(db, "update expense"):
        obj = _owned(db, Expense, expense_id, owner_id, "expense")
        if category_id is not None and category_id != obj.category_id:
            category = _owned(db, ExpenseCategory, category_id, owner_id, "category")
            obj.category_id = category.id
            obj.is_fixed = category.is_fixed
        if description is not None:
            obj.description = description
        if amount is not None:
            obj.amount = amount
        db.commit()
        db.refresh(obj)
    return obj


def delete_expense(db: Session, owner_id: int, expense_id: int) -> None:
    with store_call(db, "delete expense"):
        obj = _owned(db, Expense, expense_id, owner_id, "expense")
        db.delete(obj)
        db.commit()


# ---------- Credit cards ----------

def list_credit_cards(db: Session, owner_id: int) -> List[CreditCard]:
    q = select(CreditCard).where(CreditCard.owner_id == owner_id).order_by(CreditCard.name)
    with store_call(db, "list credit cards"):
        return list(db.execute(q).scalars().all())


def create_credit_card(
    db: Session,
    owner_id: int,
    name: str,
    color: Optional[str] = None,
    last_numbers: Optional[str] = None,
    credit_limit: Optional[Number] = None,
    closing_day: Optional[int] = None,
    due_day: Optional[int] = None,
) -> CreditCard:
    obj = CreditCard(
        owner_id=owner_id,
        name=validation.required_text(name, "name", 50),
        color=validation.optional_text(color, 20) or "#64748b",
        last_numbers=validation.last_numbers(last_numbers),
        credit_limit=None if credit_limit in (None, "") else validation.non_negative_amount(credit_limit, "credit_limit"),
        closing_day=validation.day_of_month(closing_day, "closing_day"),
        due_day=validation.day_of_month(due_day, "due_day"),
    )
    with store_call(db, "create credit card"):
        db.add(obj)
        db.commit()
        db.refresh(obj)
    return obj


def update_credit_card(
    db: Session,
    owner_id: int,
    card_id: int,
    name: Optional[str] = None,
    color: Optional[str] = None,
    last_numbers: Optional[str] = None,
    credit_limit: Optional[Number] = None,
    closing_day: Optional[int] = None,
    due_day: Optional[int] = None,
) -> CreditCard:
    changes = {}
    if name is not None:
        changes["name"] = validation.required_text(name, "name", 50)
    if color:
        changes["color"] = validation.optional_text(color, 20)
    if last_numbers is not None:
        changes["last_numbers"] = validation.last_numbers(last_numbers)
    if credit_limit not in (None, ""):
        changes["credit_limit"] = validation.non_negative_amount(credit_limit, "credit_limit")
    if closing_day is not None:
        changes["closing_day"] = validation.day_of_month(closing_day, "closing_day")
    if due_day is not None:
        changes["due_day"] = validation.day_of_month(due_day, "due_day")

    with store_call(db, "update credit card"):
        obj = _owned(db, CreditCard, card_id, owner_id, "credit card")
        for k, v in changes.items():
            setattr(obj, k, v)
        db.commit()
        db.refresh(obj)
    return obj


def delete_credit_card(db: Session, owner_id: int, card_id: int) -> None:
    with store_call(db, "delete credit card"):
        obj = _owned(db, CreditCard, card_id, owner_id, "credit card")
        in_use = db.execute(
            select(func.count(CreditCardPayment.id)).where(CreditCardPayment.card_id == obj.id)
        ).scalar_one()
        if in_use:
            raise ConflictError(f"credit card {card_id} has {in_use} payment(s)")
        db.delete(obj)
        db.commit()


# ---------- Credit card payments ----------

def list_payments(db: Session, owner_id: int) -> List[CreditCardPayment]:
    q = (
        select(CreditCardPayment)
        .options(joinedload(CreditCardPayment.card))
        .where(CreditCardPayment.owner_id == owner_id)
        .order_by(desc(CreditCardPayment.created_at), desc(CreditCardPayment.id))
    )
    with store_call(db, "list credit card payments"):
        return list(db.execute(q).scalars().all())


def create_payment(
    db: Session,
    owner_id: int,
    description: str,
    amount: Number,
    card_id: int,
    total_installments: int,
    current_installment: int = 1,
) -> CreditCardPayment:
    description = validation.required_text(description, "description", 200)
    amount = validation.positive_amount(amount)
    current, total = validation.installments(current_installment, total_installments)

    with store_call(db, "create credit card payment"):
        card = _owned(db, CreditCard, card_id, owner_id, "credit card")
        obj = CreditCardPayment(
            owner_id=owner_id,
            card_id=card.id,
            description=description,
            amount=amount,
            current_installment=current,
            total_installments=total,
        )
        db.add(obj)
        db.commit()
        db.refresh(obj)
    return obj


def update_payment(
    db: Session,
    owner_id: int,
    payment_id: int,
    description: Optional[str] = None,
    amount: Optional[Number] = None,
    card_id: Optional[int] = None,
    current_installment: Optional[int] = None,
    total_installments: Optional[int] = None,
) -> CreditCardPayment:
    if description is not None:
        description = validation.required_text(description, "description", 200)
    if amount is not None:
        amount = validation.positive_amount(amount)

    with store_call(db, "update credit card payment"):
        obj = _owned(db, CreditCardPayment, payment_id, owner_id, "credit card payment")
        # partial updates are checked against the stored counterpart
        current, total = validation.installments(
            obj.current_installment if current_installment is None else current_installment,
            obj.total_installments if total_installments is None else total_installments,
        )
        if card_id is not None and card_id != obj.card_id:
            obj.card_id = _owned(db, CreditCard, card_id, owner_id, "credit card").id
        if description is not None:
            obj.description = description
        if amount is not None:
            obj.amount = amount
        obj.current_installment = current
        obj.total_installments = total
        db.commit()
        db.refresh(obj)
    return obj


def delete_payment(db: Session, owner_id: int, payment_id: int) -> None:
    with store_call(db, "delete credit card payment"):
        obj = _owned(db, CreditCardPayment, payment_id, owner_id, "credit card payment")
        db.delete(obj)
        db.commit()


# ---------- User settings ----------

def get_settings(db: Session, owner_id: int) -> Optional[UserSettings]:
    with store_call(db, "load settings"):
        return db.execute(
            select(UserSettings).where(UserSettings.owner_id == owner_id)
        ).scalar_one_or_none()


def get_income(db: Session, owner_id: int) -> Decimal:
    s = get_settings(db, owner_id)
    if s is None or s.monthly_income is None:
        return Decimal("0")
    return Decimal(s.monthly_income)


def _upsert_settings(db: Session, owner_id: int, **values) -> UserSettings:
    # one row per owner; owner_id is unique so a racing insert fails instead of duplicating
    obj = db.execute(
        select(UserSettings).where(UserSettings.owner_id == owner_id)
    ).scalar_one_or_none()
    if obj is None:
        obj = UserSettings(owner_id=owner_id, monthly_income=Decimal("0"))
        db.add(obj)
    for k, v in values.items():
        setattr(obj, k, v)
    db.commit()
    db.refresh(obj)
    return obj


def update_income(db: Session, owner_id: int, income: Number) -> UserSettings:
    income = validation.non_negative_amount(income, "monthly_income")
    with store_call(db, "update income"):
        return _upsert_settings(db, owner_id, monthly_income=income)


def update_profile(
    db: Session,
    owner_id: int,
    name: Optional[str] = None,
    currency: Optional[str] = None,
    language: Optional[str] = None,
    theme: Optional[str] = None,
) -> UserSettings:
    values = {}
    if name is not None:
        values["name"] = validation.optional_text(name, 100)
    if currency is not None:
        values["currency"] = validation.optional_text(currency, 10)
    if language is not None:
        values["language"] = validation.optional_text(language, 10)
    if theme is not None:
        values["theme"] = validation.theme(theme)
    with store_call(db, "update profile"):
        return _upsert_settings(db, owner_id, **values)

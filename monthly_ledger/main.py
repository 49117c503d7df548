# monthly_ledger/main.py
import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Form, Request
from fastapi.responses import JSONResponse

from sqlalchemy.orm import Session

from . import auth, config, crud
from .db import Base, engine, get_db
from .errors import LedgerError, RolloverError
from .lookup import Lookup
from .rollover import run_monthly_rollover
from .summary import build_summary

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# ---------- App ----------
app = FastAPI(title="Monthly Ledger")


@app.on_event("startup")
def on_startup():
    Base.metadata.create_all(bind=engine)


def get_today() -> date:
    return date.today()


# ---------- Serialisers ----------
def category_out(c):
    return {
        "id": c.id,
        "name": c.name,
        "value": c.value,
        "is_fixed": c.is_fixed,
        "color": c.color,
    }


def expense_out(e):
    return {
        "id": e.id,
        "description": e.description,
        "amount": float(e.amount),
        "category_id": e.category_id,
        "category": category_out(e.category) if e.category else None,
        "is_fixed": e.is_fixed,
        "date": e.created_at.isoformat() if e.created_at else None,
    }


def card_out(c):
    return {
        "id": c.id,
        "name": c.name,
        "color": c.color,
        "last_numbers": c.last_numbers,
        "limit": float(c.credit_limit) if c.credit_limit is not None else None,
        "closing_day": c.closing_day,
        "due_day": c.due_day,
    }


def payment_out(p):
    return {
        "id": p.id,
        "description": p.description,
        "amount": float(p.amount),
        "card_id": p.card_id,
        "card": p.card.name if p.card else None,
        "current_installment": p.current_installment,
        "total_installments": p.total_installments,
        "finished": p.is_terminal,
        "date": p.created_at.isoformat() if p.created_at else None,
    }


def settings_out(s, income):
    return {
        "monthly_income": float(income),
        "name": s.name if s else None,
        "currency": s.currency if s else None,
        "language": s.language if s else None,
        "theme": s.theme if s else None,
    }


# ---------- Health ----------
@app.get("/health")
def health():
    return {"ok": True}


# ---------- Session ----------
@app.post("/register")
def register(
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    user = auth.register_user(db, username, password)
    return JSONResponse(status_code=201, content={"id": user.id, "username": user.username})


@app.post("/login")
def login(
    username: str = Form(...),
    password: str = Form(...),
    db: Session = Depends(get_db),
):
    user = auth.authenticate(db, username, password)
    token = auth.open_session(db, user)
    resp = JSONResponse(content={"ok": True, "user_id": user.id})
    resp.set_cookie(
        config.SESSION_COOKIE,
        token,
        httponly=True,
        samesite="lax",
        max_age=config.SESSION_TTL_DAYS * 86400,
    )
    return resp


@app.post("/logout")
def logout(request: Request, db: Session = Depends(get_db)):
    auth.close_session(db, request.cookies.get(config.SESSION_COOKIE))
    resp = JSONResponse(content={"ok": True})
    resp.delete_cookie(config.SESSION_COOKIE)
    return resp


# ---------- Expenses ----------
@app.get("/api/expenses")
def list_expenses(
    fixed: Optional[bool] = None,
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return [expense_out(e) for e in crud.list_expenses(db, owner_id, is_fixed=fixed)]


@app.get("/api/fixed-expenses")
def list_fixed_expenses(
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return [expense_out(e) for e in crud.list_expenses(db, owner_id, is_fixed=True)]


@app.post("/api/expenses", status_code=201)
def add_expense(
    description: str = Form(...),
    amount: str = Form(...),
    category_id: int = Form(...),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return expense_out(crud.create_expense(db, owner_id, description, amount, category_id))


@app.put("/api/expenses/{expense_id}")
def edit_expense(
    expense_id: int,
    description: Optional[str] = Form(None),
    amount: Optional[str] = Form(None),
    category_id: Optional[int] = Form(None),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return expense_out(crud.update_expense(
        db, owner_id, expense_id,
        description=description, amount=amount, category_id=category_id,
    ))


@app.delete("/api/expenses/{expense_id}")
def remove_expense(
    expense_id: int,
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    crud.delete_expense(db, owner_id, expense_id)
    return {"ok": True}


# ---------- Categories ----------
@app.get("/api/categories")
def list_categories(
    fixed: Optional[bool] = None,
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return [category_out(c) for c in crud.list_categories(db, owner_id, is_fixed=fixed)]


@app.post("/api/categories", status_code=201)
def add_category(
    name: str = Form(...),
    is_fixed: bool = Form(False),
    color: Optional[str] = Form(None),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return category_out(crud.create_category(db, owner_id, name, is_fixed=is_fixed, color=color))


@app.put("/api/categories/{category_id}")
def edit_category(
    category_id: int,
    name: Optional[str] = Form(None),
    is_fixed: Optional[bool] = Form(None),
    color: Optional[str] = Form(None),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return category_out(crud.update_category(
        db, owner_id, category_id, name=name, is_fixed=is_fixed, color=color,
    ))


@app.delete("/api/categories/{category_id}")
def remove_category(
    category_id: int,
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    crud.delete_category(db, owner_id, category_id)
    return {"ok": True}


# ---------- Credit cards ----------
@app.get("/api/credit-cards")
def list_cards(
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return [card_out(c) for c in crud.list_credit_cards(db, owner_id)]


@app.post("/api/credit-cards", status_code=201)
def add_card(
    name: str = Form(...),
    color: Optional[str] = Form(None),
    last_numbers: Optional[str] = Form(None),
    limit: Optional[str] = Form(None),
    closing_day: Optional[int] = Form(None),
    due_day: Optional[int] = Form(None),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return card_out(crud.create_credit_card(
        db, owner_id, name,
        color=color, last_numbers=last_numbers, credit_limit=limit,
        closing_day=closing_day, due_day=due_day,
    ))


@app.put("/api/credit-cards/{card_id}")
def edit_card(
    card_id: int,
    name: Optional[str] = Form(None),
    color: Optional[str] = Form(None),
    last_numbers: Optional[str] = Form(None),
    limit: Optional[str] = Form(None),
    closing_day: Optional[int] = Form(None),
    due_day: Optional[int] = Form(None),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return card_out(crud.update_credit_card(
        db, owner_id, card_id,
        name=name, color=color, last_numbers=last_numbers, credit_limit=limit,
        closing_day=closing_day, due_day=due_day,
    ))


@app.delete("/api/credit-cards/{card_id}")
def remove_card(
    card_id: int,
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    crud.delete_credit_card(db, owner_id, card_id)
    return {"ok": True}


# ---------- Credit card payments ----------
@app.get("/api/credit-card-payments")
def list_payments(
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return [payment_out(p) for p in crud.list_payments(db, owner_id)]


@app.post("/api/credit-card-payments", status_code=201)
def add_payment(
    description: str = Form(...),
    amount: str = Form(...),
    card_id: int = Form(...),
    total_installments: int = Form(...),
    current_installment: int = Form(1),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return payment_out(crud.create_payment(
        db, owner_id, description, amount, card_id,
        total_installments=total_installments,
        current_installment=current_installment,
    ))


@app.put("/api/credit-card-payments/{payment_id}")
def edit_payment(
    payment_id: int,
    description: Optional[str] = Form(None),
    amount: Optional[str] = Form(None),
    card_id: Optional[int] = Form(None),
    current_installment: Optional[int] = Form(None),
    total_installments: Optional[int] = Form(None),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    return payment_out(crud.update_payment(
        db, owner_id, payment_id,
        description=description, amount=amount, card_id=card_id,
        current_installment=current_installment,
        total_installments=total_installments,
    ))


@app.delete("/api/credit-card-payments/{payment_id}")
def remove_payment(
    payment_id: int,
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    crud.delete_payment(db, owner_id, payment_id)
    return {"ok": True}


# ---------- Settings ----------
@app.get("/api/settings")
def get_settings(
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    s = crud.get_settings(db, owner_id)
    return settings_out(s, crud.get_income(db, owner_id))


@app.put("/api/settings/income")
def set_income(
    monthly_income: str = Form(...),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    s = crud.update_income(db, owner_id, monthly_income)
    return settings_out(s, s.monthly_income)


@app.put("/api/settings/profile")
def set_profile(
    name: Optional[str] = Form(None),
    currency: Optional[str] = Form(None),
    language: Optional[str] = Form(None),
    theme: Optional[str] = Form(None),
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    s = crud.update_profile(db, owner_id, name=name, currency=currency, language=language, theme=theme)
    return settings_out(s, s.monthly_income)


# ---------- Summary ----------
@app.get("/api/summary")
def summary(
    owner_id: int = Depends(auth.require_owner),
    db: Session = Depends(get_db),
):
    lookup = Lookup(db, owner_id)
    result = build_summary(
        crud.get_income(db, owner_id),
        crud.list_expenses(db, owner_id, is_fixed=False),
        crud.list_expenses(db, owner_id, is_fixed=True),
        crud.list_payments(db, owner_id),
        lookup,
    )
    return result.to_dict()


# ---------- Monthly rollover ----------
@app.post("/api/process-installments", dependencies=[Depends(auth.require_service_key)])
def process_installments(
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    result = run_monthly_rollover(db, today=today)
    return {
        "success": True,
        "message": "monthly rollover completed",
        **result.to_dict(),
    }


# ---------- Errors ----------
@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    content = {"error": type(exc).__name__, "detail": exc.message}
    if isinstance(exc, RolloverError) and exc.operation:
        content["operation"] = exc.operation
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal Server Error"},
    )

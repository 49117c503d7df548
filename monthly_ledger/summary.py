from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List

from .lookup import Lookup
from .models import CreditCardPayment, Expense

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return (part / whole * HUNDRED).quantize(Decimal("0.1"))


def _grouped(items: Iterable, key) -> List[Dict[str, Any]]:
    totals: Dict[str, Decimal] = {}
    for item in items:
        k = key(item)
        totals[k] = totals.get(k, ZERO) + Decimal(item.amount)
    rows = [{"name": k, "total": v} for k, v in totals.items()]
    rows.sort(key=lambda r: r["total"], reverse=True)
    return rows


@dataclass
class FinancialSummary:
    income: Decimal
    total_variable: Decimal
    total_fixed: Decimal
    total_credit_card: Decimal
    by_category: List[Dict[str, Any]] = field(default_factory=list)
    by_card: List[Dict[str, Any]] = field(default_factory=list)
    by_fixed_category: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def total_spent(self) -> Decimal:
        return self.total_variable + self.total_fixed + self.total_credit_card

    @property
    def remaining(self) -> Decimal:
        return self.income - self.total_spent

    @property
    def spent_percentage(self) -> Decimal:
        return _percent(self.total_spent, self.income)

    def shares(self) -> Dict[str, Decimal]:
        """Each group's share of what was spent, in percent."""
        spent = self.total_spent
        return {
            "variable": _percent(self.total_variable, spent),
            "credit_card": _percent(self.total_credit_card, spent),
            "fixed": _percent(self.total_fixed, spent),
        }

    def to_dict(self) -> Dict[str, Any]:
        def money(rows):
            return [{"name": r["name"], "total": float(r["total"])} for r in rows]

        return {
            "income": float(self.income),
            "total_variable": float(self.total_variable),
            "total_fixed": float(self.total_fixed),
            "total_credit_card": float(self.total_credit_card),
            "total_spent": float(self.total_spent),
            "remaining": float(self.remaining),
            "spent_percentage": float(self.spent_percentage),
            "shares": {k: float(v) for k, v in self.shares().items()},
            "by_category": money(self.by_category),
            "by_card": money(self.by_card),
            "by_fixed_category": money(self.by_fixed_category),
        }


def build_summary(
    income: Decimal,
    expenses: List[Expense],
    fixed_expenses: List[Expense],
    payments: List[CreditCardPayment],
    lookup: Lookup,
) -> FinancialSummary:
    # a payment counts with its per-installment amount, not the purchase total
    return FinancialSummary(
        income=Decimal(income),
        total_variable=sum((Decimal(e.amount) for e in expenses), ZERO),
        total_fixed=sum((Decimal(e.amount) for e in fixed_expenses), ZERO),
        total_credit_card=sum((Decimal(p.amount) for p in payments), ZERO),
        by_category=_grouped(expenses, lambda e: lookup.category_name(e.category_id)),
        by_card=_grouped(payments, lambda p: lookup.card_name(p.card_id)),
        by_fixed_category=_grouped(fixed_expenses, lambda e: lookup.category_name(e.category_id)),
    )

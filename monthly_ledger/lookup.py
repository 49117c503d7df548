from __future__ import annotations

from typing import Dict, Optional

from sqlalchemy.orm import Session

from . import crud
from .models import CreditCard, ExpenseCategory


class Lookup:
    """Categories and cards of one owner, loaded once and resolved by id."""

    def __init__(self, db: Session, owner_id: int):
        self.owner_id = owner_id
        self.categories: Dict[int, ExpenseCategory] = {
            c.id: c for c in crud.list_categories(db, owner_id)
        }
        self.cards: Dict[int, CreditCard] = {
            c.id: c for c in crud.list_credit_cards(db, owner_id)
        }

    def category(self, category_id: int) -> Optional[ExpenseCategory]:
        return self.categories.get(category_id)

    def card(self, card_id: int) -> Optional[CreditCard]:
        return self.cards.get(card_id)

    def category_name(self, category_id: int) -> str:
        c = self.category(category_id)
        return c.name if c else "Uncategorized"

    def card_name(self, card_id: int) -> str:
        c = self.card(card_id)
        return c.name if c else "Unknown card"

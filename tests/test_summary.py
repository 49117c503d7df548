import unittest
from decimal import Decimal

from monthly_ledger import crud
from monthly_ledger.lookup import Lookup
from monthly_ledger.summary import build_summary

from tests.support import add_user, memory_sessionmaker


class SummaryTests(unittest.TestCase):
    def setUp(self):
        self.db = memory_sessionmaker()()
        self.user = add_user(self.db)
        uid = self.user.id
        self.food = crud.create_category(self.db, uid, "Food")
        self.rent = crud.create_category(self.db, uid, "Rent", is_fixed=True)
        self.card = crud.create_credit_card(self.db, uid, "Visa")

    def tearDown(self):
        self.db.close()

    def _summary(self):
        uid = self.user.id
        return build_summary(
            crud.get_income(self.db, uid),
            crud.list_expenses(self.db, uid, is_fixed=False),
            crud.list_expenses(self.db, uid, is_fixed=True),
            crud.list_payments(self.db, uid),
            Lookup(self.db, uid),
        )

    def test_month_totals_against_income(self):
        uid = self.user.id
        crud.update_income(self.db, uid, "100000")
        crud.create_expense(self.db, uid, "Groceries", "20000", self.food.id)
        crud.create_expense(self.db, uid, "Flat", "30000", self.rent.id)
        crud.create_payment(self.db, uid, "Laptop", "5000", self.card.id, total_installments=12)

        s = self._summary()

        self.assertEqual(s.total_spent, Decimal("55000"))
        self.assertEqual(s.remaining, Decimal("45000"))
        self.assertEqual(s.spent_percentage, Decimal("55"))
        self.assertEqual(s.by_category, [{"name": "Food", "total": Decimal("20000")}])
        self.assertEqual(s.by_card, [{"name": "Visa", "total": Decimal("5000")}])
        self.assertEqual(s.by_fixed_category, [{"name": "Rent", "total": Decimal("30000")}])

        d = s.to_dict()
        self.assertEqual(d["spent_percentage"], 55.0)
        self.assertEqual(d["shares"]["fixed"], 54.5)

    def test_zero_income_and_nothing_spent(self):
        s = self._summary()
        self.assertEqual(s.total_spent, Decimal("0"))
        self.assertEqual(s.spent_percentage, Decimal("0"))
        self.assertEqual(s.shares(), {"variable": 0, "credit_card": 0, "fixed": 0})

    def test_overspending_goes_negative(self):
        uid = self.user.id
        crud.update_income(self.db, uid, "100")
        crud.create_expense(self.db, uid, "Groceries", "150", self.food.id)
        s = self._summary()
        self.assertEqual(s.remaining, Decimal("-50"))
        self.assertEqual(s.spent_percentage, Decimal("150"))


if __name__ == "__main__":
    unittest.main()

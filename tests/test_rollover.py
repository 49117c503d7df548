import unittest
from datetime import date, datetime, timezone
from unittest import mock

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from monthly_ledger import crud
from monthly_ledger.errors import AlreadyProcessedError, NotScheduledDayError, RolloverStepError
from monthly_ledger.models import CreditCardPayment, Expense, RolloverRun
from monthly_ledger.rollover import (
    advance_installments,
    previous_period,
    run_monthly_rollover,
)

from tests.support import add_user, memory_sessionmaker


def next_first(d: date) -> date:
    return date(d.year + 1, 1, 1) if d.month == 12 else date(d.year, d.month + 1, 1)


# always ahead of the rows created during the test
FIRST = next_first(datetime.now(timezone.utc).date())


class RolloverTests(unittest.TestCase):
    def setUp(self):
        self.Session = memory_sessionmaker()
        self.db = self.Session()
        self.user = add_user(self.db)
        self.card = crud.create_credit_card(self.db, self.user.id, "Visa")
        self.variable = crud.create_category(self.db, self.user.id, "Food")
        self.fixed = crud.create_category(self.db, self.user.id, "Rent", is_fixed=True)

    def tearDown(self):
        self.db.close()

    def _payment(self, current, total):
        return crud.create_payment(
            self.db, self.user.id, "TV", "5000", self.card.id,
            total_installments=total, current_installment=current,
        ).id

    def _installment(self, payment_id):
        self.db.expire_all()
        return self.db.get(CreditCardPayment, payment_id).current_installment

    def test_active_plan_advances_one_step(self):
        pid = self._payment(2, 5)
        result = run_monthly_rollover(self.db, today=FIRST)
        self.assertEqual(self._installment(pid), 3)
        self.assertEqual(result.installments_advanced, 1)
        self.assertEqual(result.period, FIRST.strftime("%Y-%m"))

    def test_terminal_plan_is_left_alone(self):
        pid = self._payment(3, 3)
        result = run_monthly_rollover(self.db, today=FIRST)
        self.assertEqual(self._installment(pid), 3)
        self.assertEqual(result.installments_advanced, 0)
        self.assertEqual(self.db.execute(select(func.count(CreditCardPayment.id))).scalar_one(), 1)

    def test_single_installment_plan_starts_terminal(self):
        pid = self._payment(1, 1)
        self.assertTrue(self.db.get(CreditCardPayment, pid).is_terminal)
        run_monthly_rollover(self.db, today=FIRST)
        self.assertEqual(self._installment(pid), 1)

    def test_invariant_holds_across_ticks(self):
        for current, total in [(1, 1), (1, 2), (2, 5), (4, 5), (6, 6)]:
            self._payment(current, total)
        for today in (FIRST, next_first(FIRST)):
            run_monthly_rollover(self.db, today=today)
            self.db.expire_all()
            for p in self.db.execute(select(CreditCardPayment)).scalars():
                self.assertTrue(1 <= p.current_installment <= p.total_installments)

    def test_wrong_day_is_refused_without_mutation(self):
        pid = self._payment(2, 5)
        eid = crud.create_expense(self.db, self.user.id, "Lunch", "20", self.variable.id).id
        with self.assertRaises(NotScheduledDayError):
            run_monthly_rollover(self.db, today=FIRST.replace(day=2))
        self.assertEqual(self._installment(pid), 2)
        self.assertIsNone(self.db.get(Expense, eid).archived_period)
        self.assertEqual(self.db.execute(select(func.count(RolloverRun.id))).scalar_one(), 0)

    def test_unguarded_advance_twice_double_advances(self):
        pid = self._payment(2, 5)
        advance_installments(self.db)
        self.db.commit()
        self.assertEqual(self._installment(pid), 3)
        advance_installments(self.db)
        self.db.commit()
        self.assertEqual(self._installment(pid), 4)

    def test_guard_blocks_second_run_in_same_period(self):
        pid = self._payment(2, 5)
        run_monthly_rollover(self.db, today=FIRST)
        with self.assertRaises(AlreadyProcessedError):
            run_monthly_rollover(self.db, today=FIRST)
        self.assertEqual(self._installment(pid), 3)

    def test_variable_expenses_archived_fixed_kept(self):
        var_id = crud.create_expense(self.db, self.user.id, "Lunch", "20", self.variable.id).id
        fixed_id = crud.create_expense(self.db, self.user.id, "Flat", "300", self.fixed.id).id

        result = run_monthly_rollover(self.db, today=FIRST)

        self.assertEqual(result.expenses_archived, 1)
        self.db.expire_all()
        self.assertEqual(self.db.get(Expense, var_id).archived_period, previous_period(FIRST))
        self.assertIsNone(self.db.get(Expense, fixed_id).archived_period)
        self.assertEqual(crud.list_expenses(self.db, self.user.id, is_fixed=False), [])
        self.assertEqual(len(crud.list_expenses(self.db, self.user.id, is_fixed=True)), 1)

    def test_expense_logged_on_rollover_day_stays_open(self):
        early = crud.create_expense(self.db, self.user.id, "Coffee", "3", self.variable.id)
        early.created_at = datetime(FIRST.year, FIRST.month, 1, 8, 30)
        self.db.commit()
        old_id = crud.create_expense(self.db, self.user.id, "Lunch", "20", self.variable.id).id

        result = run_monthly_rollover(self.db, today=FIRST)

        self.assertEqual(result.expenses_archived, 1)
        self.db.expire_all()
        self.assertEqual(self.db.get(Expense, old_id).archived_period, previous_period(FIRST))
        open_rows = crud.list_expenses(self.db, self.user.id, is_fixed=False)
        self.assertEqual([e.description for e in open_rows], ["Coffee"])

    def test_failed_advance_skips_expense_reset(self):
        self._payment(2, 5)
        eid = crud.create_expense(self.db, self.user.id, "Lunch", "20", self.variable.id).id
        with mock.patch(
            "monthly_ledger.rollover.advance_installments",
            side_effect=SQLAlchemyError("boom"),
        ), mock.patch("monthly_ledger.rollover.archive_variable_expenses") as archive:
            with self.assertRaises(RolloverStepError) as ctx:
                run_monthly_rollover(self.db, today=FIRST)
        self.assertEqual(ctx.exception.operation, "installments")
        archive.assert_not_called()
        self.assertIsNone(self.db.get(Expense, eid).archived_period)
        self.assertEqual(self.db.execute(select(func.count(RolloverRun.id))).scalar_one(), 0)

    def test_failed_reset_is_attributed_and_resumable(self):
        pid = self._payment(2, 5)
        eid = crud.create_expense(self.db, self.user.id, "Lunch", "20", self.variable.id).id
        with mock.patch(
            "monthly_ledger.rollover.archive_variable_expenses",
            side_effect=SQLAlchemyError("boom"),
        ):
            with self.assertRaises(RolloverStepError) as ctx:
                run_monthly_rollover(self.db, today=FIRST)
        self.assertEqual(ctx.exception.operation, "expenses")
        # installments stay advanced, ledger not reset
        self.assertEqual(self._installment(pid), 3)
        self.assertIsNone(self.db.get(Expense, eid).archived_period)

        result = run_monthly_rollover(self.db, today=FIRST)
        self.assertTrue(result.resumed)
        self.assertEqual(result.expenses_archived, 1)
        self.assertEqual(self._installment(pid), 3)

    def test_previous_period_wraps_year(self):
        self.assertEqual(previous_period(date(2027, 1, 1)), "2026-12")
        self.assertEqual(previous_period(date(2026, 11, 1)), "2026-10")


if __name__ == "__main__":
    unittest.main()

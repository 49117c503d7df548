"""
Monthly rollover.

Runs on the first day of a month and does two things, in order:

A. advances every installment plan that still has installments left;
B. archives the variable expenses of the month that just ended so the new
   month starts with an empty variable ledger. Only expenses created before
   midnight UTC of the first day are archived; anything logged earlier on
   day 1 already belongs to the new month and stays open.

Each step commits on its own together with its marker in ``rollover_runs``.
If A fails, B does not run. If B fails after A committed, installments are
advanced while the ledger is not reset; the run row records that, and the
next invocation for the same period runs B only.
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import AlreadyProcessedError, NotScheduledDayError, RolloverStepError
from .models import CreditCardPayment, Expense, RolloverRun, utcnow

logger = logging.getLogger(__name__)

ADVANCE = "installments"
RESET = "expenses"


@dataclass
class RolloverResult:
    period: str
    installments_advanced: int
    expenses_archived: int
    resumed: bool = False

    def to_dict(self):
        return asdict(self)


def period_of(d: date) -> str:
    return d.strftime("%Y-%m")


def month_start(d: date) -> datetime:
    return datetime(d.year, d.month, 1, tzinfo=timezone.utc)


def previous_period(d: date) -> str:
    if d.month == 1:
        return f"{d.year - 1}-12"
    return f"{d.year}-{d.month - 1:02d}"


def advance_installments(db: Session) -> int:
    """Move every ACTIVE plan one installment forward. Does not commit.

    Plans already at their last installment are not touched, so
    ``1 <= current_installment <= total_installments`` keeps holding.
    """
    res = db.execute(
        update(CreditCardPayment)
        .where(CreditCardPayment.current_installment < CreditCardPayment.total_installments)
        .values(current_installment=CreditCardPayment.current_installment + 1)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0


def archive_variable_expenses(db: Session, period: str, before: datetime) -> int:
    """Tag open variable expenses created before ``before`` with ``period``. Does not commit."""
    res = db.execute(
        update(Expense)
        .where(
            Expense.is_fixed.is_(False),
            Expense.archived_period.is_(None),
            Expense.created_at < before,
        )
        .values(archived_period=period)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0


def _load_run(db: Session, period: str) -> Optional[RolloverRun]:
    return db.execute(
        select(RolloverRun).where(RolloverRun.period == period)
    ).scalar_one_or_none()


def run_monthly_rollover(db: Session, today: Optional[date] = None) -> RolloverResult:
    today = today or date.today()
    if today.day != 1:
        logger.warning("rollover refused: %s is not the first day of the month", today.isoformat())
        raise NotScheduledDayError("rollover only runs on the first day of the month")

    period = period_of(today)
    try:
        run = _load_run(db, period)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("rollover %s: could not read run marker", period)
        raise RolloverStepError(ADVANCE, "could not read run marker") from exc

    if run is not None and run.expenses_reset_at is not None:
        logger.info("rollover %s already processed", period)
        raise AlreadyProcessedError(f"rollover for {period} already processed")

    resumed = run is not None and run.installments_advanced_at is not None
    logger.info("rollover %s starting%s", period, " (resuming expense reset)" if resumed else "")

    # A: advance installments, committed with the run marker
    if not resumed:
        try:
            if run is None:
                run = RolloverRun(period=period)
                db.add(run)
            run.installments_advanced = advance_installments(db)
            run.installments_advanced_at = utcnow()
            db.commit()
        except IntegrityError as exc:
            # another invocation inserted the marker first
            db.rollback()
            logger.warning("rollover %s: lost the race for the run marker", period)
            raise AlreadyProcessedError(f"rollover for {period} already running") from exc
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("rollover %s: advancing installments failed, expenses untouched", period)
            raise RolloverStepError(ADVANCE, "advancing installments failed") from exc
        logger.info("rollover %s: advanced %d installment plan(s)", period, run.installments_advanced)

    advanced = run.installments_advanced

    # B: archive last month's variable expenses
    try:
        run.expenses_archived = archive_variable_expenses(db, previous_period(today), month_start(today))
        run.expenses_reset_at = utcnow()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "rollover %s: installments advanced but variable expenses NOT reset; "
            "re-run today to finish",
            period,
        )
        raise RolloverStepError(RESET, "resetting variable expenses failed") from exc

    logger.info("rollover %s: archived %d variable expense(s)", period, run.expenses_archived)
    return RolloverResult(
        period=period,
        installments_advanced=advanced,
        expenses_archived=run.expenses_archived,
        resumed=resumed,
    )

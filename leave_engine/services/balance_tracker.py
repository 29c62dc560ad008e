"""
Balance Tracker

Running totals of approved leave days per (employee, leave type, period).

- Annually reset policies count per calendar year of the request's start
  date, not of "now", so a retroactive request lands in the year it covers.
- A lifetime cap is kept in its own bucket (``period_year == 0``) next to the
  yearly one; a request must fit under every cap that applies.
- Each reservation is one conditional UPDATE per bucket, so two approvals
  racing for the same employee cannot both slip under a cap.
"""
import logging
from datetime import date
from typing import List, NamedTuple, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from leave_engine.core.exceptions import BalanceExceededError
from leave_engine.models.leave_balance import LIFETIME_PERIOD, LeaveBalance
from leave_engine.schemas.leave import BalanceEntry
from leave_engine.schemas.leave_policy import PolicySnapshot
from leave_engine.services.base import BaseService

logger = logging.getLogger(__name__)


class BalanceLimit(NamedTuple):
    period: int
    cap: int  # 0 = unlimited


def balance_limits(policy: PolicySnapshot, effective_date: date) -> List[BalanceLimit]:
    """
    Buckets a request starting on ``effective_date`` counts against, primary first.

    A policy without a balance limit still gets one uncapped bucket so usage
    shows up on the balance page.
    """
    per_year = policy.max_days_per_year if policy.has_balance_limit else 0
    lifetime = policy.max_days_lifetime if policy.has_balance_limit else 0

    if policy.balance_reset_annually:
        limits = [BalanceLimit(effective_date.year, per_year)]
        if lifetime:
            limits.append(BalanceLimit(LIFETIME_PERIOD, lifetime))
        return limits

    if lifetime:
        limits = [BalanceLimit(LIFETIME_PERIOD, lifetime)]
        if per_year:
            limits.append(BalanceLimit(effective_date.year, per_year))
        return limits

    # Never reset and no lifetime figure: the yearly figure caps the whole entitlement
    return [BalanceLimit(LIFETIME_PERIOD, per_year)]


class BalanceTracker(BaseService):
    """
    Reads and reserves leave balance. Never commits: reservations belong to
    the caller's transaction so they roll back together with the transition.
    """

    def __init__(self, db: Session):
        super().__init__(db)

    def _bucket(self, employee_id: str, leave_type: str, period: int) -> Optional[LeaveBalance]:
        return self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type == leave_type,
            LeaveBalance.period_year == period
        ).first()

    def _used(self, employee_id: str, leave_type: str, period: int) -> float:
        bucket = self._bucket(employee_id, leave_type, period)
        return bucket.used_days if bucket else 0.0

    def _ensure_bucket(self, employee_id: str, leave_type: str, period: int, cap: int):
        values = dict(
            employee_id=employee_id,
            leave_type=leave_type,
            period_year=period,
            total_days=float(cap),
            used_days=0.0,
        )
        dialect = self.db.get_bind().dialect.name
        if dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        elif dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        else:
            if self._bucket(employee_id, leave_type, period) is None:
                self.db.add(LeaveBalance(**values))
                self.db.flush()
            return
        stmt = insert(LeaveBalance).values(**values).on_conflict_do_nothing(
            index_elements=["employee_id", "leave_type", "period_year"]
        )
        self.db.execute(stmt)

    def consumed(self, employee_id: str, leave_type: str, effective_date: date) -> Tuple[float, float]:
        """Days used as ``(in the year of effective_date, lifetime)``."""
        return (
            self._used(employee_id, leave_type, effective_date.year),
            self._used(employee_id, leave_type, LIFETIME_PERIOD),
        )

    def check_and_reserve(
        self,
        employee_id: str,
        leave_type: str,
        days: float,
        policy: PolicySnapshot,
        effective_date: date,
    ) -> float:
        """
        Add ``days`` to every bucket the request counts against, each only if
        it stays within its cap.

        Returns the new used total of the primary bucket; raises
        ``BalanceExceededError`` otherwise. Buckets already bumped before the
        failing one are undone by the caller's rollback.
        """
        limits = balance_limits(policy, effective_date)
        for period, cap in limits:
            self._ensure_bucket(employee_id, leave_type, period, cap)

            stmt = (
                update(LeaveBalance)
                .where(
                    LeaveBalance.employee_id == employee_id,
                    LeaveBalance.leave_type == leave_type,
                    LeaveBalance.period_year == period,
                )
                .values(used_days=LeaveBalance.used_days + days, total_days=float(cap))
                .execution_options(synchronize_session=False)
            )
            if cap > 0:
                stmt = stmt.where(LeaveBalance.used_days + days <= cap)

            result = self.db.execute(stmt)
            if result.rowcount == 0:
                used = self._used(employee_id, leave_type, period)
                scope = "lifetime" if period == LIFETIME_PERIOD else str(period)
                logger.info(
                    f"Balance exceeded for {employee_id}/{leave_type}",
                    extra={"period": period, "used": used, "requested": days, "cap": cap}
                )
                raise BalanceExceededError(
                    f"Insufficient {leave_type} balance ({scope}). Requested: {days:g} days, "
                    f"Used: {used:g} of {cap} days",
                    details={"used": used, "requested": days, "cap": cap, "period": period}
                )

        primary = limits[0].period
        bucket = self.db.query(LeaveBalance).populate_existing().filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.leave_type == leave_type,
            LeaveBalance.period_year == primary
        ).one()
        return bucket.used_days

    def summary(self, employee_id: str, year: int) -> List[BalanceEntry]:
        """Buckets relevant to ``year``: that year's buckets plus lifetime ones."""
        rows = self.db.query(LeaveBalance).filter(
            LeaveBalance.employee_id == employee_id,
            LeaveBalance.period_year.in_([year, LIFETIME_PERIOD])
        ).order_by(LeaveBalance.leave_type, LeaveBalance.period_year.desc()).all()
        return [
            BalanceEntry(
                leave_type=row.leave_type,
                period_year=row.period_year,
                used_days=row.used_days,
                total_days=row.total_days,
                remaining_days=row.remaining_days,
            )
            for row in rows
        ]

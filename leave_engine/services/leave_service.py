"""
Leave Request Service

Owns the request lifecycle:

    pending --approve--> approved
    pending --reject---> rejected
    (submit, policy without approval) --> auto-approved

Terminal states are final. Transitions out of ``pending`` are a conditional
UPDATE on the current status, so two approvers racing on the same request
produce exactly one winner; the loser gets ``AlreadyProcessedError``.

Architecture:
- Router -> LeaveRequestService (this module) -> PolicyResolver / BalanceTracker / models
- Rule checks are delegated to ``validate_request``
"""
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from leave_engine.core.datetime_utils import ensure_utc, start_of_day, utcnow
from leave_engine.core.exceptions import (
    AlreadyProcessedError, AppException, LeaveRequestNotFoundError, LeaveValidationError, MissingReasonError
)
from leave_engine.core.security import sanitize_input
from leave_engine.models.leave_request import GRANTED_STATUSES, LeaveAttachment, LeaveRequest, LeaveStatus
from leave_engine.schemas.leave import LeaveRequestCreate, LeaveStatistics, ValidationResult
from leave_engine.schemas.leave_policy import EffectivePolicy
from leave_engine.services.balance_tracker import BalanceTracker
from leave_engine.services.base import BaseService
from leave_engine.services.policy_repository import PolicyRepository, SqlPolicyRepository
from leave_engine.services.policy_resolver import PolicyResolver
from leave_engine.services.request_validator import validate_request

logger = logging.getLogger(__name__)


def is_urgent_overdue(leave: LeaveRequest, now: Optional[datetime] = None) -> bool:
    """True when an urgent request is still undecided past its deadline."""
    if leave.status != LeaveStatus.PENDING.value or not leave.urgent_deadline:
        return False
    return ensure_utc(now or utcnow()) > ensure_utc(leave.urgent_deadline)


class LeaveRequestService(BaseService):

    def __init__(self, db: Session, repository: Optional[PolicyRepository] = None):
        super().__init__(db)
        self.repository = repository or SqlPolicyRepository(db)
        self.resolver = PolicyResolver(self.repository)
        self.balances = BalanceTracker(db)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def preview(
        self, draft: LeaveRequestCreate, now: Optional[datetime] = None
    ) -> Tuple[EffectivePolicy, ValidationResult]:
        """Resolve the policy for ``draft`` and run every rule check against it."""
        now = now or utcnow()
        policy = self.resolver.resolve(draft.leave_type.value, draft.facility_id, draft.grade_level)
        consumed = lifetime_consumed = None
        if policy.has_balance_limit:
            consumed, lifetime_consumed = self.balances.consumed(
                draft.employee_id, policy.leave_type, draft.start_date
            )
        return policy, validate_request(policy, draft, now, consumed, lifetime_consumed)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def submit(
        self,
        draft: LeaveRequestCreate,
        actor_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LeaveRequest:
        """
        Validate and persist a new request.

        Raises ``LeaveValidationError`` carrying every failed rule. Policies that
        do not require approval are auto-approved here, consuming balance in
        the same transaction.
        """
        now = ensure_utc(now) if now else utcnow()
        policy, result = self.preview(draft, now)
        if not result.valid:
            logger.info(
                f"Leave request rejected by validation for {draft.employee_id}",
                extra={"leave_type": policy.leave_type, "issues": result.codes()}
            )
            raise LeaveValidationError(result.issue_pairs())

        leave = LeaveRequest(
            employee_id=draft.employee_id,
            facility_id=draft.facility_id,
            grade_level=draft.grade_level,
            leave_type=policy.leave_type,
            start_date=draft.start_date,
            end_date=draft.end_date,
            days_count=float(result.requested_days),
            reason=sanitize_input(draft.reason),
            status=LeaveStatus.PENDING.value,
            is_retroactive=start_of_day(draft.start_date) < now,
            requires_urgent_approval=policy.requires_urgent_approval,
            urgent_deadline=(
                now + timedelta(hours=policy.urgent_approval_deadline_hours)
                if policy.requires_urgent_approval else None
            ),
            submitted_by=actor_id or draft.employee_id,
            submitted_at=now,
        )
        leave.attachments = [
            LeaveAttachment(file_name=a.file_name, file_url=a.file_url) for a in draft.attachments
        ]

        try:
            self.db.add(leave)
            self.db.flush()
            if not policy.requires_approval:
                self.balances.check_and_reserve(
                    leave.employee_id, leave.leave_type, leave.days_count, policy, leave.start_date
                )
                leave.status = LeaveStatus.AUTO_APPROVED.value
                leave.approved_at = now
                leave.balance_deduction = leave.days_count if policy.has_balance_limit else 0.0
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(leave)
        logger.info(
            f"Leave request {leave.id} submitted as {leave.status}",
            extra={"employee_id": leave.employee_id, "leave_type": leave.leave_type}
        )
        return leave

    def process(
        self,
        request_id: int,
        action: str,
        actor_id: str,
        manager_notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> LeaveRequest:
        """Approve or reject a pending request."""
        now = now or utcnow()
        notes = sanitize_input(manager_notes) if manager_notes else None

        if action == "approve":
            values = dict(
                status=LeaveStatus.APPROVED.value,
                approved_by=actor_id,
                approved_at=now,
            )
        elif action == "reject":
            if not notes:
                raise MissingReasonError()
            values = dict(status=LeaveStatus.REJECTED.value, rejection_reason=notes)
        else:
            raise LeaveValidationError([("ValidationKind", f"Unknown action: {action}")])
        if notes:
            values["manager_notes"] = notes

        stmt = (
            update(LeaveRequest)
            .where(LeaveRequest.id == request_id, LeaveRequest.status == LeaveStatus.PENDING.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        try:
            result = self.db.execute(stmt)
            if result.rowcount == 0:
                self.db.rollback()
                current = self.db.get(LeaveRequest, request_id, populate_existing=True)
                if current is None:
                    raise LeaveRequestNotFoundError(request_id)
                logger.info(f"Leave request {request_id} already processed ({current.status})")
                raise AlreadyProcessedError(request_id, current.status)

            leave = self.db.get(LeaveRequest, request_id, populate_existing=True)
            if action == "approve":
                policy = self.resolver.resolve(
                    leave.leave_type, leave.facility_id, leave.grade_level, allow_inactive=True
                )
                self.balances.check_and_reserve(
                    leave.employee_id, leave.leave_type, leave.days_count, policy, leave.start_date
                )
                leave.balance_deduction = leave.days_count if policy.has_balance_limit else 0.0
            self.db.commit()
        except AppException:
            self.db.rollback()
            raise
        except Exception:
            self.db.rollback()
            logger.error(f"Failed to process leave request {request_id}", exc_info=True)
            raise

        self.db.refresh(leave)
        logger.info(
            f"Leave request {request_id} {leave.status}",
            extra={"actor": actor_id, "employee_id": leave.employee_id}
        )
        return leave

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get(self, request_id: int) -> LeaveRequest:
        leave = self.db.get(LeaveRequest, request_id)
        if leave is None:
            raise LeaveRequestNotFoundError(request_id)
        return leave

    def list_pending(
        self,
        facility_id: Optional[str] = None,
        leave_type: Optional[str] = None,
        urgent_only: bool = False,
    ) -> List[LeaveRequest]:
        """Pending requests, urgent ones first, then oldest first."""
        query = self.db.query(LeaveRequest).filter(LeaveRequest.status == LeaveStatus.PENDING.value)
        if facility_id:
            query = query.filter(LeaveRequest.facility_id == facility_id)
        if leave_type:
            query = query.filter(LeaveRequest.leave_type == leave_type)
        if urgent_only:
            query = query.filter(LeaveRequest.requires_urgent_approval.is_(True))
        return query.order_by(
            LeaveRequest.requires_urgent_approval.desc(),
            LeaveRequest.submitted_at.asc(),
            LeaveRequest.id.asc()
        ).all()

    def list_for_employee(
        self,
        employee_id: str,
        status: Optional[str] = None,
        leave_type: Optional[str] = None,
    ) -> List[LeaveRequest]:
        query = self.db.query(LeaveRequest).filter(LeaveRequest.employee_id == employee_id)
        if status:
            query = query.filter(LeaveRequest.status == status)
        if leave_type:
            query = query.filter(LeaveRequest.leave_type == leave_type)
        return query.order_by(LeaveRequest.submitted_at.desc(), LeaveRequest.id.desc()).all()

    def list_overdue_urgent(self, now: Optional[datetime] = None) -> List[LeaveRequest]:
        """Urgent requests still pending past their approval deadline."""
        now = now or utcnow()
        candidates = self.list_pending(urgent_only=True)
        return [leave for leave in candidates if is_urgent_overdue(leave, now)]

    def approved_leave_on(self, employee_id: str, day: date) -> Optional[LeaveRequest]:
        """The granted leave covering ``day``, if any (attendance and payroll use this)."""
        return self.db.query(LeaveRequest).filter(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.status.in_(GRANTED_STATUSES),
            LeaveRequest.start_date <= day,
            LeaveRequest.end_date >= day
        ).order_by(LeaveRequest.start_date.asc()).first()

    def statistics(
        self,
        facility_id: Optional[str] = None,
        employee_id: Optional[str] = None,
    ) -> LeaveStatistics:
        filters = []
        if facility_id:
            filters.append(LeaveRequest.facility_id == facility_id)
        if employee_id:
            filters.append(LeaveRequest.employee_id == employee_id)

        by_status = dict(
            self.db.query(LeaveRequest.status, func.count(LeaveRequest.id))
            .filter(*filters)
            .group_by(LeaveRequest.status)
            .all()
        )
        approved_days = self.db.query(func.coalesce(func.sum(LeaveRequest.days_count), 0.0)).filter(
            *filters, LeaveRequest.status.in_(GRANTED_STATUSES)
        ).scalar()

        rows = (
            self.db.query(LeaveRequest.leave_type, LeaveRequest.status, func.count(LeaveRequest.id))
            .filter(*filters)
            .group_by(LeaveRequest.leave_type, LeaveRequest.status)
            .all()
        )
        per_type = {}
        for leave_type, status, count in rows:
            entry = per_type.setdefault(leave_type, {"leaveType": leave_type, "count": 0, "approvedCount": 0})
            entry["count"] += count
            if status in GRANTED_STATUSES:
                entry["approvedCount"] += count
        breakdown = [per_type[k] for k in sorted(per_type)]

        return LeaveStatistics(
            total_requests=sum(by_status.values()),
            pending_requests=by_status.get(LeaveStatus.PENDING.value, 0),
            approved_requests=sum(by_status.get(s, 0) for s in GRANTED_STATUSES),
            rejected_requests=by_status.get(LeaveStatus.REJECTED.value, 0),
            approved_days=float(approved_days or 0.0),
            by_leave_type=breakdown,
        )

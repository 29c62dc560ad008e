"""
Leave request rule checks.

``validate_request`` is pure: it needs only the effective policy, the draft,
the current instant and (optionally) the days already consumed in the year
and lifetime balance buckets. The API exposes it for client-side previews and the
lifecycle service runs it again as the authoritative gate on submission.

All checks run; every failure is reported.
"""
import math
from datetime import date, datetime, timezone
from typing import Optional

from leave_engine.core.datetime_utils import ensure_utc, start_of_day
from leave_engine.schemas.leave import LeaveRequestCreate, ValidationIssue, ValidationResult
from leave_engine.schemas.leave_policy import EffectivePolicy
from leave_engine.models.leave_balance import LIFETIME_PERIOD
from leave_engine.services.balance_tracker import balance_limits

SECONDS_PER_DAY = 24 * 60 * 60


def requested_days(start_date: date, end_date: date) -> int:
    """Inclusive of both endpoints."""
    return (end_date - start_date).days + 1


def days_notice(start_date: date, now: datetime) -> int:
    """Whole days (rounded up) between ``now`` and the start of the leave."""
    delta = start_of_day(start_date) - ensure_utc(now)
    return math.ceil(delta.total_seconds() / SECONDS_PER_DAY)


def validate_request(
    policy: EffectivePolicy,
    draft: LeaveRequestCreate,
    now: Optional[datetime] = None,
    consumed_days: Optional[float] = None,
    lifetime_consumed_days: Optional[float] = None,
) -> ValidationResult:
    now = now or datetime.now(timezone.utc)
    issues = []

    days = requested_days(draft.start_date, draft.end_date)
    notice = days_notice(draft.start_date, now)

    if draft.end_date < draft.start_date:
        issues.append(ValidationIssue(
            code="ValidationKind",
            msg="End date cannot be before start date"
        ))

    if not policy.allow_retroactive and notice < policy.minimum_notice_days:
        issues.append(ValidationIssue(
            code="InsufficientNoticeKind",
            msg=(
                f"{policy.display_name} requires at least {policy.minimum_notice_days} days notice; "
                f"this request gives {max(notice, 0)}"
            )
        ))

    if policy.max_days_per_request > 0 and days > policy.max_days_per_request:
        issues.append(ValidationIssue(
            code="RequestTooLongKind",
            msg=(
                f"{policy.display_name} allows at most {policy.max_days_per_request} days per request; "
                f"{days} requested"
            )
        ))

    if days >= 1 and days < policy.min_days_per_request:
        issues.append(ValidationIssue(
            code="RequestTooShortKind",
            msg=(
                f"{policy.display_name} requires at least {policy.min_days_per_request} days per request; "
                f"{days} requested"
            )
        ))

    if policy.requires_documentation and policy.required_documents and not draft.attachments:
        issues.append(ValidationIssue(
            code="MissingDocumentationKind",
            msg=f"Supporting documents required: {', '.join(policy.required_documents)}"
        ))

    if consumed_days is not None and days > 0:
        if lifetime_consumed_days is None:
            lifetime_consumed_days = consumed_days
        for period, cap in balance_limits(policy, draft.start_date):
            if cap <= 0:
                continue
            if period == LIFETIME_PERIOD:
                used, scope = lifetime_consumed_days, "lifetime"
            else:
                used, scope = consumed_days, str(period)
            if used + days > cap:
                issues.append(ValidationIssue(
                    code="BalanceExceededKind",
                    msg=(
                        f"Insufficient balance ({scope}). Requested: {days}, "
                        f"Remaining: {max(cap - used, 0):g}"
                    )
                ))

    return ValidationResult(
        valid=not issues,
        issues=issues,
        requested_days=max(days, 0),
        days_notice=notice,
    )

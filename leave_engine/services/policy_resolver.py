"""
Policy resolution.

The effective policy for one request is the stored policy with two optional
layers applied on top, in this order:

1. the facility override for the employee's facility (sparse: only fields the
   override sets replace the base);
2. the first grade-level rule whose range contains the employee's grade level
   (declaration order, ranges may overlap).

Resolution is a pure function of its inputs and is recomputed on every call.
"""
import logging
from typing import Optional

from leave_engine.core.exceptions import PolicyNotFoundError
from leave_engine.schemas.leave_policy import Entitlement, EffectivePolicy, PolicySnapshot
from leave_engine.services.policy_repository import PolicyRepository

logger = logging.getLogger(__name__)

FACILITY_OVERRIDE_FIELDS = ("is_paid", "salary_percentage", "max_days_per_year", "requires_hr_approval")


def resolve_policy(
    base: PolicySnapshot,
    facility_id: Optional[str] = None,
    grade_level: Optional[int] = None,
) -> EffectivePolicy:
    """Merge ``base`` with its facility override and grade-level rule."""
    values = base.model_dump()

    if facility_id is not None and facility_id != "":
        override = base.override_for(str(facility_id))
        if override is not None:
            for name in FACILITY_OVERRIDE_FIELDS:
                value = getattr(override, name)
                if value is not None:
                    values[name] = value
            values["is_facility_override"] = True
            values["facility_id"] = str(facility_id)

    if grade_level is not None:
        rule = base.rule_for(int(grade_level))
        if rule is not None:
            if rule.max_days_per_year is not None:
                values["max_days_per_year"] = rule.max_days_per_year
            if rule.salary_percentage is not None:
                values["salary_percentage"] = rule.salary_percentage
                values["is_paid"] = rule.salary_percentage > 0
            values["is_grade_level_override"] = True
            values["grade_level"] = int(grade_level)

    # Pay fraction is meaningless for unpaid leave
    if not values["is_paid"]:
        values["salary_percentage"] = 0

    return EffectivePolicy.model_validate(values)


def entitlement_for(policy: EffectivePolicy) -> Entitlement:
    return Entitlement(
        leave_type=policy.leave_type,
        display_name=policy.display_name,
        is_paid=policy.is_paid,
        salary_percentage=policy.salary_percentage,
        has_balance_limit=policy.has_balance_limit,
        max_days_per_year=policy.max_days_per_year,
        requires_approval=policy.requires_approval,
        minimum_notice_days=policy.minimum_notice_days,
        requires_documentation=policy.requires_documentation,
        required_documents=list(policy.required_documents),
    )


class PolicyResolver:
    """Loads base policies from a repository and resolves them."""

    def __init__(self, repository: PolicyRepository):
        self.repository = repository

    def resolve(
        self,
        leave_type: str,
        facility_id: Optional[str] = None,
        grade_level: Optional[int] = None,
        allow_inactive: bool = False,
    ) -> EffectivePolicy:
        """
        Resolve the effective policy for a leave type.

        Inactive policies are refused unless ``allow_inactive`` is set, which is
        how requests submitted before a deactivation are still serviced.
        """
        base = self.repository.get_by_type(leave_type)
        if not base.is_active and not allow_inactive:
            raise PolicyNotFoundError(base.leave_type, inactive=True)
        return resolve_policy(base, facility_id, grade_level)

    def entitlement(
        self,
        leave_type: str,
        facility_id: Optional[str] = None,
        grade_level: Optional[int] = None,
    ) -> Entitlement:
        return entitlement_for(self.resolve(leave_type, facility_id, grade_level))

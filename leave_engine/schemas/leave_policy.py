"""
Leave policy schemas.

Three groups of models live here:
- request bodies (``PolicyCreate``, ``PolicyUpdate``, ``FacilityOverrideIn``)
  which reject unknown keys at the API boundary;
- immutable value objects (``PolicySnapshot``, ``EffectivePolicy``) that the
  resolver and validator operate on;
- read models for history and entitlement responses.

All models speak camelCase on the wire and snake_case in Python.
"""
from datetime import datetime
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from leave_engine.models.leave_policy import LeaveType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Request bodies ---

class FacilityOverrideIn(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    facility_id: str = Field(min_length=1)
    is_paid: Optional[bool] = None
    salary_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    max_days_per_year: Optional[int] = Field(default=None, ge=0)
    requires_hr_approval: Optional[bool] = Field(default=None, alias="requiresHRApproval")


class GradeLevelRuleIn(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    min_grade_level: int = Field(ge=0)
    max_grade_level: int = Field(ge=0)
    max_days_per_year: Optional[int] = Field(default=None, ge=0)
    salary_percentage: Optional[int] = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def check_range(self):
        if self.min_grade_level > self.max_grade_level:
            raise ValueError("minGradeLevel must not exceed maxGradeLevel")
        return self


class PolicyCreate(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    leave_type: LeaveType
    display_name: str = Field(min_length=1)
    description: str = ""

    is_paid: bool = True
    salary_percentage: int = Field(default=100, ge=0, le=100)

    has_balance_limit: bool = False
    max_days_per_year: int = Field(default=0, ge=0)
    max_days_lifetime: int = Field(default=0, ge=0)
    balance_reset_annually: bool = True

    requires_approval: bool = True
    requires_manager_approval: bool = True
    requires_hr_approval: bool = Field(default=False, alias="requiresHRApproval")
    requires_urgent_approval: bool = False
    urgent_approval_deadline_hours: int = Field(default=24, ge=1)

    requires_documentation: bool = False
    required_documents: List[str] = []

    minimum_notice_days: int = Field(default=0, ge=0)
    allow_retroactive: bool = False

    min_days_per_request: int = Field(default=1, ge=0)
    max_days_per_request: int = Field(default=0, ge=0)

    is_active: bool = True

    facility_overrides: List[FacilityOverrideIn] = []
    grade_level_rules: List[GradeLevelRuleIn] = []

    effective_date: Optional[datetime] = None
    notes: Optional[str] = None


class PolicyUpdate(CamelModel):
    """
    Allow-list of fields an administrator may change.

    ``leaveType``, ``policyVersion`` and the timestamps are server-controlled and
    therefore not declared; sending them fails validation.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    display_name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    is_paid: Optional[bool] = None
    salary_percentage: Optional[int] = Field(default=None, ge=0, le=100)
    has_balance_limit: Optional[bool] = None
    max_days_per_year: Optional[int] = Field(default=None, ge=0)
    max_days_lifetime: Optional[int] = Field(default=None, ge=0)
    balance_reset_annually: Optional[bool] = None
    requires_approval: Optional[bool] = None
    requires_manager_approval: Optional[bool] = None
    requires_hr_approval: Optional[bool] = Field(default=None, alias="requiresHRApproval")
    requires_urgent_approval: Optional[bool] = None
    urgent_approval_deadline_hours: Optional[int] = Field(default=None, ge=1)
    requires_documentation: Optional[bool] = None
    required_documents: Optional[List[str]] = None
    minimum_notice_days: Optional[int] = Field(default=None, ge=0)
    allow_retroactive: Optional[bool] = None
    min_days_per_request: Optional[int] = Field(default=None, ge=0)
    max_days_per_request: Optional[int] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    facility_overrides: Optional[List[FacilityOverrideIn]] = None
    grade_level_rules: Optional[List[GradeLevelRuleIn]] = None
    effective_date: Optional[datetime] = None
    notes: Optional[str] = None

    def changed_fields(self) -> dict:
        """Only the fields the caller actually sent; explicit nulls are dropped."""
        return {
            name: getattr(self, name)
            for name in self.model_fields_set
            if getattr(self, name) is not None
        }


# --- Immutable values used by the resolver and validator ---

class FacilityOverrideValue(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, from_attributes=True)

    facility_id: str
    is_paid: Optional[bool] = None
    salary_percentage: Optional[int] = None
    max_days_per_year: Optional[int] = None
    requires_hr_approval: Optional[bool] = Field(default=None, alias="requiresHRApproval")


class GradeLevelRuleValue(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, from_attributes=True)

    min_grade_level: int
    max_grade_level: int
    max_days_per_year: Optional[int] = None
    salary_percentage: Optional[int] = None

    def contains(self, grade_level: int) -> bool:
        return self.min_grade_level <= grade_level <= self.max_grade_level


class PolicySnapshot(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True, from_attributes=True)

    leave_type: str
    display_name: str
    description: str = ""

    is_paid: bool = True
    salary_percentage: int = 100

    has_balance_limit: bool = False
    max_days_per_year: int = 0
    max_days_lifetime: int = 0
    balance_reset_annually: bool = True

    requires_approval: bool = True
    requires_manager_approval: bool = True
    requires_hr_approval: bool = Field(default=False, alias="requiresHRApproval")
    requires_urgent_approval: bool = False
    urgent_approval_deadline_hours: int = 24

    requires_documentation: bool = False
    required_documents: Tuple[str, ...] = ()

    minimum_notice_days: int = 0
    allow_retroactive: bool = False

    min_days_per_request: int = 1
    max_days_per_request: int = 0

    is_active: bool = True

    facility_overrides: Tuple[FacilityOverrideValue, ...] = ()
    grade_level_rules: Tuple[GradeLevelRuleValue, ...] = ()

    policy_version: int = 1
    effective_date: Optional[datetime] = None
    last_updated_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def override_for(self, facility_id: str) -> Optional[FacilityOverrideValue]:
        for override in self.facility_overrides:
            if override.facility_id == str(facility_id):
                return override
        return None

    def rule_for(self, grade_level: int) -> Optional[GradeLevelRuleValue]:
        # First match in declaration order; overlapping ranges are not rejected
        for rule in self.grade_level_rules:
            if rule.contains(grade_level):
                return rule
        return None


class EffectivePolicy(PolicySnapshot):
    """A policy after facility and grade-level overlays, with provenance."""
    is_facility_override: bool = Field(default=False, alias="_isFacilityOverride")
    facility_id: Optional[str] = Field(default=None, alias="_facilityId")
    is_grade_level_override: bool = Field(default=False, alias="_isGradeLevelOverride")
    grade_level: Optional[int] = Field(default=None, alias="_gradeLevel")


# --- Read models ---

class PolicyHistoryEntry(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    leave_type: str
    policy_version: int
    action: str
    changes: dict = {}
    changed_by: Optional[str] = None
    changed_at: Optional[datetime] = None


class Entitlement(CamelModel):
    leave_type: str
    display_name: str
    is_paid: bool
    salary_percentage: int
    has_balance_limit: bool
    max_days_per_year: int
    requires_approval: bool
    minimum_notice_days: int
    requires_documentation: bool
    required_documents: List[str]

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel
from datetime import date, datetime
from typing import List, Literal, Optional, Tuple

from leave_engine.models.leave_policy import LeaveType
from leave_engine.schemas.leave_policy import CamelModel


class AttachmentIn(CamelModel):
    file_name: str = Field(min_length=1)
    file_url: str = Field(min_length=1)


class AttachmentResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    file_name: str
    file_url: str
    uploaded_at: Optional[datetime] = None


class LeaveRequestCreate(CamelModel):
    """A draft leave request, as submitted by an employee or on their behalf."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    employee_id: str = Field(min_length=1)
    leave_type: LeaveType
    start_date: date
    end_date: date
    reason: str = Field(min_length=1, max_length=500)
    facility_id: Optional[str] = None
    grade_level: Optional[int] = Field(default=None, ge=0)
    attachments: List[AttachmentIn] = []


class LeaveProcessRequest(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")

    action: Literal["approve", "reject"]
    manager_notes: Optional[str] = None


class LeaveRequestResponse(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    employee_id: str
    facility_id: Optional[str] = None
    grade_level: Optional[int] = None
    leave_type: str
    start_date: date
    end_date: date
    days_count: float
    reason: str
    status: str
    is_retroactive: bool = False
    requires_urgent_approval: bool = False
    urgent_deadline: Optional[datetime] = None
    urgent_deadline_passed: bool = False
    submitted_by: Optional[str] = None
    submitted_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    manager_notes: Optional[str] = None
    balance_deduction: float = 0.0
    attachments: List[AttachmentResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ValidationIssue(CamelModel):
    code: str
    msg: str


class ValidationResult(CamelModel):
    valid: bool
    issues: List[ValidationIssue] = []
    requested_days: int
    days_notice: int

    def issue_pairs(self) -> List[Tuple[str, str]]:
        return [(issue.code, issue.msg) for issue in self.issues]

    def codes(self) -> List[str]:
        return [issue.code for issue in self.issues]


class BalanceEntry(CamelModel):
    leave_type: str
    period_year: int
    used_days: float
    total_days: float
    remaining_days: Optional[float] = None


class LeaveStatistics(CamelModel):
    total_requests: int = 0
    pending_requests: int = 0
    approved_requests: int = 0
    rejected_requests: int = 0
    approved_days: float = 0.0
    by_leave_type: List[dict] = []

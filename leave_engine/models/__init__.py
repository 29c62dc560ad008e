# Models package
# Importing modules here ensures they are registered with SQLAlchemy Base
from . import leave_policy, leave_request, leave_balance

# Explicit class exports for cleaner imports
from .leave_policy import LeavePolicy, FacilityOverride, GradeLevelRule, LeavePolicyHistory, LeaveType
from .leave_request import LeaveRequest, LeaveAttachment, LeaveStatus
from .leave_balance import LeaveBalance

__all__ = [
    "LeavePolicy",
    "FacilityOverride",
    "GradeLevelRule",
    "LeavePolicyHistory",
    "LeaveType",
    "LeaveRequest",
    "LeaveAttachment",
    "LeaveStatus",
    "LeaveBalance",
]

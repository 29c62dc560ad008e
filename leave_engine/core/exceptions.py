from typing import Any, Dict, List, Optional, Tuple


class AppException(Exception):
    def __init__(
        self,
        message: str,
        status_code: int = 400,
        error_code: str = "BUSINESS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)

    def to_errors(self) -> List[Dict[str, str]]:
        """Error entries for the ``{"success": false, "errors": [...]}`` envelope."""
        return [{"code": self.error_code, "msg": self.message}]


class PolicyNotFoundError(AppException):
    def __init__(self, leave_type: str, inactive: bool = False):
        if inactive:
            message = f"No active policy found for leave type: {leave_type}"
        else:
            message = f"Policy not found for leave type: {leave_type}"
        super().__init__(
            message=message,
            status_code=404,
            error_code="PolicyNotFoundKind",
            details={"leaveType": leave_type}
        )


class DuplicatePolicyError(AppException):
    def __init__(self, leave_type: str):
        super().__init__(
            message=f"Policy for {leave_type} already exists",
            status_code=400,
            error_code="DuplicateKind",
            details={"leaveType": leave_type}
        )


class LeaveRequestNotFoundError(AppException):
    def __init__(self, request_id: int):
        super().__init__(
            message="Leave request not found",
            status_code=404,
            error_code="LeaveRequestNotFoundKind",
            details={"requestId": request_id}
        )


class LeaveValidationError(AppException):
    """Aggregated rule violations for a leave request. Every issue is reported."""
    def __init__(self, issues: List[Tuple[str, str]]):
        self.issues = list(issues)
        super().__init__(
            message="; ".join(msg for _, msg in self.issues) or "Leave request is invalid",
            status_code=400,
            error_code=self.issues[0][0] if self.issues else "ValidationKind",
            details={"issues": [{"code": k, "msg": m} for k, m in self.issues]}
        )

    def to_errors(self) -> List[Dict[str, str]]:
        return [{"code": kind, "msg": msg} for kind, msg in self.issues]


class BalanceExceededError(AppException):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=400,
            error_code="BalanceExceededKind",
            details=details
        )


class MissingReasonError(AppException):
    def __init__(self, message: str = "Manager notes are required when rejecting a leave request"):
        super().__init__(
            message=message,
            status_code=400,
            error_code="MissingReasonKind"
        )


class AlreadyProcessedError(AppException):
    def __init__(self, request_id: int, status: Optional[str] = None):
        super().__init__(
            message="Request has already been processed",
            status_code=409,
            error_code="AlreadyProcessedKind",
            details={"requestId": request_id, "status": status}
        )


class AccessDeniedError(AppException):
    """Custom permission error. Named AccessDeniedError to avoid shadowing Python's built-in PermissionError."""
    def __init__(self, message: str = "Insufficient permissions"):
        super().__init__(
            message=message,
            status_code=403,
            error_code="PERMISSION_DENIED"
        )

"""
Leave Request Router

Employees submit for themselves; approvers (``approve_leave``) decide, and
``view_leave_requests`` holders can read anyone's requests.
"""
import logging
import os
import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, Request, UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from leave_engine.core.config import settings
from leave_engine.core.datetime_utils import utcnow
from leave_engine.core.exceptions import AccessDeniedError, LeaveValidationError
from leave_engine.core.limiter import SUBMISSION_LIMIT, limiter
from leave_engine.core.schemas import ApiResponse
from leave_engine.database import get_db
from leave_engine.models.leave_request import LeaveRequest, LeaveStatus
from leave_engine.routers.auth_deps import (
    get_current_actor, require_approver, require_leave_viewer, require_permission
)
from leave_engine.schemas.auth import Actor, Permission
from leave_engine.schemas.leave import (
    AttachmentIn, LeaveProcessRequest, LeaveRequestCreate, LeaveRequestResponse
)
from leave_engine.services.leave_service import LeaveRequestService, is_urgent_overdue

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/leave", tags=["leave"])


def get_leave_service(db: Session = Depends(get_db)) -> LeaveRequestService:
    return LeaveRequestService(db)


def _serialize(leave: LeaveRequest, now=None) -> dict:
    response = LeaveRequestResponse.model_validate(leave)
    response.urgent_deadline_passed = is_urgent_overdue(leave, now)
    return response.model_dump(mode="json", by_alias=True)


def _submitted(leave: LeaveRequest) -> dict:
    return {
        "leaveRequest": _serialize(leave),
        "autoApproved": leave.status == LeaveStatus.AUTO_APPROVED.value,
    }


def _ensure_can_act_for(actor: Actor, employee_id: str):
    """Without ``view_leave_requests`` a caller may only touch their own leave."""
    if actor.has_permission(Permission.VIEW_LEAVE_REQUESTS.value):
        return
    if actor.employee_id and actor.employee_id == employee_id:
        return
    logger.warning(f"Access denied for {actor.id}: leave of employee {employee_id}")
    raise AccessDeniedError("You can only access your own leave requests")


def _save_documents(documents: List[UploadFile]) -> List[AttachmentIn]:
    """Write every document under the upload directory; on failure none stay behind."""
    os.makedirs(settings.upload_dir, exist_ok=True)
    saved = []
    try:
        for document in documents:
            original = os.path.basename(document.filename or "document")
            stored_name = f"{uuid.uuid4().hex}_{original}"
            path = os.path.join(settings.upload_dir, stored_name)
            saved.append(AttachmentIn(file_name=original, file_url=path))
            with open(path, "wb") as buffer:
                buffer.write(document.file.read())
    except Exception:
        _remove_files(saved)
        raise
    return saved


def _remove_files(attachments: List[AttachmentIn]):
    for attachment in attachments:
        try:
            os.remove(attachment.file_url)
        except FileNotFoundError:
            continue
        except OSError:
            logger.warning(f"Could not remove orphaned upload {attachment.file_url}")


# --- Submission ---

@router.post("", status_code=201)
@limiter.limit(SUBMISSION_LIMIT)
def submit_leave(
    request: Request,
    payload: LeaveRequestCreate,
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(require_permission(Permission.SUBMIT_LEAVE.value)),
):
    """Submit a leave request with attachments given as references."""
    _ensure_can_act_for(actor, payload.employee_id)
    leave = service.submit(payload, actor_id=actor.id)
    return ApiResponse.ok(
        _submitted(leave),
        message="Leave request submitted successfully",
    ).to_dict()


@router.post("/submit", status_code=201)
@limiter.limit(SUBMISSION_LIMIT)
def submit_leave_with_documents(
    request: Request,
    employee_id: str = Form(..., alias="employeeId"),
    leave_type: str = Form(..., alias="leaveType"),
    start_date: date = Form(..., alias="startDate"),
    end_date: date = Form(..., alias="endDate"),
    reason: str = Form(...),
    facility_id: Optional[str] = Form(None, alias="facilityId"),
    grade_level: Optional[int] = Form(None, alias="gradeLevel"),
    documents: List[UploadFile] = File(default=[]),
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(require_permission(Permission.SUBMIT_LEAVE.value)),
):
    """
    Multipart submission. Up to ``max_documents_per_request`` files are stored
    under the upload directory and attached to the request.
    """
    _ensure_can_act_for(actor, employee_id)
    documents = [d for d in documents if d.filename]
    if len(documents) > settings.max_documents_per_request:
        raise LeaveValidationError([(
            "ValidationKind",
            f"At most {settings.max_documents_per_request} documents can be attached"
        )])

    try:
        draft = LeaveRequestCreate(
            employee_id=employee_id,
            leave_type=leave_type,
            start_date=start_date,
            end_date=end_date,
            reason=reason,
            facility_id=facility_id,
            grade_level=grade_level,
        )
    except ValidationError as e:
        raise LeaveValidationError([
            ("ValidationKind", f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}")
            for err in e.errors()
        ])

    attachments = _save_documents(documents)
    draft.attachments = attachments
    try:
        leave = service.submit(draft, actor_id=actor.id)
    except Exception:
        _remove_files(attachments)
        raise

    logger.info(f"Leave request {leave.id} submitted with {len(attachments)} document(s)")
    return ApiResponse.ok(
        _submitted(leave),
        message="Leave request submitted successfully",
    ).to_dict()


@router.post("/validate")
def validate_leave(
    payload: LeaveRequestCreate,
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(get_current_actor),
):
    """Runs every rule check without persisting anything."""
    policy, result = service.preview(payload)
    data = result.model_dump(mode="json", by_alias=True)
    data["policy"] = policy.model_dump(mode="json", by_alias=True)
    return ApiResponse.ok(data).to_dict()


# --- Decisions ---

@router.patch("/process/{request_id}")
def process_leave(
    request_id: int,
    payload: LeaveProcessRequest,
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(require_approver()),
):
    leave = service.process(request_id, payload.action, actor.id, payload.manager_notes)
    verb = "approved" if payload.action == "approve" else "rejected"
    return ApiResponse.ok(
        {"leaveRequest": _serialize(leave)},
        message=f"Leave request {verb} successfully",
    ).to_dict()


# --- Queries ---

@router.get("/pending")
def list_pending(
    facility_id: Optional[str] = Query(None, alias="facilityId"),
    leave_type: Optional[str] = Query(None, alias="leaveType"),
    urgent_only: bool = Query(False, alias="urgentOnly"),
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(require_approver()),
):
    """Pending requests, urgent first. Overdue urgent ones are flagged."""
    now = utcnow()
    pending = service.list_pending(facility_id, leave_type, urgent_only)
    items = [_serialize(leave, now) for leave in pending]
    return ApiResponse.ok({
        "leaveRequests": items,
        "count": len(items),
        "overdueUrgentCount": sum(1 for item in items if item["urgentDeadlinePassed"]),
    }).to_dict()


@router.get("/employee/{employee_id}")
def list_for_employee(
    employee_id: str,
    status: Optional[str] = Query(None),
    leave_type: Optional[str] = Query(None, alias="leaveType"),
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(get_current_actor),
):
    _ensure_can_act_for(actor, employee_id)
    leaves = service.list_for_employee(employee_id, status, leave_type)
    now = utcnow()
    return ApiResponse.ok({
        "leaveRequests": [_serialize(leave, now) for leave in leaves],
        "count": len(leaves),
    }).to_dict()


@router.get("/check-leave")
def check_leave(
    employee_id: str = Query(..., alias="employeeId"),
    day: date = Query(..., alias="date"),
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(get_current_actor),
):
    """Whether the employee is on granted leave on ``date`` (attendance and payroll)."""
    _ensure_can_act_for(actor, employee_id)
    leave = service.approved_leave_on(employee_id, day)
    return ApiResponse.ok({
        "employeeId": employee_id,
        "date": day.isoformat(),
        "onLeave": leave is not None,
        "leaveRequest": _serialize(leave) if leave else None,
    }).to_dict()


@router.get("/statistics")
def leave_statistics(
    facility_id: Optional[str] = Query(None, alias="facilityId"),
    employee_id: Optional[str] = Query(None, alias="employeeId"),
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(require_leave_viewer()),
):
    stats = service.statistics(facility_id, employee_id)
    return ApiResponse.ok({"statistics": stats.model_dump(mode="json", by_alias=True)}).to_dict()


@router.get("/balance/{employee_id}")
def leave_balance(
    employee_id: str,
    year: Optional[int] = Query(None, ge=1900, le=9999),
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(get_current_actor),
):
    """Used and remaining days per leave type for ``year`` plus lifetime buckets."""
    _ensure_can_act_for(actor, employee_id)
    year = year or utcnow().year
    entries = service.balances.summary(employee_id, year)
    return ApiResponse.ok({
        "employeeId": employee_id,
        "year": year,
        "balances": [e.model_dump(mode="json", by_alias=True) for e in entries],
    }).to_dict()


@router.get("/{request_id}")
def get_leave(
    request_id: int,
    service: LeaveRequestService = Depends(get_leave_service),
    actor: Actor = Depends(get_current_actor),
):
    leave = service.get(request_id)
    _ensure_can_act_for(actor, leave.employee_id)
    return ApiResponse.ok({"leaveRequest": _serialize(leave)}).to_dict()

"""
Leave Policy Router

Read endpoints are open to any caller (employees need them to see their
entitlement). Mutations need the ``manage_settings`` permission; the actor id
is recorded as ``lastUpdatedBy``.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from leave_engine.core.schemas import ApiResponse
from leave_engine.database import get_db
from leave_engine.models.leave_policy import LeaveType
from leave_engine.routers.auth_deps import require_settings_manager
from leave_engine.schemas.auth import Actor
from leave_engine.schemas.leave_policy import FacilityOverrideIn, PolicyCreate, PolicyUpdate
from leave_engine.services.policy_repository import PolicyRepository, SqlPolicyRepository
from leave_engine.services.policy_resolver import PolicyResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/policies", tags=["leave-policies"])


def get_policy_repository(db: Session = Depends(get_db)) -> PolicyRepository:
    return SqlPolicyRepository(db)


def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


@router.get("")
def list_policies(repository: PolicyRepository = Depends(get_policy_repository)):
    """All active leave policies, ordered by leave type."""
    policies = repository.list_policies(active_only=True)
    return ApiResponse.ok({"policies": [_dump(p) for p in policies]}).to_dict()


@router.get("/calculate-entitlement")
def calculate_entitlement(
    leave_type: LeaveType = Query(..., alias="leaveType"),
    grade_level: Optional[int] = Query(None, alias="gradeLevel", ge=0),
    facility_id: Optional[str] = Query(None, alias="facilityId"),
    repository: PolicyRepository = Depends(get_policy_repository),
):
    """What an employee at this grade level and facility is entitled to."""
    entitlement = PolicyResolver(repository).entitlement(leave_type.value, facility_id, grade_level)
    return ApiResponse.ok({"entitlement": _dump(entitlement)}).to_dict()


@router.get("/{leave_type}")
def get_policy(
    leave_type: str,
    facility_id: Optional[str] = Query(None, alias="facilityId"),
    grade_level: Optional[int] = Query(None, alias="gradeLevel", ge=0),
    repository: PolicyRepository = Depends(get_policy_repository),
):
    """Effective policy for a leave type, optionally for a facility and grade level."""
    policy = PolicyResolver(repository).resolve(leave_type, facility_id, grade_level)
    return ApiResponse.ok({"policy": _dump(policy)}).to_dict()


@router.post("/create", status_code=status.HTTP_201_CREATED)
def create_policy(
    payload: PolicyCreate,
    repository: PolicyRepository = Depends(get_policy_repository),
    actor: Actor = Depends(require_settings_manager()),
):
    policy = repository.create(payload, actor_id=actor.id)
    return ApiResponse.ok(
        {"policy": _dump(policy)},
        message=f"Leave policy for {policy.leave_type} created successfully",
    ).to_dict()


@router.put("/{leave_type}")
def update_policy(
    leave_type: str,
    payload: PolicyUpdate,
    repository: PolicyRepository = Depends(get_policy_repository),
    actor: Actor = Depends(require_settings_manager()),
):
    """Partial update. Unknown and server-controlled fields are rejected."""
    policy = repository.update(leave_type, payload, actor_id=actor.id)
    return ApiResponse.ok(
        {"policy": _dump(policy)},
        message=f"Leave policy for {leave_type} updated successfully",
    ).to_dict()


@router.post("/{leave_type}/facility-override")
def add_facility_override(
    leave_type: str,
    payload: FacilityOverrideIn,
    repository: PolicyRepository = Depends(get_policy_repository),
    actor: Actor = Depends(require_settings_manager()),
):
    """Replace the override for the facility, or append one if none exists."""
    policy = repository.upsert_facility_override(leave_type, payload, actor_id=actor.id)
    return ApiResponse.ok(
        {"policy": _dump(policy)},
        message="Facility override added successfully",
    ).to_dict()


@router.get("/{leave_type}/history")
def get_policy_history(
    leave_type: str,
    repository: PolicyRepository = Depends(get_policy_repository),
    actor: Actor = Depends(require_settings_manager()),
):
    policy = repository.get_by_type(leave_type)
    entries = repository.history(leave_type)
    return ApiResponse.ok({
        "leaveType": policy.leave_type,
        "currentVersion": policy.policy_version,
        "effectiveDate": policy.effective_date.isoformat() if policy.effective_date else None,
        "lastUpdatedBy": policy.last_updated_by,
        "lastUpdatedAt": policy.updated_at.isoformat() if policy.updated_at else None,
        "notes": policy.notes,
        "history": [_dump(e) for e in entries],
    }).to_dict()

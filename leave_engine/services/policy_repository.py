"""
Policy Repository

Persistent store of one leave policy per leave type.

Architecture:
- ``PolicyRepository`` is the interface the resolver and routers depend on
- ``SqlPolicyRepository`` is the production implementation (SQLAlchemy)
- ``InMemoryPolicyRepository`` is a fake with the same semantics for tests

Every read returns an immutable ``PolicySnapshot`` so callers can never mutate
stored state by accident. Every mutation after creation bumps
``policy_version`` by exactly one, stamps ``last_updated_by`` and appends a
history entry.
"""
import abc
import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from leave_engine.core.exceptions import DuplicatePolicyError, LeaveValidationError, PolicyNotFoundError
from leave_engine.models.leave_policy import (
    FacilityOverride, GradeLevelRule, LeavePolicy, LeavePolicyHistory
)
from leave_engine.schemas.leave_policy import (
    FacilityOverrideIn, PolicyCreate, PolicyHistoryEntry, PolicySnapshot, PolicyUpdate
)
from leave_engine.services.base import BaseService

logger = logging.getLogger(__name__)

_CHILD_FIELDS = ("facility_overrides", "grade_level_rules")


def _leave_type_value(leave_type) -> str:
    return getattr(leave_type, "value", leave_type)


def _json_changes(fields: dict) -> dict:
    """History rows store plain JSON."""
    changes = {}
    for name, value in fields.items():
        if isinstance(value, list):
            changes[name] = [v.model_dump(mode="json") if hasattr(v, "model_dump") else v for v in value]
        elif isinstance(value, datetime):
            changes[name] = value.isoformat()
        else:
            changes[name] = _leave_type_value(value)
    return changes


def _require_fields(fields: dict):
    if not fields:
        raise LeaveValidationError([("ValidationKind", "No updatable fields supplied")])


class PolicyRepository(abc.ABC):
    """Interface for leave policy storage."""

    @abc.abstractmethod
    def get_by_type(self, leave_type: str) -> PolicySnapshot:
        """Return the stored policy or raise ``PolicyNotFoundError``."""

    @abc.abstractmethod
    def list_policies(self, active_only: bool = True) -> List[PolicySnapshot]:
        ...

    @abc.abstractmethod
    def create(self, data: PolicyCreate, actor_id: Optional[str] = None) -> PolicySnapshot:
        """Create a policy at version 1 or raise ``DuplicatePolicyError``."""

    @abc.abstractmethod
    def update(self, leave_type: str, changes: PolicyUpdate, actor_id: Optional[str] = None) -> PolicySnapshot:
        """Apply a partial update, bumping the version, or raise ``PolicyNotFoundError``."""

    @abc.abstractmethod
    def upsert_facility_override(
        self, leave_type: str, override: FacilityOverrideIn, actor_id: Optional[str] = None
    ) -> PolicySnapshot:
        """Replace the override for ``override.facility_id`` or append a new one."""

    @abc.abstractmethod
    def history(self, leave_type: str) -> List[PolicyHistoryEntry]:
        ...


class SqlPolicyRepository(BaseService, PolicyRepository):

    def __init__(self, db: Session):
        super().__init__(db)

    def _load(self, leave_type: str) -> LeavePolicy:
        policy = self.db.query(LeavePolicy).filter(
            LeavePolicy.leave_type == _leave_type_value(leave_type)
        ).first()
        if not policy:
            raise PolicyNotFoundError(_leave_type_value(leave_type))
        return policy

    def _record(self, policy: LeavePolicy, action: str, changes: dict, actor_id: Optional[str], version: int):
        self.db.add(LeavePolicyHistory(
            leave_type=policy.leave_type,
            policy_version=version,
            action=action,
            changes=changes,
            changed_by=actor_id,
        ))

    def _save(self, policy: LeavePolicy) -> PolicySnapshot:
        self._commit()
        self.db.refresh(policy)
        return PolicySnapshot.model_validate(policy)

    def get_by_type(self, leave_type: str) -> PolicySnapshot:
        return PolicySnapshot.model_validate(self._load(leave_type))

    def list_policies(self, active_only: bool = True) -> List[PolicySnapshot]:
        query = self.db.query(LeavePolicy)
        if active_only:
            query = query.filter(LeavePolicy.is_active.is_(True))
        return [PolicySnapshot.model_validate(p) for p in query.order_by(LeavePolicy.leave_type).all()]

    def create(self, data: PolicyCreate, actor_id: Optional[str] = None) -> PolicySnapshot:
        leave_type = _leave_type_value(data.leave_type)
        existing = self.db.query(LeavePolicy.id).filter(LeavePolicy.leave_type == leave_type).first()
        if existing:
            raise DuplicatePolicyError(leave_type)

        fields = data.model_dump(exclude=set(_CHILD_FIELDS))
        fields["leave_type"] = leave_type
        if fields.get("effective_date") is None:
            fields["effective_date"] = datetime.now(timezone.utc)

        policy = LeavePolicy(**fields, policy_version=1, last_updated_by=actor_id)
        policy.facility_overrides = [FacilityOverride(**o.model_dump()) for o in data.facility_overrides]
        policy.grade_level_rules = [
            GradeLevelRule(position=i, **r.model_dump()) for i, r in enumerate(data.grade_level_rules)
        ]
        self.db.add(policy)
        self._record(policy, "create", _json_changes(data.model_dump()), actor_id, 1)
        try:
            snapshot = self._save(policy)
        except IntegrityError:
            # Lost a race with another create for the same leave type
            raise DuplicatePolicyError(leave_type)
        logger.info(f"Created leave policy {leave_type}", extra={"actor": actor_id})
        return snapshot

    def update(self, leave_type: str, changes: PolicyUpdate, actor_id: Optional[str] = None) -> PolicySnapshot:
        policy = self._load(leave_type)
        fields = changes.changed_fields()
        _require_fields(fields)

        # Old child rows must be gone before replacements reuse their unique keys
        for name in _CHILD_FIELDS:
            if name in fields:
                getattr(policy, name).clear()
        self.db.flush()

        for name, value in fields.items():
            if name == "facility_overrides":
                policy.facility_overrides = [FacilityOverride(**o.model_dump()) for o in value]
            elif name == "grade_level_rules":
                policy.grade_level_rules = [
                    GradeLevelRule(position=i, **r.model_dump()) for i, r in enumerate(value)
                ]
            else:
                setattr(policy, name, value)

        return self._bump_and_save(policy, "update", _json_changes(fields), actor_id)

    def upsert_facility_override(
        self, leave_type: str, override: FacilityOverrideIn, actor_id: Optional[str] = None
    ) -> PolicySnapshot:
        policy = self._load(leave_type)
        values = override.model_dump()
        existing = next(
            (o for o in policy.facility_overrides if o.facility_id == override.facility_id), None
        )
        if existing is not None:
            # Replace, not merge: unset fields go back to inheriting from the base
            for name, value in values.items():
                setattr(existing, name, value)
        else:
            policy.facility_overrides.append(FacilityOverride(**values))

        return self._bump_and_save(policy, "facility_override", _json_changes(values), actor_id)

    def _bump_and_save(self, policy: LeavePolicy, action: str, changes: dict, actor_id: Optional[str]):
        new_version = policy.policy_version + 1
        # Increment in SQL so concurrent writers cannot both land on the same version
        policy.policy_version = LeavePolicy.policy_version + 1
        policy.last_updated_by = actor_id
        self._record(policy, action, changes, actor_id, new_version)
        snapshot = self._save(policy)
        logger.info(
            f"Updated leave policy {policy.leave_type} to v{snapshot.policy_version}",
            extra={"actor": actor_id, "action": action}
        )
        return snapshot

    def history(self, leave_type: str) -> List[PolicyHistoryEntry]:
        self._load(leave_type)
        rows = self.db.query(LeavePolicyHistory).filter(
            LeavePolicyHistory.leave_type == _leave_type_value(leave_type)
        ).order_by(LeavePolicyHistory.policy_version.desc(), LeavePolicyHistory.id.desc()).all()
        return [PolicyHistoryEntry.model_validate(r) for r in rows]


class InMemoryPolicyRepository(PolicyRepository):
    """Dictionary-backed repository with the same versioning rules as the SQL one."""

    def __init__(self, policies: Optional[List[PolicyCreate]] = None):
        self._policies: Dict[str, dict] = {}
        self._history: List[PolicyHistoryEntry] = []
        self._lock = threading.Lock()
        for data in policies or []:
            self.create(data)

    def _get(self, leave_type: str) -> dict:
        key = _leave_type_value(leave_type)
        if key not in self._policies:
            raise PolicyNotFoundError(key)
        return self._policies[key]

    def _log(self, record: dict, action: str, changes: dict, actor_id: Optional[str]):
        self._history.append(PolicyHistoryEntry(
            leave_type=record["leave_type"],
            policy_version=record["policy_version"],
            action=action,
            changes=changes,
            changed_by=actor_id,
            changed_at=record["updated_at"],
        ))

    def get_by_type(self, leave_type: str) -> PolicySnapshot:
        return PolicySnapshot.model_validate(self._get(leave_type))

    def list_policies(self, active_only: bool = True) -> List[PolicySnapshot]:
        return [
            PolicySnapshot.model_validate(record)
            for key, record in sorted(self._policies.items())
            if record["is_active"] or not active_only
        ]

    def create(self, data: PolicyCreate, actor_id: Optional[str] = None) -> PolicySnapshot:
        leave_type = _leave_type_value(data.leave_type)
        now = datetime.now(timezone.utc)
        with self._lock:
            if leave_type in self._policies:
                raise DuplicatePolicyError(leave_type)
            record = data.model_dump()
            record.update(
                leave_type=leave_type,
                effective_date=data.effective_date or now,
                policy_version=1,
                last_updated_by=actor_id,
                created_at=now,
                updated_at=now,
            )
            self._policies[leave_type] = record
            self._log(record, "create", _json_changes(data.model_dump()), actor_id)
            return PolicySnapshot.model_validate(record)

    def update(self, leave_type: str, changes: PolicyUpdate, actor_id: Optional[str] = None) -> PolicySnapshot:
        fields = changes.changed_fields()
        with self._lock:
            record = copy.deepcopy(self._get(leave_type))
            _require_fields(fields)
            for name, value in fields.items():
                if name in _CHILD_FIELDS:
                    record[name] = [v.model_dump() for v in value]
                else:
                    record[name] = value
            return self._bump(record, "update", _json_changes(fields), actor_id)

    def upsert_facility_override(
        self, leave_type: str, override: FacilityOverrideIn, actor_id: Optional[str] = None
    ) -> PolicySnapshot:
        values = override.model_dump()
        with self._lock:
            record = copy.deepcopy(self._get(leave_type))
            overrides = record["facility_overrides"]
            for index, existing in enumerate(overrides):
                if existing["facility_id"] == override.facility_id:
                    overrides[index] = values
                    break
            else:
                overrides.append(values)
            return self._bump(record, "facility_override", _json_changes(values), actor_id)

    def _bump(self, record: dict, action: str, changes: dict, actor_id: Optional[str]) -> PolicySnapshot:
        record["policy_version"] += 1
        record["last_updated_by"] = actor_id
        record["updated_at"] = datetime.now(timezone.utc)
        snapshot = PolicySnapshot.model_validate(record)
        self._policies[record["leave_type"]] = record
        self._log(record, action, changes, actor_id)
        return snapshot

    def history(self, leave_type: str) -> List[PolicyHistoryEntry]:
        key = _leave_type_value(self._get(leave_type)["leave_type"])
        entries = [e for e in self._history if e.leave_type == key]
        return sorted(entries, key=lambda e: e.policy_version, reverse=True)

import pytest
from pydantic import ValidationError

from leave_engine.core.exceptions import DuplicatePolicyError, LeaveValidationError, PolicyNotFoundError
from leave_engine.models.leave_policy import LeavePolicyHistory
from leave_engine.schemas.leave_policy import (
    FacilityOverrideIn, GradeLevelRuleIn, PolicyCreate, PolicyUpdate
)
from leave_engine.services.policy_repository import InMemoryPolicyRepository, SqlPolicyRepository


@pytest.fixture(params=["sql", "memory"])
def repository(request, db_session):
    if request.param == "sql":
        return SqlPolicyRepository(db_session)
    return InMemoryPolicyRepository()


def _annual():
    return PolicyCreate(
        leave_type="annual",
        display_name="Annual Leave",
        has_balance_limit=True,
        max_days_per_year=30,
        grade_level_rules=[
            GradeLevelRuleIn(min_grade_level=1, max_grade_level=3, max_days_per_year=14),
            GradeLevelRuleIn(min_grade_level=4, max_grade_level=6, max_days_per_year=21),
        ],
    )


def test_create_applies_defaults(repository):
    policy = repository.create(PolicyCreate(leave_type="religious", display_name="Religious Leave"), actor_id="hr-1")
    assert policy.policy_version == 1
    assert policy.last_updated_by == "hr-1"
    assert policy.is_paid is True
    assert policy.salary_percentage == 100
    assert policy.requires_approval is True
    assert policy.urgent_approval_deadline_hours == 24
    assert policy.min_days_per_request == 1
    assert policy.max_days_per_request == 0
    assert policy.effective_date is not None


def test_create_round_trips_children(repository):
    repository.create(_annual())
    stored = repository.get_by_type("annual")
    assert [r.max_days_per_year for r in stored.grade_level_rules] == [14, 21]
    assert stored.rule_for(5).max_days_per_year == 21


def test_duplicate_create_is_rejected(repository):
    repository.create(_annual())
    with pytest.raises(DuplicatePolicyError):
        repository.create(_annual())


def test_missing_policy_raises(repository):
    with pytest.raises(PolicyNotFoundError):
        repository.get_by_type("annual")
    with pytest.raises(PolicyNotFoundError):
        repository.update("annual", PolicyUpdate(display_name="x"))


def test_each_update_bumps_version_by_one(repository):
    repository.create(_annual())
    assert repository.update("annual", PolicyUpdate(max_days_per_year=25), actor_id="hr-2").policy_version == 2
    updated = repository.update("annual", PolicyUpdate(minimum_notice_days=5), actor_id="hr-3")
    assert updated.policy_version == 3
    assert updated.max_days_per_year == 25
    assert updated.minimum_notice_days == 5
    assert updated.last_updated_by == "hr-3"


def test_update_replaces_grade_rules(repository):
    repository.create(_annual())
    updated = repository.update("annual", PolicyUpdate(grade_level_rules=[
        GradeLevelRuleIn(min_grade_level=1, max_grade_level=17, max_days_per_year=20)
    ]))
    assert len(updated.grade_level_rules) == 1
    assert updated.rule_for(10).max_days_per_year == 20


def test_empty_update_is_rejected(repository):
    repository.create(_annual())
    with pytest.raises(LeaveValidationError):
        repository.update("annual", PolicyUpdate())


def test_empty_update_of_missing_policy_is_not_found(repository):
    with pytest.raises(PolicyNotFoundError):
        repository.update("annual", PolicyUpdate())


def test_update_rejects_server_controlled_fields():
    with pytest.raises(ValidationError):
        PolicyUpdate.model_validate({"policyVersion": 7})
    with pytest.raises(ValidationError):
        PolicyUpdate.model_validate({"leaveType": "casual"})


def test_facility_override_upsert_replaces_existing(repository):
    repository.create(_annual())
    first = repository.upsert_facility_override("annual", FacilityOverrideIn(facility_id="F-1", is_paid=False))
    assert first.policy_version == 2
    assert len(first.facility_overrides) == 1

    second = repository.upsert_facility_override(
        "annual", FacilityOverrideIn(facility_id="F-1", max_days_per_year=40)
    )
    assert second.policy_version == 3
    assert len(second.facility_overrides) == 1
    override = second.override_for("F-1")
    assert override.max_days_per_year == 40
    assert override.is_paid is None

    third = repository.upsert_facility_override("annual", FacilityOverrideIn(facility_id="F-2", is_paid=False))
    assert [o.facility_id for o in third.facility_overrides] == ["F-1", "F-2"]


def test_history_lists_versions_newest_first(repository):
    repository.create(_annual(), actor_id="hr-1")
    repository.update("annual", PolicyUpdate(max_days_per_year=25), actor_id="hr-2")
    repository.upsert_facility_override("annual", FacilityOverrideIn(facility_id="F-1"), actor_id="hr-3")

    history = repository.history("annual")
    assert [h.policy_version for h in history] == [3, 2, 1]
    assert [h.action for h in history] == ["facility_override", "update", "create"]
    assert history[1].changes == {"max_days_per_year": 25}
    assert history[1].changed_by == "hr-2"


def test_list_policies_skips_inactive(repository):
    repository.create(_annual())
    repository.create(PolicyCreate(leave_type="casual", display_name="Casual Leave"))
    repository.update("casual", PolicyUpdate(is_active=False))

    assert [p.leave_type for p in repository.list_policies()] == ["annual"]
    assert [p.leave_type for p in repository.list_policies(active_only=False)] == ["annual", "casual"]


def test_snapshots_are_immutable(repository):
    policy = repository.create(_annual())
    with pytest.raises(ValidationError):
        policy.max_days_per_year = 99


def test_sql_history_rows_are_persisted(db_session):
    repository = SqlPolicyRepository(db_session)
    repository.create(_annual(), actor_id="hr-1")
    repository.update("annual", PolicyUpdate(notes="revised"), actor_id="hr-1")
    assert db_session.query(LeavePolicyHistory).count() == 2

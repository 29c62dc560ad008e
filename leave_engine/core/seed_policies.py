"""Default leave policies shipped with a fresh installation."""
import logging
from typing import List

from leave_engine.core.exceptions import DuplicatePolicyError
from leave_engine.schemas.leave_policy import GradeLevelRuleIn, PolicyCreate

logger = logging.getLogger(__name__)

DEFAULT_POLICIES: List[PolicyCreate] = [
    PolicyCreate(
        leave_type="annual",
        display_name="Annual Leave",
        description="Yearly vacation leave based on grade level",
        has_balance_limit=True,
        max_days_per_year=30,  # GL 7+
        balance_reset_annually=True,
        minimum_notice_days=3,
        grade_level_rules=[
            GradeLevelRuleIn(min_grade_level=1, max_grade_level=3, max_days_per_year=14, salary_percentage=100),
            GradeLevelRuleIn(min_grade_level=4, max_grade_level=6, max_days_per_year=21, salary_percentage=100),
            GradeLevelRuleIn(min_grade_level=7, max_grade_level=17, max_days_per_year=30, salary_percentage=100),
        ],
        notes="Annual leave entitlement varies by grade level",
    ),
    PolicyCreate(
        leave_type="maternity",
        display_name="Maternity Leave",
        description="Leave for pregnancy and childbirth",
        has_balance_limit=True,
        max_days_per_year=84,  # 12 weeks
        balance_reset_annually=False,
        requires_hr_approval=True,
        requires_documentation=True,
        required_documents=["Medical certificate", "Expected delivery date confirmation"],
        minimum_notice_days=14,
        allow_retroactive=True,
        max_days_per_request=84,
        notes="12 weeks (84 days) paid maternity leave",
    ),
    PolicyCreate(
        leave_type="adoptive",
        display_name="Adoptive Leave",
        description="Adoptive Leave",
        has_balance_limit=True,
        max_days_per_year=112,  # 16 weeks
        balance_reset_annually=False,
        requires_hr_approval=True,
        requires_documentation=True,
        required_documents=["Adoption papers", "Court order"],
        minimum_notice_days=7,
        max_days_per_request=112,
        notes="16 weeks (112 days) paid adoptive leave",
    ),
    PolicyCreate(
        leave_type="takaba",
        display_name="Takaba Leave",
        description="Takaba leave for eligible employees",
        has_balance_limit=True,
        max_days_per_year=112,
        balance_reset_annually=False,
        requires_hr_approval=True,
        minimum_notice_days=7,
        max_days_per_request=112,
        notes="16 weeks (112 days) paid takaba leave",
    ),
    PolicyCreate(
        leave_type="sabbatical",
        display_name="Sabbatical Leave",
        description="Extended leave for rest, study, or personal development",
        has_balance_limit=True,
        max_days_per_year=365,
        balance_reset_annually=False,
        requires_hr_approval=True,
        requires_documentation=True,
        required_documents=["Sabbatical proposal", "Return plan"],
        minimum_notice_days=60,
        max_days_per_request=365,
        notes="Default is fully paid; pay can be reduced through a policy update",
    ),
    PolicyCreate(
        leave_type="examination",
        display_name="Examination Leave",
        description="Leave for medical examinations, tests, and appointments",
        requires_documentation=True,
        required_documents=["Medical appointment letter/card"],
        minimum_notice_days=1,
        allow_retroactive=True,
        notes="Open leave type - no balance limit",
    ),
    PolicyCreate(
        leave_type="study",
        display_name="Study Leave",
        description="Leave for educational purposes and training",
        requires_hr_approval=True,
        requires_documentation=True,
        required_documents=["Admission letter", "Training schedule"],
        minimum_notice_days=14,
        notes="Open leave type - requires HR approval for extended study periods",
    ),
    PolicyCreate(
        leave_type="religious",
        display_name="Religious Leave",
        description="Leave for religious observances and pilgrimages",
        minimum_notice_days=7,
        notes="Open leave type - for religious observances",
    ),
    PolicyCreate(
        leave_type="casual",
        display_name="Casual Leave",
        description="Leave for casual and short-term personal matters",
        minimum_notice_days=1,
        allow_retroactive=True,
        max_days_per_request=5,
        notes="Open leave type - for short-term personal matters, max 5 days per request",
    ),
    PolicyCreate(
        leave_type="absence",
        display_name="Leave of Absence",
        description="Leave for emergencies or unforeseen challenges",
        requires_hr_approval=True,
        allow_retroactive=True,
        notes="Default is fully paid; pay can be changed through a policy update",
    ),
    PolicyCreate(
        leave_type="official-assignment",
        display_name="Official Assignment",
        description="Leave for official duties preventing facility check-in/checkout",
        requires_urgent_approval=True,
        urgent_approval_deadline_hours=24,
        requires_documentation=True,
        required_documents=["Official assignment letter/memo"],
        allow_retroactive=True,
        notes="Must be approved within the same day to prevent late/absent marking",
    ),
]


def seed_default_policies(repository, actor_id: str = "system") -> int:
    """Create any default policy that does not exist yet. Returns how many were created."""
    created = 0
    for data in DEFAULT_POLICIES:
        try:
            repository.create(data, actor_id=actor_id)
        except DuplicatePolicyError:
            logger.info(f"Policy already exists for {data.leave_type.value}, skipping")
            continue
        created += 1
    logger.info(f"Leave policy seeding complete: {created} created")
    return created

"""
Leave policy storage.

One ``LeavePolicy`` row per leave type, with facility overrides and
grade-level rules kept as child rows. The resolution logic never reads these
objects directly; the repository converts them to ``PolicySnapshot`` values.
"""
from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
from leave_engine.database import Base


class LeaveType(str, enum.Enum):
    ANNUAL = "annual"
    MATERNITY = "maternity"
    ADOPTIVE = "adoptive"
    EXAMINATION = "examination"
    TAKABA = "takaba"
    SABBATICAL = "sabbatical"
    STUDY = "study"
    RELIGIOUS = "religious"
    CASUAL = "casual"
    ABSENCE = "absence"
    OFFICIAL_ASSIGNMENT = "official-assignment"


class LeavePolicy(Base):
    __tablename__ = "leave_policies"

    id = Column(Integer, primary_key=True, index=True)
    leave_type = Column(String, unique=True, index=True, nullable=False)

    # Display
    display_name = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")

    # Financial
    is_paid = Column(Boolean, default=True, nullable=False)
    salary_percentage = Column(Integer, default=100, nullable=False)  # 100 = full pay, 0 = unpaid

    # Balance management (0 = unlimited)
    has_balance_limit = Column(Boolean, default=False, nullable=False)
    max_days_per_year = Column(Integer, default=0, nullable=False)
    max_days_lifetime = Column(Integer, default=0, nullable=False)
    balance_reset_annually = Column(Boolean, default=True, nullable=False)

    # Approval
    requires_approval = Column(Boolean, default=True, nullable=False)
    requires_manager_approval = Column(Boolean, default=True, nullable=False)
    requires_hr_approval = Column(Boolean, default=False, nullable=False)
    requires_urgent_approval = Column(Boolean, default=False, nullable=False)
    urgent_approval_deadline_hours = Column(Integer, default=24, nullable=False)

    # Documentation
    requires_documentation = Column(Boolean, default=False, nullable=False)
    required_documents = Column(JSON, default=list, nullable=False)

    # Notice period
    minimum_notice_days = Column(Integer, default=0, nullable=False)
    allow_retroactive = Column(Boolean, default=False, nullable=False)

    # Duration constraints (0 = no limit)
    min_days_per_request = Column(Integer, default=1, nullable=False)
    max_days_per_request = Column(Integer, default=0, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)

    # Audit trail
    policy_version = Column(Integer, default=1, nullable=False)
    effective_date = Column(DateTime(timezone=True), server_default=func.now())
    last_updated_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    facility_overrides = relationship(
        "FacilityOverride",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="FacilityOverride.id",
        lazy="selectin",
    )
    grade_level_rules = relationship(
        "GradeLevelRule",
        back_populates="policy",
        cascade="all, delete-orphan",
        order_by="GradeLevelRule.position",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_leave_policies_type_active", "leave_type", "is_active"),
    )

    def __repr__(self):
        return f"<LeavePolicy {self.leave_type} v{self.policy_version}>"


class FacilityOverride(Base):
    __tablename__ = "leave_policy_facility_overrides"

    id = Column(Integer, primary_key=True, index=True)
    policy_id = Column(Integer, ForeignKey("leave_policies.id", ondelete="CASCADE"), nullable=False)
    facility_id = Column(String, nullable=False, index=True)

    # NULL means "inherit from the base policy"
    is_paid = Column(Boolean, nullable=True)
    salary_percentage = Column(Integer, nullable=True)
    max_days_per_year = Column(Integer, nullable=True)
    requires_hr_approval = Column(Boolean, nullable=True)

    policy = relationship("LeavePolicy", back_populates="facility_overrides")

    __table_args__ = (
        UniqueConstraint("policy_id", "facility_id", name="uq_facility_override_policy_facility"),
    )


class GradeLevelRule(Base):
    __tablename__ = "leave_policy_grade_rules"

    id = Column(Integer, primary_key=True, index=True)
    policy_id = Column(Integer, ForeignKey("leave_policies.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)  # declaration order, first match wins
    min_grade_level = Column(Integer, nullable=False)
    max_grade_level = Column(Integer, nullable=False)
    max_days_per_year = Column(Integer, nullable=True)
    salary_percentage = Column(Integer, nullable=True)

    policy = relationship("LeavePolicy", back_populates="grade_level_rules")


class LeavePolicyHistory(Base):
    """Append-only record of every policy mutation."""
    __tablename__ = "leave_policy_history"

    id = Column(Integer, primary_key=True, index=True)
    leave_type = Column(String, index=True, nullable=False)
    policy_version = Column(Integer, nullable=False)
    action = Column(String, nullable=False)  # create | update | facility_override
    changes = Column(JSON, default=dict, nullable=False)
    changed_by = Column(String, nullable=True)
    changed_at = Column(DateTime(timezone=True), server_default=func.now())

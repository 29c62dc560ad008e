from sqlalchemy import Column, Integer, String, Date, Float, ForeignKey, DateTime, Boolean, Text, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from leave_engine.database import Base
import enum


class LeaveStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    AUTO_APPROVED = "auto-approved"
    REJECTED = "rejected"


GRANTED_STATUSES = (LeaveStatus.APPROVED.value, LeaveStatus.AUTO_APPROVED.value)


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    facility_id = Column(String, index=True, nullable=True)
    grade_level = Column(Integer, nullable=True)
    leave_type = Column(String, index=True, nullable=False)

    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    days_count = Column(Float, nullable=False)  # inclusive of both endpoints
    reason = Column(String(500), nullable=False)

    status = Column(String, default=LeaveStatus.PENDING.value, index=True, nullable=False)
    is_retroactive = Column(Boolean, default=False, nullable=False)

    # Urgent approval SLA (advisory, enforcement belongs to the caller)
    requires_urgent_approval = Column(Boolean, default=False, nullable=False)
    urgent_deadline = Column(DateTime(timezone=True), nullable=True)

    submitted_by = Column(String, nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=False)
    approved_by = Column(String, nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    manager_notes = Column(Text, nullable=True)

    balance_deduction = Column(Float, default=0.0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    attachments = relationship(
        "LeaveAttachment",
        back_populates="leave_request",
        cascade="all, delete-orphan",
        order_by="LeaveAttachment.id",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_leave_requests_employee_start", "employee_id", "start_date"),
        Index("ix_leave_requests_facility_status", "facility_id", "status"),
        Index("ix_leave_requests_type_status", "leave_type", "status"),
    )


class LeaveAttachment(Base):
    __tablename__ = "leave_request_attachments"

    id = Column(Integer, primary_key=True, index=True)
    leave_request_id = Column(Integer, ForeignKey("leave_requests.id", ondelete="CASCADE"), nullable=False)
    file_name = Column(String, nullable=False)
    file_url = Column(String, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), server_default=func.now())

    leave_request = relationship("LeaveRequest", back_populates="attachments")

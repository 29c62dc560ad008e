from sqlalchemy import Column, Integer, String, Float, UniqueConstraint
from leave_engine.database import Base

# period_year used for balances that never reset
LIFETIME_PERIOD = 0


class LeaveBalance(Base):
    __tablename__ = "leave_balances"

    id = Column(Integer, primary_key=True, index=True)
    employee_id = Column(String, index=True, nullable=False)
    leave_type = Column(String, index=True, nullable=False)
    period_year = Column(Integer, nullable=False, default=LIFETIME_PERIOD)
    total_days = Column(Float, default=0.0, nullable=False)  # cap in force, 0 = unlimited
    used_days = Column(Float, default=0.0, nullable=False)

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type", "period_year", name="uq_leave_balance_bucket"),
    )

    @property
    def remaining_days(self):
        if not self.total_days:
            return None
        return max(self.total_days - self.used_days, 0.0)

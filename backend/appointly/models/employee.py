from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, JSON, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from appointly.core.database import Base
from appointly.services.scheduling import WeeklySchedule


class Employee(Base):
    __tablename__ = "employees"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    phone = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # {"monday": {"start": "09:00", "end": "18:00"}, ...}; a missing day means not working
    work_schedule = Column(JSON, default=dict)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    business = relationship("Business", backref="employees")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def schedule(self) -> WeeklySchedule:
        # Read path: a malformed day counts as a day off instead of failing the tenant
        return WeeklySchedule.from_mapping(self.work_schedule, strict=False, owner=f"employee {self.id}")

    def __repr__(self):
        return f"<Employee(id={self.id}, name={self.full_name})>"

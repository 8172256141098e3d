from sqlalchemy import Column, String, DateTime, Numeric, ForeignKey, Text, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from appointly.core.database import Base


class AppointmentStatus:
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELED = "canceled"
    NO_SHOW = "no_show"

    ALL = (SCHEDULED, CONFIRMED, COMPLETED, CANCELED, NO_SHOW)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_employee_start", "employee_id", "start_at"),
        Index("idx_appointments_business_start", "business_id", "start_at"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    # Nullable at the storage level only; the booking transaction always assigns one
    employee_id = Column(Uuid, ForeignKey("employees.id"), nullable=True)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False)
    customer_package_id = Column(Uuid, ForeignKey("customer_packages.id"), nullable=True)

    # Interval [start_at, end_at)
    start_at = Column(DateTime, nullable=False)
    end_at = Column(DateTime, nullable=False)

    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED)
    confirmation_token = Column(String, nullable=False, unique=True)
    customer_response = Column(String, nullable=True)  # confirmed, declined
    customer_confirmed_at = Column(DateTime, nullable=True)
    canceled_at = Column(DateTime, nullable=True)

    # Revenue
    price = Column(Numeric(10, 2), nullable=True)

    # Notes
    customer_notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    business = relationship("Business", backref="appointments")
    employee = relationship("Employee")
    service = relationship("Service")
    customer = relationship("Customer", backref="appointments")

    def __repr__(self):
        return f"<Appointment(id={self.id}, employee={self.employee_id}, start={self.start_at})>"

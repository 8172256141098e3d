from sqlalchemy import Column, String, Integer, Date, Time, DateTime, ForeignKey, Text, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from appointly.core.database import Base


class WaitlistStatus:
    WAITING = "waiting"
    NOTIFIED = "notified"
    BOOKED = "booked"
    EXPIRED = "expired"
    CANCELED = "canceled"

    ALL = (WAITING, NOTIFIED, BOOKED, EXPIRED, CANCELED)
    TERMINAL = (BOOKED, EXPIRED, CANCELED)


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"
    __table_args__ = (
        Index("idx_waitlist_business_service_status", "business_id", "service_id", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=False)
    employee_id = Column(Uuid, ForeignKey("employees.id"), nullable=True)  # preference only
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=True)

    # Customer identity as entered; a customer row may not exist yet
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=True)
    customer_phone = Column(String, nullable=True)

    preferred_date_from = Column(Date, nullable=False)
    preferred_date_to = Column(Date, nullable=False)
    preferred_time_from = Column(Time, nullable=True)
    preferred_time_to = Column(Time, nullable=True)

    status = Column(String, nullable=False, default=WaitlistStatus.WAITING)
    priority = Column(Integer, nullable=False, default=0)
    notified_at = Column(DateTime, nullable=True)
    notification_count = Column(Integer, nullable=False, default=0)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    service = relationship("Service")

    def __repr__(self):
        return f"<WaitlistEntry(id={self.id}, customer={self.customer_name}, status={self.status})>"

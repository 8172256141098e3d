from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint, Uuid
from datetime import datetime
import uuid
from appointly.core.database import Base


class Customer(Base):
    __tablename__ = "customers"
    # One row per identity within a tenant; the booking upsert relies on these
    __table_args__ = (
        UniqueConstraint("business_id", "email", name="uq_customers_business_email"),
        UniqueConstraint("business_id", "phone", name="uq_customers_business_phone"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)

    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    email = Column(String, nullable=True)  # stored lower-cased
    phone = Column(String, nullable=True)  # stored without spaces/dashes/parentheses

    marketing_consent = Column(Boolean, default=False, nullable=False)
    sms_consent = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def __repr__(self):
        return f"<Customer(id={self.id}, name={self.full_name})>"

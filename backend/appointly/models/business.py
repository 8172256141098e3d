from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from datetime import datetime
import uuid
from appointly.core.database import Base

class Business(Base):
    """A tenant: one clinic, salon or restaurant."""

    __tablename__ = "businesses"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String, nullable=False)
    slug = Column(String, unique=True, nullable=False)
    industry = Column(String, default="salon")
    timezone = Column(String, default="Europe/Berlin")

    # Contact details shown in confirmations
    email = Column(String, nullable=True)
    contact_phone = Column(String, nullable=True)
    whatsapp_number = Column(String, nullable=True)
    address = Column(String, nullable=True)
    city = Column(String, nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def full_address(self) -> str | None:
        parts = [part for part in (self.address, self.city) if part]
        return ", ".join(parts) or None

    def __repr__(self):
        return f"<Business(id={self.id}, name={self.name})>"

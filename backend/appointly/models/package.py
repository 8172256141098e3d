from sqlalchemy import (
    Column,
    String,
    Integer,
    Numeric,
    Boolean,
    DateTime,
    ForeignKey,
    Text,
    Index,
    Uuid,
    CheckConstraint,
)
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from appointly.core.database import Base


class PackageType:
    MULTIUSE = "multiuse"  # N uses of one service
    BUNDLE = "bundle"  # a fixed set of services


class CustomerPackageStatus:
    ACTIVE = "active"
    FULLY_USED = "fully_used"
    EXPIRED = "expired"
    CANCELED = "canceled"
    REFUNDED = "refunded"

    ALL = (ACTIVE, FULLY_USED, EXPIRED, CANCELED, REFUNDED)


class Package(Base):
    """A sellable bundle of prepaid credits (the definition, not a sale)."""

    __tablename__ = "packages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    package_type = Column(String, nullable=False, default=PackageType.MULTIUSE)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=True)  # multiuse only
    total_uses = Column(Integer, nullable=False, default=1)

    original_price = Column(Numeric(10, 2), nullable=False, default=0)
    sale_price = Column(Numeric(10, 2), nullable=False, default=0)

    validity_days = Column(Integer, nullable=True)
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    max_purchases = Column(Integer, nullable=True)
    max_per_customer = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    items = relationship("PackageItem", backref="package", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Package(id={self.id}, name={self.name}, uses={self.total_uses})>"


class PackageItem(Base):
    __tablename__ = "package_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    package_id = Column(Uuid, ForeignKey("packages.id"), nullable=False, index=True)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)


class CustomerPackage(Base):
    """Ledger entry: one sold package and its remaining credits."""

    __tablename__ = "customer_packages"
    __table_args__ = (
        CheckConstraint(
            "uses_remaining >= 0 AND uses_remaining <= total_uses",
            name="ck_customer_packages_uses_range",
        ),
        Index("idx_customer_packages_customer_package", "customer_id", "package_id"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid, ForeignKey("businesses.id"), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=False)
    package_id = Column(Uuid, ForeignKey("packages.id"), nullable=False)

    purchase_price = Column(Numeric(10, 2), nullable=False, default=0)
    purchased_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=True)

    total_uses = Column(Integer, nullable=False)
    uses_remaining = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=CustomerPackageStatus.ACTIVE)

    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    package = relationship("Package")

    def __repr__(self):
        return (
            f"<CustomerPackage(id={self.id}, remaining={self.uses_remaining}/{self.total_uses}, "
            f"status={self.status})>"
        )


class PackageRedemption(Base):
    """Append-only audit row; exactly one per consumed credit."""

    __tablename__ = "package_redemptions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    customer_package_id = Column(Uuid, ForeignKey("customer_packages.id"), nullable=False, index=True)
    appointment_id = Column(Uuid, ForeignKey("appointments.id"), nullable=True)
    service_id = Column(Uuid, ForeignKey("services.id"), nullable=True)
    redeemed_by = Column(String, nullable=True)
    notes = Column(Text, nullable=True)
    redeemed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    def __repr__(self):
        return f"<PackageRedemption(id={self.id}, customer_package={self.customer_package_id})>"

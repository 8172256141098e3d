from appointly.models.business import Business
from appointly.models.service import Service
from appointly.models.employee import Employee
from appointly.models.customer import Customer
from appointly.models.appointment import Appointment, AppointmentStatus
from appointly.models.waitlist import WaitlistEntry, WaitlistStatus
from appointly.models.package import (
    CustomerPackage,
    CustomerPackageStatus,
    Package,
    PackageItem,
    PackageRedemption,
    PackageType,
)

__all__ = [
    "Business",
    "Service",
    "Employee",
    "Customer",
    "Appointment",
    "AppointmentStatus",
    "WaitlistEntry",
    "WaitlistStatus",
    "Package",
    "PackageItem",
    "PackageType",
    "CustomerPackage",
    "CustomerPackageStatus",
    "PackageRedemption",
]

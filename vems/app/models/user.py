"""
User database model.

Users are employees of the organisation. Drivers and transport managers are
users too; the driver-specific columns are simply left empty for everybody
else.
"""

from datetime import date
from typing import Optional
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Float, Text, ForeignKey
from sqlalchemy.sql import func
from vems.app.core.config import settings
from vems.app.db.session import Base
from vems.app.models.enums import (
    db_enum, UserType, UserStatus, DriverStatus, LicenseClass, BloodGroup, DRIVER_USER_TYPES,
)


class LicenseStatus:
    NOT_PROVIDED = "not_provided"
    EXPIRED = "expired"
    EXPIRING_SOON = "expiring_soon"
    VALID = "valid"


class User(Base):
    """
    User model for authentication, staff records and driver profiles.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identity
    name = Column(String(255), nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=True)
    employee_id = Column(String(50), unique=True, index=True, nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_superuser = Column(Boolean, default=False, nullable=False)

    # Contact
    official_phone = Column(String(20), nullable=True)
    personal_phone = Column(String(20), nullable=True)
    whatsapp_id = Column(String(50), nullable=True)
    emergency_contact_name = Column(String(255), nullable=True)
    emergency_contact_relation = Column(String(100), nullable=True)
    emergency_phone = Column(String(20), nullable=True)

    # Documents
    nid_number = Column(String(50), unique=True, nullable=True)
    passport_number = Column(String(50), nullable=True)
    driving_license_no = Column(String(50), nullable=True, index=True)
    license_class = Column(db_enum(LicenseClass, length=2), nullable=True)
    license_issue_date = Column(Date, nullable=True)
    license_expiry_date = Column(Date, nullable=True)

    # Employment
    user_type = Column(db_enum(UserType), default=UserType.EMPLOYEE, nullable=False, index=True)
    department_id = Column(Integer, ForeignKey("departments.id", ondelete="SET NULL"), nullable=True, index=True)
    blood_group = Column(db_enum(BloodGroup, length=3), nullable=True)
    image = Column(String(255), nullable=True)
    photo = Column(String(255), nullable=True)
    status = Column(db_enum(UserStatus), default=UserStatus.ACTIVE, nullable=False, index=True)
    joining_date = Column(Date, nullable=True)
    probation_end_date = Column(Date, nullable=True)
    area = Column(String(255), nullable=True)
    present_address = Column(Text, nullable=True)
    permanent_address = Column(Text, nullable=True)

    # Driver performance
    total_distance_covered = Column(Float, default=0, nullable=False)
    total_trips_completed = Column(Integer, default=0, nullable=False)
    average_rating = Column(Float, default=0, nullable=False)
    driver_status = Column(db_enum(DriverStatus), nullable=True, index=True)

    # Login tracking
    last_login_at = Column(DateTime(timezone=True), nullable=True)
    last_login_ip = Column(String(50), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_driver(self) -> bool:
        """Drivers and transport managers with a licence on file."""
        return self.user_type in DRIVER_USER_TYPES and bool(self.driving_license_no)

    def license_status(self, today: Optional[date] = None) -> str:
        if not self.driving_license_no or not self.license_expiry_date:
            return LicenseStatus.NOT_PROVIDED
        today = today or date.today()
        days_left = (self.license_expiry_date - today).days
        if days_left < 0:
            return LicenseStatus.EXPIRED
        if days_left <= settings.license_expiring_days:
            return LicenseStatus.EXPIRING_SOON
        return LicenseStatus.VALID

    def can_drive(self, today: Optional[date] = None) -> bool:
        """True when the user is a driver who may be sent on a trip right now."""
        if not self.is_driver or not self.is_active:
            return False
        if self.driver_status != DriverStatus.AVAILABLE:
            return False
        return self.license_status(today) != LicenseStatus.EXPIRED

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', email='{self.email}', type='{self.user_type}')>"

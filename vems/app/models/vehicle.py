"""
Vehicle database model.

Vehicles are supplied by a vendor and normally have a regular driver. Legal
documents (tax token, fitness certificate, insurance) carry a renewal date
and an alert flag; a vehicle reports a document as expiring once the date is
within ``alert_days_before`` days.
"""

from datetime import date
from typing import Optional, List, Dict, Any
from sqlalchemy import Column, Integer, String, Boolean, Date, DateTime, Float, Text, ForeignKey
from sqlalchemy.sql import func
from vems.app.core.config import settings
from vems.app.db.session import Base
from vems.app.models.enums import db_enum, VehicleType, RentalType, VehicleStatus, FuelType, InsuranceType

# (type, display name, date column, alert flag column)
TRACKED_DOCUMENTS = (
    ("tax_token", "Tax Token", "tax_token_last_date", "tax_token_alert_enabled"),
    ("fitness_certificate", "Fitness Certificate", "fitness_certificate_last_date", "fitness_alert_enabled"),
    ("insurance", "Insurance", "insurance_last_date", "insurance_alert_enabled"),
)


class Vehicle(Base):
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Identification
    brand = Column(String(255), nullable=False, index=True)
    model = Column(String(255), nullable=False)
    color = Column(String(100), nullable=True)
    registration_number = Column(String(100), unique=True, nullable=False, index=True)
    vehicle_type = Column(db_enum(VehicleType), default=VehicleType.SEDAN, nullable=False)
    rental_type = Column(db_enum(RentalType), default=RentalType.POOL, nullable=False)
    capacity = Column(Integer, default=4, nullable=False)

    # Ownership and assignment
    vendor_id = Column(Integer, ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True, index=True)
    driver_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    status = Column(db_enum(VehicleStatus), default=VehicleStatus.AVAILABLE, nullable=False)

    # Legal documents
    tax_token_last_date = Column(Date, nullable=True)
    tax_token_number = Column(String(100), nullable=True)
    fitness_certificate_last_date = Column(Date, nullable=True)
    fitness_certificate_number = Column(String(100), nullable=True)
    insurance_type = Column(db_enum(InsuranceType), nullable=True)
    insurance_last_date = Column(Date, nullable=True)
    insurance_policy_number = Column(String(100), nullable=True)
    insurance_company = Column(String(255), nullable=True)
    registration_certificate_number = Column(String(100), nullable=True)

    # Registered owner
    owner_name = Column(String(255), nullable=True)
    owner_address = Column(Text, nullable=True)
    owner_phone = Column(String(20), nullable=True)
    owner_email = Column(String(255), nullable=True)
    owner_nid = Column(String(50), nullable=True)

    # Technical details
    manufacture_year = Column(Integer, nullable=True)
    engine_number = Column(String(100), nullable=True)
    chassis_number = Column(String(100), nullable=True)
    fuel_type = Column(db_enum(FuelType), nullable=True)

    # Document alerts
    tax_token_alert_enabled = Column(Boolean, default=True, nullable=False)
    fitness_alert_enabled = Column(Boolean, default=True, nullable=False)
    insurance_alert_enabled = Column(Boolean, default=True, nullable=False)
    alert_days_before = Column(Integer, default=settings.document_alert_days, nullable=False)

    # Parking
    parking_address = Column(Text, nullable=True)
    parking_latitude = Column(Float, nullable=True)
    parking_longitude = Column(Float, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def expiring_documents(self, today: Optional[date] = None) -> List[Dict[str, Any]]:
        """
        List documents whose renewal date falls inside the alert window.

        Documents already past their date are included with a negative
        ``days_left``.
        """
        today = today or date.today()
        window = self.alert_days_before if self.alert_days_before is not None else settings.document_alert_days
        documents = []
        for doc_type, name, date_attr, flag_attr in TRACKED_DOCUMENTS:
            doc_date = getattr(self, date_attr)
            if not getattr(self, flag_attr) or doc_date is None:
                continue
            days_left = (doc_date - today).days
            if days_left <= window:
                documents.append({
                    "type": doc_type,
                    "name": name,
                    "date": doc_date,
                    "days_left": days_left,
                })
        return documents

    def has_expiring_documents(self, today: Optional[date] = None) -> bool:
        return bool(self.expiring_documents(today))

    def __repr__(self):
        return f"<Vehicle(id={self.id}, registration='{self.registration_number}', driver_id={self.driver_id})>"

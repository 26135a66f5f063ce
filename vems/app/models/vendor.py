"""
Vendor and vendor contact person models.

Vendors supply rental vehicles and services. Each vendor keeps a list of
contact persons, one of which may be flagged primary.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, ForeignKey
from sqlalchemy.sql import func
from vems.app.db.session import Base
from vems.app.models.enums import db_enum, ActiveStatus


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    address = Column(Text, nullable=True)
    status = Column(db_enum(ActiveStatus), default=ActiveStatus.ACTIVE, nullable=False, index=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)

    # Compliance documents (number + stored file name)
    trade_license = Column(String(255), nullable=True)
    trade_license_file = Column(String(255), nullable=True)
    tin = Column(String(255), nullable=True)
    tin_file = Column(String(255), nullable=True)
    bin = Column(String(255), nullable=True)
    bin_file = Column(String(255), nullable=True)
    tax_return = Column(String(255), nullable=True)
    tax_return_file = Column(String(255), nullable=True)
    bank_details = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Vendor(id={self.id}, name='{self.name}')>"


class VendorContactPerson(Base):
    __tablename__ = "vendor_contact_persons"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    position = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    email = Column(String(255), nullable=True)
    is_primary = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<VendorContactPerson(id={self.id}, vendor_id={self.vendor_id}, name='{self.name}')>"

"""
Enumerations shared by models and schemas.

Values are the lowercase strings exposed over the API; they are also what is
stored in the database (see ``db_enum``).
"""

import enum
from sqlalchemy import Enum


def db_enum(enum_cls, length: int = 32) -> Enum:
    """Column type storing an enum by its value rather than its member name."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [member.value for member in members],
        native_enum=False,
        length=length,
    )


class UserType(str, enum.Enum):
    EMPLOYEE = "employee"
    DRIVER = "driver"
    TRANSPORT_MANAGER = "transport_manager"
    ADMIN = "admin"


# User types that may be assigned to drive a vehicle
DRIVER_USER_TYPES = (UserType.DRIVER, UserType.TRANSPORT_MANAGER)


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class DriverStatus(str, enum.Enum):
    AVAILABLE = "available"
    ON_TRIP = "on_trip"
    ON_LEAVE = "on_leave"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class LicenseClass(str, enum.Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"


class BloodGroup(str, enum.Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class ActiveStatus(str, enum.Enum):
    """Two-state status used by vendors and user groups."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class VehicleType(str, enum.Enum):
    SEDAN = "sedan"
    SUV = "suv"
    VAN = "van"
    MICROBUS = "microbus"
    COASTER = "coaster"
    BUS = "bus"
    PICKUP = "pickup"
    TRUCK = "truck"
    OTHER = "other"


class RentalType(str, enum.Enum):
    OWN = "own"
    POOL = "pool"
    RENTAL = "rental"
    ADHOC = "adhoc"
    SUPPORT = "support"


class VehicleStatus(str, enum.Enum):
    AVAILABLE = "available"
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    MAINTENANCE = "maintenance"
    OUT_OF_SERVICE = "out_of_service"


class FuelType(str, enum.Enum):
    PETROL = "petrol"
    DIESEL = "diesel"
    CNG = "cng"
    ELECTRIC = "electric"
    HYBRID = "hybrid"


class InsuranceType(str, enum.Enum):
    FIRST_PARTY = "1st_party"
    THIRD_PARTY = "3rd_party"
    COMPREHENSIVE = "comprehensive"


class TripStatus(str, enum.Enum):
    """
    Trip workflow status.

    pending -> approved -> (assigned) -> in_progress -> completed,
    with rejected and cancelled as terminal side exits.
    """
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ScheduleType(str, enum.Enum):
    PICK_AND_DROP = "pick-and-drop"
    ENGINEER = "engineer"
    TRAINING = "training"
    ADHOC = "adhoc"
    REPOSITION = "reposition"


class TripPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class PassengerStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    BOARDED = "boarded"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class AssignmentReason(str, enum.Enum):
    """Why a vehicle was put on a trip."""
    INITIAL = "initial"
    DAMAGED = "damaged"
    MAINTENANCE = "maintenance"
    BREAKDOWN = "breakdown"
    REPLACEMENT = "replacement"
    OTHER = "other"

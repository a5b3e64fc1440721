"""
Ontology objects - persistent entities of the booking & folio core
Inventory (Property, RoomType, Room), reservations and the folio ledger
"""
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from sqlalchemy import (
    Column, Integer, String, DateTime, Date, ForeignKey, Text,
    Enum as SQLEnum, Boolean, Numeric, UniqueConstraint, Index
)
from sqlalchemy.orm import relationship
from hotel_core.database import Base


MONEY = Numeric(12, 2)
RATE = Numeric(6, 4)


# ============== Enums ==============

class RoomStatus(str, Enum):
    """Room status"""
    VACANT = "vacant"
    OCCUPIED = "occupied"
    DIRTY = "dirty"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out_of_order"


class ReservationStatus(str, Enum):
    """Reservation status"""
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class BookingSource(str, Enum):
    """Where the booking came from"""
    DIRECT = "direct"
    PHONE = "phone"
    WALK_IN = "walk_in"
    WEBSITE = "website"
    OTA = "ota"
    CORPORATE = "corporate"
    TRAVEL_AGENT = "travel_agent"
    OTHER = "other"


class FolioStatus(str, Enum):
    """Folio status"""
    OPEN = "open"
    CLOSED = "closed"


class FolioItemType(str, Enum):
    """Folio charge line type"""
    ROOM_CHARGE = "room_charge"
    FOOD_BEVERAGE = "food_beverage"
    LAUNDRY = "laundry"
    MINIBAR = "minibar"
    SPA = "spa"
    PARKING = "parking"
    TELEPHONE = "telephone"
    INTERNET = "internet"
    MISCELLANEOUS = "miscellaneous"
    TAX = "tax"
    SERVICE_CHARGE = "service_charge"
    DISCOUNT = "discount"
    DEPOSIT = "deposit"


class PaymentMethod(str, Enum):
    """Payment method"""
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


# Rooms that can be handed to a guest (dirty rooms are cleaned before arrival)
ASSIGNABLE_ROOM_STATUSES = (RoomStatus.VACANT, RoomStatus.DIRTY)

# Rooms withdrawn from sale whatever the dates
OUT_OF_SERVICE_ROOM_STATUSES = (RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_ORDER)

# Reservations that hold a claim on inventory
ACTIVE_RESERVATION_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN)


# ============== Inventory ==============

class Property(Base):
    """
    Property (hotel) - owned by property configuration
    tax_rate / service_charge_rate are fractions, e.g. 0.10
    """
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    tax_rate = Column(RATE, default=0)
    service_charge_rate = Column(RATE, default=0)
    currency = Column(String(3), default="USD")
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    room_types = relationship("RoomType", back_populates="hotel")
    rooms = relationship("Room", back_populates="hotel")


class RoomType(Base):
    """Room type"""
    __tablename__ = "room_types"
    __table_args__ = (
        UniqueConstraint("property_id", "code", name="uq_room_type_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    name = Column(String(50), nullable=False)
    code = Column(String(20), nullable=False)
    base_rate = Column(MONEY, nullable=False)
    max_occupancy = Column(Integer, default=2)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    hotel = relationship("Property", back_populates="room_types")
    rooms = relationship("Room", back_populates="room_type")


class Room(Base):
    """
    Physical room
    status is contended by booking (read) and check-in/out (write)
    """
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("property_id", "room_number", name="uq_room_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False, index=True)
    room_number = Column(String(10), nullable=False)
    floor = Column(Integer, default=1)
    status = Column(SQLEnum(RoomStatus), default=RoomStatus.VACANT, nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    hotel = relationship("Property", back_populates="rooms")
    room_type = relationship("RoomType", back_populates="rooms")
    lines = relationship("ReservationRoomLine", back_populates="room")


# ============== Reservations ==============

class Reservation(Base):
    """
    Reservation - a booked stay over the half-open range [check_in_date, check_out_date)
    """
    __tablename__ = "reservations"
    __table_args__ = (
        UniqueConstraint("property_id", "confirmation_number", name="uq_confirmation_number"),
        Index("ix_reservation_dates", "property_id", "check_in_date", "check_out_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    guest_id = Column(String(64), nullable=False, index=True)  # opaque guest identity
    confirmation_number = Column(String(32), nullable=False)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    adults = Column(Integer, default=1)
    children = Column(Integer, default=0)
    source = Column(SQLEnum(BookingSource), default=BookingSource.DIRECT)
    status = Column(SQLEnum(ReservationStatus), default=ReservationStatus.CONFIRMED, nullable=False)
    total_amount = Column(MONEY, default=0)
    special_requests = Column(Text)
    internal_notes = Column(Text)
    cancel_reason = Column(Text)
    actual_check_in = Column(DateTime)
    actual_check_out = Column(DateTime)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    created_by = Column(String(64))

    hotel = relationship("Property")
    lines = relationship(
        "ReservationRoomLine", back_populates="reservation",
        order_by="ReservationRoomLine.id", cascade="all, delete-orphan"
    )
    folio = relationship("Folio", back_populates="reservation", uselist=False)

    @property
    def nights(self) -> int:
        return (self.check_out_date - self.check_in_date).days


class ReservationRoomLine(Base):
    """
    One room-type / room commitment within a reservation
    room_id stays NULL until pre-assignment or check-in
    """
    __tablename__ = "reservation_room_lines"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False, index=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True, index=True)
    rate_per_night = Column(MONEY, nullable=False)
    adults = Column(Integer, default=1)
    children = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservation = relationship("Reservation", back_populates="lines")
    room_type = relationship("RoomType")
    room = relationship("Room", back_populates="lines")


# ============== Folio ledger ==============

class Folio(Base):
    """
    Folio - per-stay financial ledger
    The aggregate columns are a projection of the non-voided items and the payments,
    rewritten in the same transaction as every appended event:
        total_amount = subtotal + tax_amount + service_charge
        balance      = total_amount - paid_amount
    """
    __tablename__ = "folios"
    __table_args__ = (
        UniqueConstraint("property_id", "folio_number", name="uq_folio_number"),
    )

    id = Column(Integer, primary_key=True, index=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), unique=True, nullable=True)
    guest_id = Column(String(64), nullable=False)
    folio_number = Column(String(32), nullable=False)
    status = Column(SQLEnum(FolioStatus), default=FolioStatus.OPEN, nullable=False)
    subtotal = Column(MONEY, default=0, nullable=False)
    tax_amount = Column(MONEY, default=0, nullable=False)
    service_charge = Column(MONEY, default=0, nullable=False)
    total_amount = Column(MONEY, default=0, nullable=False)
    paid_amount = Column(MONEY, default=0, nullable=False)
    balance = Column(MONEY, default=0, nullable=False)
    closed_at = Column(DateTime)
    closed_by = Column(String(64))
    close_note = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    reservation = relationship("Reservation", back_populates="folio")
    items = relationship("FolioItem", back_populates="folio", order_by="FolioItem.id")
    payments = relationship("Payment", back_populates="folio", order_by="Payment.id")

    @property
    def is_open(self) -> bool:
        return self.status == FolioStatus.OPEN


class FolioItem(Base):
    """
    Charge line - append-only; a void flips the flag and keeps the row for audit
    tax_amount / service_charge are snapshotted at post time
    """
    __tablename__ = "folio_items"

    id = Column(Integer, primary_key=True, index=True)
    folio_id = Column(Integer, ForeignKey("folios.id"), nullable=False, index=True)
    item_type = Column(SQLEnum(FolioItemType), nullable=False)
    description = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(MONEY, nullable=False)
    total_price = Column(MONEY, nullable=False)
    tax_amount = Column(MONEY, default=0, nullable=False)
    service_charge = Column(MONEY, default=0, nullable=False)
    service_date = Column(Date, default=date.today)
    reference_type = Column(String(32))
    reference_id = Column(Integer)
    voided = Column(Boolean, default=False, nullable=False)
    void_reason = Column(Text)
    voided_at = Column(DateTime)
    voided_by = Column(String(64))
    created_at = Column(DateTime, default=datetime.utcnow)
    created_by = Column(String(64))

    folio = relationship("Folio", back_populates="items")

    @property
    def gross_amount(self) -> Decimal:
        return self.total_price + self.tax_amount + self.service_charge


class Payment(Base):
    """Payment - append-only"""
    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("folio_id", "reference_number", name="uq_payment_reference"),
    )

    id = Column(Integer, primary_key=True, index=True)
    folio_id = Column(Integer, ForeignKey("folios.id"), nullable=False, index=True)
    amount = Column(MONEY, nullable=False)
    method = Column(SQLEnum(PaymentMethod), nullable=False)
    reference_number = Column(String(64))
    notes = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    created_by = Column(String(64))

    folio = relationship("Folio", back_populates="payments")

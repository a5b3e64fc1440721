"""
Pydantic schemas
API request / response validation
"""
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List, Dict
from pydantic import BaseModel, Field, ConfigDict, field_validator
from hotel_core.models.ontology import (
    RoomStatus, ReservationStatus, BookingSource, FolioStatus, FolioItemType, PaymentMethod
)


# ============== Availability Schemas ==============

class AvailableRoomResponse(BaseModel):
    id: int
    room_number: str
    floor: Optional[int] = None
    room_type_id: int
    status: RoomStatus
    model_config = ConfigDict(from_attributes=True)


# ============== Reservation Schemas ==============

class RoomLineCreate(BaseModel):
    room_type_id: int
    room_id: Optional[int] = None
    rate_per_night: Optional[Decimal] = None
    adults: int = 1
    children: int = 0


class ReservationCreate(BaseModel):
    guest_id: str = Field(..., min_length=1, max_length=64)
    check_in_date: date
    check_out_date: date
    room_lines: List[RoomLineCreate] = Field(..., min_length=1)
    adults: Optional[int] = None
    children: Optional[int] = None
    source: BookingSource = BookingSource.DIRECT
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None


class RoomLineResponse(BaseModel):
    id: int
    room_type_id: int
    room_id: Optional[int] = None
    rate_per_night: Decimal
    adults: int
    children: int
    model_config = ConfigDict(from_attributes=True)


class ReservationResponse(BaseModel):
    id: int
    property_id: int
    guest_id: str
    confirmation_number: str
    check_in_date: date
    check_out_date: date
    adults: int
    children: int
    source: BookingSource
    status: ReservationStatus
    total_amount: Decimal
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None
    cancel_reason: Optional[str] = None
    actual_check_in: Optional[datetime] = None
    actual_check_out: Optional[datetime] = None
    created_at: datetime
    created_by: Optional[str] = None
    lines: List[RoomLineResponse] = []
    model_config = ConfigDict(from_attributes=True)


class BookingResponse(BaseModel):
    reservation: ReservationResponse
    folio_id: Optional[int] = None
    folio_pending: bool = False


class CheckInRequest(BaseModel):
    # line id -> room id
    assignments: Dict[int, int] = {}


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class AmendRequest(BaseModel):
    check_in_date: Optional[date] = None
    check_out_date: Optional[date] = None


class RoomChangeRequest(BaseModel):
    line_id: int
    new_room_id: int


# ============== Folio Schemas ==============

class ChargeCreate(BaseModel):
    item_type: FolioItemType
    description: str = Field(..., max_length=255)
    quantity: int = 1
    unit_price: Decimal
    tax_rate: Optional[Decimal] = None
    service_charge_rate: Optional[Decimal] = None
    service_date: Optional[date] = None


class PaymentCreate(BaseModel):
    amount: Decimal
    method: PaymentMethod
    reference_number: Optional[str] = Field(None, max_length=64)
    notes: Optional[str] = None

    @field_validator("reference_number")
    @classmethod
    def blank_reference_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class VoidRequest(BaseModel):
    reason: str


class CloseRequest(BaseModel):
    note: Optional[str] = None


class FolioItemResponse(BaseModel):
    id: int
    item_type: FolioItemType
    description: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    tax_amount: Decimal
    service_charge: Decimal
    service_date: Optional[date] = None
    reference_type: Optional[str] = None
    reference_id: Optional[int] = None
    voided: bool
    void_reason: Optional[str] = None
    voided_at: Optional[datetime] = None
    voided_by: Optional[str] = None
    created_at: datetime
    created_by: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    id: int
    folio_id: int
    amount: Decimal
    method: PaymentMethod
    reference_number: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    created_by: Optional[str] = None
    model_config = ConfigDict(from_attributes=True)


class FolioResponse(BaseModel):
    id: int
    property_id: int
    reservation_id: Optional[int] = None
    guest_id: str
    folio_number: str
    status: FolioStatus
    subtotal: Decimal
    tax_amount: Decimal
    service_charge: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    balance: Decimal
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    close_note: Optional[str] = None
    created_at: datetime
    model_config = ConfigDict(from_attributes=True)


class FolioDetailResponse(FolioResponse):
    items: List[FolioItemResponse] = []
    payments: List[PaymentResponse] = []


class FolioCloseResponse(BaseModel):
    folio: FolioResponse
    unsettled: bool


# ============== Report Schemas ==============

class ReservationStats(BaseModel):
    total: int
    arrivals_today: int
    departures_today: int
    in_house: int
    confirmed: int
    cancelled: int
    no_show: int


class FolioStats(BaseModel):
    total_open: int
    total_closed: int
    outstanding_balance: Decimal
    today_revenue: Decimal


class RoomStats(BaseModel):
    total_rooms: int
    vacant: int
    occupied: int
    dirty: int
    maintenance: int
    out_of_order: int
    occupancy_rate: float


class ReconciliationResponse(BaseModel):
    checked: int
    repaired: List[int]
    failed: List[int]

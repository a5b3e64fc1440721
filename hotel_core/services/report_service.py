"""
Report service
Read-only dashboard aggregates over reservations, folios and rooms
"""
from datetime import date, datetime, timedelta
from typing import Optional
import logging

from sqlalchemy.orm import Session

from hotel_core.models.ontology import (
    Folio, FolioStatus, Payment, Reservation, ReservationStatus, Room, RoomStatus
)
from hotel_core.services.money import ZERO, to_money

logger = logging.getLogger(__name__)


class ReportService:
    """Report service"""

    def __init__(self, db: Session):
        self.db = db

    def reservation_stats(self, property_id: int, today: Optional[date] = None) -> dict:
        """Reservation counts by status plus today's arrivals and departures"""
        today = today or date.today()
        reservations = self.db.query(Reservation).filter(
            Reservation.property_id == property_id
        ).all()

        return {
            "total": len(reservations),
            "arrivals_today": len([
                r for r in reservations
                if r.status == ReservationStatus.CONFIRMED and r.check_in_date == today
            ]),
            "departures_today": len([
                r for r in reservations
                if r.status == ReservationStatus.CHECKED_IN and r.check_out_date == today
            ]),
            "in_house": len([r for r in reservations if r.status == ReservationStatus.CHECKED_IN]),
            "confirmed": len([r for r in reservations if r.status == ReservationStatus.CONFIRMED]),
            "cancelled": len([r for r in reservations if r.status == ReservationStatus.CANCELLED]),
            "no_show": len([r for r in reservations if r.status == ReservationStatus.NO_SHOW]),
        }

    def folio_stats(self, property_id: int, today: Optional[date] = None) -> dict:
        """Open/closed counts, outstanding balance and today's takings; payment times are UTC"""
        today = today or datetime.utcnow().date()
        folios = self.db.query(Folio).filter(Folio.property_id == property_id).all()
        open_folios = [f for f in folios if f.status == FolioStatus.OPEN]

        today_start = datetime.combine(today, datetime.min.time())
        today_end = today_start + timedelta(days=1)
        payments = self.db.query(Payment).join(Folio).filter(
            Folio.property_id == property_id,
            Payment.created_at >= today_start,
            Payment.created_at < today_end
        ).all()

        return {
            "total_open": len(open_folios),
            "total_closed": len(folios) - len(open_folios),
            "outstanding_balance": to_money(sum((f.balance for f in open_folios), ZERO)),
            "today_revenue": to_money(sum((p.amount for p in payments), ZERO)),
        }

    def room_stats(self, property_id: int) -> dict:
        """Active rooms by status and the occupancy rate over sellable rooms"""
        rooms = self.db.query(Room).filter(
            Room.property_id == property_id,
            Room.is_active == True  # noqa: E712
        ).all()
        counts = {status.value: 0 for status in RoomStatus}
        for room in rooms:
            counts[room.status.value] += 1

        sellable = len(rooms) - counts[RoomStatus.OUT_OF_ORDER.value] - counts[RoomStatus.MAINTENANCE.value]
        occupied = counts[RoomStatus.OCCUPIED.value]
        occupancy_rate = (occupied / sellable * 100) if sellable > 0 else 0

        return {
            "total_rooms": len(rooms),
            **counts,
            "occupancy_rate": round(occupancy_rate, 1),
        }

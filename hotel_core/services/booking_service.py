"""
Booking orchestrator
Availability check -> reservation -> folio, as a saga with after-the-fact repair

The reservation commit and the folio commit are separate transactions. When the
folio step fails the booking still succeeds with folio_pending set, and the
reconciliation pass opens the missing folio later. Cancellations and date
amendments commit first as well; their room charge voids and deltas are derived
from reservation state, so reconcile can finish them after a failure.
"""
from dataclasses import dataclass, field
from datetime import datetime, date
from typing import Callable, List, Optional, Tuple
import logging

from sqlalchemy.orm import Session

from hotel_core.errors import ConsistencyError
from hotel_core.models.events import EventType, ReservationEventData
from hotel_core.models.ontology import (
    Folio, FolioItem, FolioItemType, FolioStatus, Reservation, ReservationStatus,
    BookingSource, ACTIVE_RESERVATION_STATUSES,
)
from hotel_core.services.availability_service import validate_range
from hotel_core.services.event_bus import event_bus, Event
from hotel_core.services.folio_service import FolioService, SEED_REFERENCE
from hotel_core.services.locks import folio_locks
from hotel_core.services.money import ZERO, to_money
from hotel_core.services.reservation_service import (
    ReservationService, ReservationRequest, LineRequest,
)

logger = logging.getLogger(__name__)


@dataclass
class BookingResult:
    reservation: Reservation
    folio: Optional[Folio] = None
    folio_pending: bool = False


@dataclass
class ReconciliationReport:
    checked: int = 0
    repaired: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)


class BookingService:
    """Booking orchestrator"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish
        self.reservation_service = ReservationService(db)
        self.folio_service = FolioService(db, event_publisher=self._publish_event)

    def _publish(self, event_type: EventType, reservation: Reservation, reason: str = "") -> None:
        self._publish_event(Event(
            event_type=event_type,
            timestamp=datetime.now(),
            data=ReservationEventData(
                reservation_id=reservation.id,
                property_id=reservation.property_id,
                confirmation_number=reservation.confirmation_number,
                guest_id=reservation.guest_id,
                status=reservation.status.value,
                reason=reason,
            ).to_dict(),
            source="booking_service"
        ))

    def _open_folio(self, reservation: Reservation, created_by: Optional[str] = None) -> Optional[Folio]:
        try:
            return self.folio_service.open_for_reservation(reservation.id, created_by=created_by)
        except Exception as e:
            self.db.rollback()
            error = ConsistencyError(
                f"reservation {reservation.confirmation_number} has no folio: {e}",
                code="folio_missing"
            )
            logger.error(str(error), exc_info=True)
            return None

    # ============== Booking ==============

    def create_reservation(self, property_id: int, guest_id: str,
                           check_in: date, check_out: date,
                           room_lines: List[LineRequest],
                           adults: Optional[int] = None,
                           children: Optional[int] = None,
                           source: BookingSource = BookingSource.DIRECT,
                           special_requests: Optional[str] = None,
                           internal_notes: Optional[str] = None,
                           created_by: Optional[str] = None) -> BookingResult:
        """
        Book one or more rooms

        All lines are admitted or none is; a conflict names the first offending line
        and nothing is written. The folio is opened once the reservation has committed.
        """
        validate_range(check_in, check_out)
        request = ReservationRequest(
            property_id=property_id,
            guest_id=guest_id,
            check_in_date=check_in,
            check_out_date=check_out,
            adults=adults,
            children=children,
            source=BookingSource(source),
            special_requests=special_requests,
            internal_notes=internal_notes,
            created_by=created_by,
        )
        reservation = self.reservation_service.create_reservation(request, room_lines)
        self._publish(EventType.RESERVATION_CREATED, reservation)

        folio = self._open_folio(reservation, created_by)
        return BookingResult(
            reservation=reservation,
            folio=folio,
            folio_pending=folio is None,
        )

    # ============== Room charges ==============

    def _seeded_items(self, folio_id: int, live_only: bool = False) -> List[FolioItem]:
        query = self.db.query(FolioItem).filter(
            FolioItem.folio_id == folio_id,
            FolioItem.reference_type == SEED_REFERENCE,
        )
        if live_only:
            query = query.filter(FolioItem.voided == False)  # noqa: E712
        return query.populate_existing().all()

    def _room_charge_gaps(self, reservation: Reservation, folio: Folio) -> List[Tuple]:
        """
        (line, missing amount) for each line whose booking room charges differ
        from rate x nights

        A room charge voided by hand still counts as posted: the operator's void
        is not something to undo.
        """
        posted = self._seeded_items(folio.id)
        gaps = []
        for line in reservation.lines:
            charged = to_money(sum(
                (item.total_price for item in posted if item.reference_id == line.id), ZERO
            ))
            missing = to_money(line.rate_per_night * reservation.nights) - charged
            if missing != ZERO:
                gaps.append((line, missing))
        return gaps

    def _room_charges_out_of_step(self, reservation: Reservation, folio: Folio) -> bool:
        if not folio.is_open:
            return False
        if reservation.status == ReservationStatus.CANCELLED:
            return bool(self._seeded_items(folio.id, live_only=True))
        if reservation.status in ACTIVE_RESERVATION_STATUSES:
            return bool(self._room_charge_gaps(reservation, folio))
        return False

    def _sync_room_charges(self, reservation: Reservation, folio: Folio,
                           operator_id: Optional[str] = None) -> None:
        """
        Bring the folio's booking room charges in line with the reservation

        Works from current state only, so running it again after a partial
        failure posts or voids just what is still missing.
        """
        with folio_locks.hold(folio.id):
            if reservation.status == ReservationStatus.CANCELLED:
                reason = f"reservation cancelled: {reservation.cancel_reason or 'no reason given'}"
                for item in self._seeded_items(folio.id, live_only=True):
                    self.folio_service.void_item(item.id, reason, voided_by=operator_id)
                return

            for line, missing in self._room_charge_gaps(reservation, folio):
                rate = to_money(line.rate_per_night)
                nights, remainder = divmod(abs(missing), rate) if rate > ZERO else (0, abs(missing))
                if nights and remainder == ZERO:
                    quantity, unit_price = int(nights), rate
                else:
                    quantity, unit_price = 1, abs(missing)
                if missing > ZERO:
                    item_type = FolioItemType.ROOM_CHARGE
                    description = f"Room charge {line.room_type.code} x {quantity} extra night(s)"
                else:
                    item_type, unit_price = FolioItemType.DISCOUNT, -unit_price
                    description = f"Stay shortened {line.room_type.code} x {quantity} night(s)"
                self.folio_service.post_charge(
                    folio.id, item_type, description,
                    quantity=quantity, unit_price=unit_price,
                    tax_rate=ZERO, service_charge_rate=ZERO,
                    reference_type=SEED_REFERENCE, reference_id=line.id,
                    created_by=operator_id,
                )

    def _settle_room_charges(self, reservation: Reservation,
                             operator_id: Optional[str] = None) -> bool:
        """Sync room charges after a committed status or date change; False leaves it to reconcile"""
        folio = self.folio_service.get_by_reservation(reservation.id)
        if folio is None:
            return True
        if not folio.is_open:
            if reservation.status in ACTIVE_RESERVATION_STATUSES and self._room_charge_gaps(reservation, folio):
                logger.warning(
                    f"Reservation {reservation.confirmation_number} changed but folio "
                    f"{folio.folio_number} is closed; room charges not adjusted"
                )
            return True
        try:
            self._sync_room_charges(reservation, folio, operator_id)
            return True
        except Exception as e:
            self.db.rollback()
            error = ConsistencyError(
                f"reservation {reservation.confirmation_number} room charges out of step "
                f"with folio {folio.folio_number}: {e}",
                code="room_charges_out_of_step"
            )
            logger.error(str(error), exc_info=True)
            return False

    # ============== Reconciliation ==============

    def reconcile(self, property_id: Optional[int] = None) -> ReconciliationReport:
        """
        Repair what a half-finished booking step left behind

        Opens the folio of every non-cancelled reservation that lacks one, then
        brings booking room charges on open folios back in line with cancelled
        or re-dated reservations. Idempotent and safe to run alongside bookings.
        checked counts the reservations found inconsistent.
        """
        query = self.db.query(Reservation).outerjoin(
            Folio, Folio.reservation_id == Reservation.id
        ).filter(
            Folio.id.is_(None),
            Reservation.status != ReservationStatus.CANCELLED
        )
        if property_id is not None:
            query = query.filter(Reservation.property_id == property_id)
        orphans = query.order_by(Reservation.id).all()

        report = ReconciliationReport(checked=len(orphans))
        for reservation in orphans:
            logger.warning(str(ConsistencyError(
                f"reservation {reservation.confirmation_number} has no folio",
                code="folio_missing"
            )))
            folio = self._open_folio(reservation)
            if folio is None:
                report.failed.append(reservation.id)
            else:
                report.repaired.append(reservation.id)

        query = self.db.query(Reservation).join(
            Folio, Folio.reservation_id == Reservation.id
        ).filter(
            Folio.status == FolioStatus.OPEN,
            Reservation.status.in_((ReservationStatus.CANCELLED,) + ACTIVE_RESERVATION_STATUSES)
        )
        if property_id is not None:
            query = query.filter(Reservation.property_id == property_id)
        for reservation in query.order_by(Reservation.id).all():
            folio = self.folio_service.get_by_reservation(reservation.id)
            if not self._room_charges_out_of_step(reservation, folio):
                continue
            report.checked += 1
            logger.warning(str(ConsistencyError(
                f"reservation {reservation.confirmation_number} is {reservation.status.value} "
                f"but folio {folio.folio_number} room charges do not match",
                code="room_charges_out_of_step"
            )))
            if self._settle_room_charges(reservation):
                report.repaired.append(reservation.id)
            else:
                report.failed.append(reservation.id)

        if report.checked:
            logger.info(
                f"Reconciliation: {len(report.repaired)} repaired, {len(report.failed)} failed"
            )
        return report

    # ============== Cancellation ==============

    def cancel_reservation(self, reservation_id: int, reason: str,
                           operator_id: Optional[str] = None,
                           property_id: Optional[int] = None) -> Reservation:
        """
        confirmed -> cancelled

        Booking room charges that are still live on an open folio are voided. The
        cancellation stands even if that fails; reconcile finishes the voids.
        """
        reason = (reason or "").strip()
        reservation = self.reservation_service.transition(
            reservation_id, ReservationStatus.CANCELLED,
            reason=reason, property_id=property_id
        )

        self._settle_room_charges(reservation, operator_id)
        logger.info(f"Reservation {reservation.confirmation_number} cancelled: {reason}")
        self._publish(EventType.RESERVATION_CANCELLED, reservation, reason)
        return reservation

    def mark_no_show(self, reservation_id: int, operator_id: Optional[str] = None,
                     property_id: Optional[int] = None) -> Reservation:
        """confirmed -> no_show; the folio is left for billing to decide"""
        reservation = self.reservation_service.transition(
            reservation_id, ReservationStatus.NO_SHOW, property_id=property_id
        )
        logger.info(f"Reservation {reservation.confirmation_number} marked no-show")
        self._publish(EventType.RESERVATION_NO_SHOW, reservation)
        return reservation

    # ============== Amendment ==============

    def amend_dates(self, reservation_id: int,
                    new_check_in: Optional[date] = None,
                    new_check_out: Optional[date] = None,
                    operator_id: Optional[str] = None,
                    property_id: Optional[int] = None) -> Reservation:
        """
        Move the stay range and post the room charge difference

        Extra nights are charged as room_charge lines; removed nights are credited
        as discount lines, since charges are append-only. A failed folio step is
        logged and left to reconcile; the new dates stand.
        """
        reservation = self.reservation_service.amend_dates(
            reservation_id, new_check_in, new_check_out, property_id
        )
        self._settle_room_charges(reservation, operator_id)
        self._publish(EventType.RESERVATION_AMENDED, reservation)
        return reservation

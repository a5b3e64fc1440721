"""
Reservation store
Owns Reservation / ReservationRoomLine and the reservation status machine

    confirmed -> checked_in -> checked_out
    confirmed -> cancelled
    confirmed -> no_show
"""
from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal
from typing import Dict, List, Optional
import logging

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hotel_core.errors import (
    ValidationError, ConflictError, InvalidStateTransition, NotFoundError
)
from hotel_core.models.ontology import (
    Property, Reservation, ReservationRoomLine, ReservationStatus, Room,
    RoomStatus, RoomType, BookingSource, ASSIGNABLE_ROOM_STATUSES,
)
from hotel_core.services.availability_service import AvailabilityService, validate_range
from hotel_core.services.locks import inventory_locks
from hotel_core.services.money import to_money

logger = logging.getLogger(__name__)

# Tries at a unique confirmation number before giving up
NUMBER_ATTEMPTS = 3


TRANSITIONS: Dict[ReservationStatus, tuple] = {
    ReservationStatus.CONFIRMED: (
        ReservationStatus.CHECKED_IN,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    ),
    ReservationStatus.CHECKED_IN: (ReservationStatus.CHECKED_OUT,),
    ReservationStatus.CHECKED_OUT: (),
    ReservationStatus.CANCELLED: (),
    ReservationStatus.NO_SHOW: (),
}


def can_transition(current: ReservationStatus, target: ReservationStatus) -> bool:
    return target in TRANSITIONS.get(current, ())


@dataclass
class LineRequest:
    """One requested room line"""
    room_type_id: int
    rate_per_night: Optional[Decimal] = None
    room_id: Optional[int] = None
    adults: int = 1
    children: int = 0


@dataclass
class ReservationRequest:
    """Reservation header fields"""
    property_id: int
    guest_id: str
    check_in_date: date
    check_out_date: date
    adults: Optional[int] = None
    children: Optional[int] = None
    source: BookingSource = BookingSource.DIRECT
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None
    created_by: Optional[str] = None


class ReservationService:
    """Reservation store"""

    def __init__(self, db: Session):
        self.db = db
        self.availability = AvailabilityService(db)

    # ============== Queries ==============

    def get_reservation(self, reservation_id: int, property_id: Optional[int] = None) -> Reservation:
        """Reservation by id; ids outside the property are reported as missing"""
        query = self.db.query(Reservation).filter(Reservation.id == reservation_id)
        if property_id is not None:
            query = query.filter(Reservation.property_id == property_id)
        reservation = query.first()
        if not reservation:
            raise NotFoundError("reservation", reservation_id)
        return reservation

    def get_by_confirmation(self, property_id: int, confirmation_number: str) -> Optional[Reservation]:
        return self.db.query(Reservation).filter(
            Reservation.property_id == property_id,
            Reservation.confirmation_number == confirmation_number
        ).first()

    def list_reservations(self, property_id: int,
                          status: Optional[ReservationStatus] = None,
                          from_date: Optional[date] = None,
                          to_date: Optional[date] = None) -> List[Reservation]:
        """Reservations of a property, optionally filtered by status and arrival window"""
        query = self.db.query(Reservation).filter(Reservation.property_id == property_id)
        if status:
            query = query.filter(Reservation.status == status)
        if from_date:
            query = query.filter(Reservation.check_in_date >= from_date)
        if to_date:
            query = query.filter(Reservation.check_in_date <= to_date)
        return query.order_by(Reservation.check_in_date, Reservation.id).all()

    def search_reservations(self, property_id: int, keyword: str) -> List[Reservation]:
        """Search by confirmation number or guest id"""
        return self.db.query(Reservation).filter(
            Reservation.property_id == property_id,
            or_(
                Reservation.confirmation_number.contains(keyword),
                Reservation.guest_id.contains(keyword)
            )
        ).order_by(Reservation.check_in_date).all()

    # ============== Creation ==============

    def _generate_confirmation_number(self, prop: Property) -> str:
        """<PROPERTY_CODE>-<YYMMDD>-<seq>, sequence per property and day"""
        prefix = f"{prop.code}-{datetime.now().strftime('%y%m%d')}-"
        count = self.db.query(Reservation).filter(
            Reservation.property_id == prop.id,
            Reservation.confirmation_number.like(f"{prefix}%")
        ).count()
        return f"{prefix}{str(count + 1).zfill(4)}"

    def _commit_numbered(self, reservation: Reservation, prop: Property) -> None:
        """
        Insert the reservation under a fresh confirmation number

        The number is only unique within one process's inventory lock; another
        process can take it first, in which case the unique constraint fires and
        the next free number is tried.
        """
        for attempt in range(1, NUMBER_ATTEMPTS + 1):
            number = self._generate_confirmation_number(prop)
            reservation.confirmation_number = number
            try:
                self.db.add(reservation)
                self.db.commit()
                return
            except IntegrityError:
                self.db.rollback()
                if self.get_by_confirmation(prop.id, number) is None:
                    raise
                logger.warning(f"Confirmation number {number} taken concurrently, attempt {attempt}")
            except Exception:
                self.db.rollback()
                raise
        raise ConflictError(
            "could not allocate a confirmation number, retry the booking",
            code="number_collision"
        )

    def _get_property(self, property_id: int) -> Property:
        prop = self.db.query(Property).filter(Property.id == property_id).first()
        if not prop or not prop.is_active:
            raise NotFoundError("property", property_id)
        return prop

    def validate_lines(self, property_id: int, lines: List[LineRequest]) -> Dict[int, RoomType]:
        """
        Shape checks on the requested lines, no availability involved

        Returns the referenced room types by id.
        """
        if not lines:
            raise ValidationError("a reservation needs at least one room line")

        room_types: Dict[int, RoomType] = {}
        seen_rooms = set()
        for index, line in enumerate(lines, start=1):
            room_type = room_types.get(line.room_type_id)
            if room_type is None:
                room_type = self.db.query(RoomType).filter(RoomType.id == line.room_type_id).first()
                if not room_type or room_type.property_id != property_id:
                    raise ValidationError(
                        f"room line {index}: room type {line.room_type_id} does not belong to this property"
                    )
                if not room_type.is_active:
                    raise ValidationError(f"room line {index}: room type {room_type.code} is inactive")
                room_types[room_type.id] = room_type

            if line.adults < 1 or line.children < 0:
                raise ValidationError(f"room line {index}: at least one adult is required")
            if line.adults + line.children > room_type.max_occupancy:
                raise ValidationError(
                    f"room line {index}: {line.adults + line.children} guests exceed "
                    f"max occupancy {room_type.max_occupancy} of {room_type.code}"
                )
            if line.rate_per_night is not None and Decimal(line.rate_per_night) < 0:
                raise ValidationError(f"room line {index}: rate per night cannot be negative")

            if line.room_id is not None:
                if line.room_id in seen_rooms:
                    raise ValidationError(f"room line {index}: room {line.room_id} requested twice")
                seen_rooms.add(line.room_id)
                room = self.db.query(Room).filter(Room.id == line.room_id).first()
                if not room or room.property_id != property_id:
                    raise ValidationError(
                        f"room line {index}: room {line.room_id} does not belong to this property"
                    )
                if room.room_type_id != line.room_type_id:
                    raise ValidationError(
                        f"room line {index}: room {room.room_number} is not of type {room_type.code}"
                    )
        return room_types

    def check_line_availability(self, request: ReservationRequest,
                                lines: List[LineRequest],
                                exclude_reservation_id: Optional[int] = None) -> None:
        """
        All-or-nothing admission check

        Pre-assigned rooms must be assignable and free for the range. Unassigned
        lines need enough in-service rooms of their type without a claim on the
        range, after pre-assignments and overlapping unassigned demand; tonight's
        room status does not matter to a stay that has not started.
        Raises ConflictError naming the first line that cannot be honoured.
        """
        check_in, check_out = request.check_in_date, request.check_out_date
        pre_assigned = {line.room_id for line in lines if line.room_id is not None}

        for index, line in enumerate(lines, start=1):
            if line.room_id is None:
                continue
            if not self.availability.is_room_available(
                line.room_id, check_in, check_out, exclude_reservation_id
            ):
                room = self.db.query(Room).filter(Room.id == line.room_id).first()
                raise ConflictError(
                    f"room line {index}: room {room.room_number} is not available "
                    f"from {check_in.isoformat()} to {check_out.isoformat()}",
                    code="room_unavailable"
                )

        # per type: (indexes of unassigned lines, indexes of pre-assigned lines)
        by_type: Dict[int, tuple] = {}
        for index, line in enumerate(lines, start=1):
            unassigned, assigned = by_type.setdefault(line.room_type_id, ([], []))
            (unassigned if line.room_id is None else assigned).append(index)

        # Rooms left after this request's pre-assignments must still cover every
        # overlapping unassigned line, existing and requested.
        for room_type_id, (unassigned, assigned) in by_type.items():
            free = [
                room for room in self.availability.unclaimed_rooms(
                    room_type_id, check_in, check_out, exclude_reservation_id
                )
                if room.id not in pre_assigned
            ]
            demand = self.availability.unassigned_demand(
                room_type_id, check_in, check_out, exclude_reservation_id
            )
            if len(free) - demand < len(unassigned):
                room_type = self.db.query(RoomType).filter(RoomType.id == room_type_id).first()
                index = unassigned[0] if unassigned else assigned[0]
                raise ConflictError(
                    f"room line {index}: no {room_type.code} room available "
                    f"from {check_in.isoformat()} to {check_out.isoformat()}",
                    code="room_unavailable"
                )

    def create_reservation(self, request: ReservationRequest,
                           lines: List[LineRequest]) -> Reservation:
        """
        Create a reservation and its room lines in one transaction

        Availability is re-checked under the property inventory lock, so two
        concurrent bookings of the same room cannot both commit.
        """
        validate_range(request.check_in_date, request.check_out_date)
        prop = self._get_property(request.property_id)
        room_types = self.validate_lines(prop.id, lines)
        nights = (request.check_out_date - request.check_in_date).days

        with inventory_locks.hold(prop.id):
            self.db.expire_all()
            self.check_line_availability(request, lines)

            rates = [
                to_money(line.rate_per_night if line.rate_per_night is not None
                         else room_types[line.room_type_id].base_rate)
                for line in lines
            ]
            total_amount = to_money(sum((rate * nights for rate in rates), Decimal("0")))

            reservation = Reservation(
                property_id=prop.id,
                guest_id=request.guest_id,
                check_in_date=request.check_in_date,
                check_out_date=request.check_out_date,
                adults=request.adults if request.adults is not None else sum(l.adults for l in lines),
                children=request.children if request.children is not None else sum(l.children for l in lines),
                source=request.source,
                special_requests=request.special_requests,
                internal_notes=request.internal_notes,
                status=ReservationStatus.CONFIRMED,
                total_amount=total_amount,
                created_by=request.created_by,
            )
            for line, rate in zip(lines, rates):
                reservation.lines.append(ReservationRoomLine(
                    room_type_id=line.room_type_id,
                    room_id=line.room_id,
                    rate_per_night=rate,
                    adults=line.adults,
                    children=line.children,
                ))

            self._commit_numbered(reservation, prop)
            self.db.refresh(reservation)

        logger.info(
            f"Reservation {reservation.confirmation_number} created: "
            f"{len(lines)} room(s), {nights} night(s), total {total_amount}"
        )
        return reservation

    # ============== Status machine ==============

    def _apply_assignments(self, reservation: Reservation,
                           assignments: Dict[int, int]) -> List[Room]:
        """
        Validate and stage {line_id: room_id} assignments for check-in

        Every line must end up with a room; the rooms (assigned now or earlier) must
        be of the line's type, vacant or dirty, and free of other active claims.
        Nothing is written when any check fails.
        """
        lines_by_id = {line.id: line for line in reservation.lines}
        for line_id in assignments:
            if line_id not in lines_by_id:
                raise ValidationError(
                    f"room line {line_id} does not belong to reservation {reservation.confirmation_number}"
                )

        missing = [
            line.id for line in reservation.lines
            if line.room_id is None and line.id not in assignments
        ]
        if missing:
            raise ValidationError(
                f"room assignment required before check-in for line(s) {', '.join(map(str, missing))}"
            )

        targets: Dict[int, int] = {
            line.id: assignments.get(line.id, line.room_id) for line in reservation.lines
        }
        if len(set(targets.values())) != len(targets):
            raise ValidationError("the same room is assigned to more than one line")

        rooms: List[Room] = []
        for line in reservation.lines:
            room = self.db.query(Room).filter(Room.id == targets[line.id]).first()
            if not room or room.property_id != reservation.property_id:
                raise ValidationError(f"room {targets[line.id]} does not belong to this property")
            if room.room_type_id != line.room_type_id:
                raise ValidationError(f"room {room.room_number} does not match the line's room type")
            if not room.is_active or room.status not in ASSIGNABLE_ROOM_STATUSES:
                raise ConflictError(
                    f"room {room.room_number} is {room.status.value} and cannot be checked into",
                    code="room_unavailable"
                )
            if self.availability.find_conflicts(
                room.id, reservation.check_in_date, reservation.check_out_date,
                exclude_reservation_id=reservation.id
            ):
                raise ConflictError(
                    f"room {room.room_number} is held by another reservation for overlapping dates",
                    code="room_unavailable"
                )
            rooms.append(room)

        for line, room in zip(reservation.lines, rooms):
            line.room_id = room.id
        return rooms

    def transition(self, reservation_id: int, new_status: ReservationStatus,
                   assignments: Optional[Dict[int, int]] = None,
                   reason: Optional[str] = None,
                   property_id: Optional[int] = None) -> Reservation:
        """
        Advance the reservation status

        checked_in applies room assignments and flips the rooms to occupied in the
        same commit. An invalid transition raises InvalidStateTransition and
        leaves the reservation untouched.
        """
        reservation = self.get_reservation(reservation_id, property_id)
        current = reservation.status
        if not can_transition(current, new_status):
            raise InvalidStateTransition("reservation", current.value, new_status.value)

        with inventory_locks.hold(reservation.property_id):
            self.db.expire_all()
            if not can_transition(reservation.status, new_status):
                raise InvalidStateTransition("reservation", reservation.status.value, new_status.value)

            try:
                now = datetime.now()
                if new_status == ReservationStatus.CHECKED_IN:
                    rooms = self._apply_assignments(reservation, assignments or {})
                    for room in rooms:
                        room.status = RoomStatus.OCCUPIED
                    reservation.actual_check_in = now
                elif new_status == ReservationStatus.CHECKED_OUT:
                    for line in reservation.lines:
                        if line.room is not None:
                            line.room.status = RoomStatus.DIRTY
                    reservation.actual_check_out = now
                elif new_status == ReservationStatus.CANCELLED:
                    reservation.cancel_reason = reason

                reservation.status = new_status
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(reservation)

        logger.info(
            f"Reservation {reservation.confirmation_number}: {current.value} -> {new_status.value}"
        )
        return reservation

    # ============== Amendment ==============

    def amend_dates(self, reservation_id: int,
                    new_check_in: Optional[date] = None,
                    new_check_out: Optional[date] = None,
                    property_id: Optional[int] = None) -> Reservation:
        """
        Change the stay range; the only way dates move after booking

        After check-in only the check-out date may change. Assigned rooms are
        re-validated for the new range and total_amount is recomputed from line rates.
        """
        reservation = self.get_reservation(reservation_id, property_id)
        if reservation.status not in (ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN):
            raise ConflictError(
                f"reservation is {reservation.status.value} and its dates can no longer change",
                code="reservation_closed"
            )
        check_in = new_check_in or reservation.check_in_date
        check_out = new_check_out or reservation.check_out_date
        if (reservation.status == ReservationStatus.CHECKED_IN
                and check_in != reservation.check_in_date):
            raise ValidationError("check-in date cannot change after the guest has checked in")
        validate_range(check_in, check_out)

        with inventory_locks.hold(reservation.property_id):
            self.db.expire_all()
            if reservation.status == ReservationStatus.CHECKED_IN:
                # the rooms are occupied by this very stay, only dates matter
                for index, line in enumerate(reservation.lines, start=1):
                    if not self.availability.is_room_available(
                        line.room_id, check_in, check_out,
                        exclude_reservation_id=reservation.id,
                        require_status=False,
                    ):
                        raise ConflictError(
                            f"room line {index}: room {line.room.room_number} is not available "
                            f"from {check_in.isoformat()} to {check_out.isoformat()}",
                            code="room_unavailable"
                        )
            else:
                request = ReservationRequest(
                    property_id=reservation.property_id, guest_id=reservation.guest_id,
                    check_in_date=check_in, check_out_date=check_out,
                )
                self.check_line_availability(
                    request,
                    [LineRequest(room_type_id=line.room_type_id, room_id=line.room_id)
                     for line in reservation.lines],
                    exclude_reservation_id=reservation.id
                )

            nights = (check_out - check_in).days
            try:
                reservation.check_in_date = check_in
                reservation.check_out_date = check_out
                reservation.total_amount = to_money(
                    sum((line.rate_per_night * nights for line in reservation.lines), Decimal("0"))
                )
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(reservation)

        logger.info(
            f"Reservation {reservation.confirmation_number} amended to "
            f"{check_in.isoformat()} - {check_out.isoformat()}"
        )
        return reservation

    def change_room(self, reservation_id: int, line_id: int, new_room_id: int,
                    property_id: Optional[int] = None) -> ReservationRoomLine:
        """Move an in-house line to another room of the same property"""
        reservation = self.get_reservation(reservation_id, property_id)
        if reservation.status != ReservationStatus.CHECKED_IN:
            raise InvalidStateTransition("reservation", reservation.status.value, "room_change")
        line = next((l for l in reservation.lines if l.id == line_id), None)
        if line is None:
            raise NotFoundError("room line", line_id)

        with inventory_locks.hold(reservation.property_id):
            self.db.expire_all()
            new_room = self.db.query(Room).filter(Room.id == new_room_id).first()
            if not new_room or new_room.property_id != reservation.property_id:
                raise ValidationError(f"room {new_room_id} does not belong to this property")
            if new_room.id == line.room_id:
                raise ValidationError(f"line is already in room {new_room.room_number}")
            if not new_room.is_active or new_room.status not in ASSIGNABLE_ROOM_STATUSES:
                raise ConflictError(
                    f"room {new_room.room_number} is {new_room.status.value} and cannot be assigned",
                    code="room_unavailable"
                )
            start = max(date.today(), reservation.check_in_date)
            if start < reservation.check_out_date and self.availability.find_conflicts(
                new_room.id, start, reservation.check_out_date,
                exclude_reservation_id=reservation.id
            ):
                raise ConflictError(
                    f"room {new_room.room_number} is held by another reservation for the rest of the stay",
                    code="room_unavailable"
                )

            try:
                old_room = line.room
                if old_room is not None:
                    old_room.status = RoomStatus.DIRTY
                new_room.status = RoomStatus.OCCUPIED
                line.room_id = new_room.id
                line.room_type_id = new_room.room_type_id
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(line)

        logger.info(
            f"Reservation {reservation.confirmation_number} line {line.id} moved to room {new_room.room_number}"
        )
        return line

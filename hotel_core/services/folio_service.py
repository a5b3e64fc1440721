"""
Folio ledger - owns Folio / FolioItem / Payment

Items and payments are the log; the folio's aggregate columns are rewritten from
the full non-voided log in the same transaction as every appended event. Each
mutation holds the folio's keyed lock (plus a row lock where the database has
one) from the read of the folio row until commit.
"""
from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Tuple
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hotel_core.config import settings
from hotel_core.errors import ValidationError, ConflictError, NotFoundError
from hotel_core.models.events import EventType, FolioEventData
from hotel_core.models.ontology import (
    Folio, FolioItem, FolioItemType, FolioStatus, Payment, PaymentMethod,
    Property, Reservation,
)
from hotel_core.services.event_bus import event_bus, Event
from hotel_core.services.locks import folio_locks
from hotel_core.services.money import ZERO, to_money, percent_of

logger = logging.getLogger(__name__)

SEED_REFERENCE = "reservation_room_line"

# Tries at a unique folio number before giving up
NUMBER_ATTEMPTS = 3


@dataclass
class FolioProjection:
    """Aggregate recomputed from the log"""
    subtotal: Decimal = ZERO
    tax_amount: Decimal = ZERO
    service_charge: Decimal = ZERO
    total_amount: Decimal = ZERO
    paid_amount: Decimal = ZERO
    balance: Decimal = ZERO

    FIELDS = ("subtotal", "tax_amount", "service_charge", "total_amount", "paid_amount", "balance")


@dataclass
class CloseResult:
    folio: Folio
    unsettled: bool


class FolioService:
    """Folio ledger"""

    def __init__(self, db: Session, event_publisher: Callable[[Event], None] = None):
        self.db = db
        self._publish_event = event_publisher or event_bus.publish

    # ============== Queries ==============

    def get_folio(self, folio_id: int, property_id: Optional[int] = None) -> Folio:
        query = self.db.query(Folio).filter(Folio.id == folio_id)
        if property_id is not None:
            query = query.filter(Folio.property_id == property_id)
        folio = query.first()
        if not folio:
            raise NotFoundError("folio", folio_id)
        return folio

    def get_by_reservation(self, reservation_id: int) -> Optional[Folio]:
        return self.db.query(Folio).filter(Folio.reservation_id == reservation_id).first()

    def list_folios(self, property_id: int, status: Optional[FolioStatus] = None) -> List[Folio]:
        query = self.db.query(Folio).filter(Folio.property_id == property_id)
        if status:
            query = query.filter(Folio.status == status)
        return query.order_by(Folio.id.desc()).all()

    def get_detail(self, folio_id: int, property_id: Optional[int] = None) -> dict:
        """Folio with its full item and payment log"""
        folio = self.get_folio(folio_id, property_id)
        return {
            "folio": folio,
            "items": list(folio.items),
            "payments": list(folio.payments),
        }

    # ============== Projection ==============

    def project(self, folio_id: int) -> FolioProjection:
        """Recompute the aggregate from the log without writing anything"""
        items = self.db.query(FolioItem).filter(
            FolioItem.folio_id == folio_id,
            FolioItem.voided == False  # noqa: E712
        ).all()
        payments = self.db.query(Payment).filter(Payment.folio_id == folio_id).all()

        subtotal = to_money(sum((item.total_price for item in items), ZERO))
        tax_amount = to_money(sum((item.tax_amount for item in items), ZERO))
        service_charge = to_money(sum((item.service_charge for item in items), ZERO))
        paid_amount = to_money(sum((payment.amount for payment in payments), ZERO))
        total_amount = subtotal + tax_amount + service_charge
        return FolioProjection(
            subtotal=subtotal,
            tax_amount=tax_amount,
            service_charge=service_charge,
            total_amount=total_amount,
            paid_amount=paid_amount,
            balance=total_amount - paid_amount,
        )

    def verify(self, folio_id: int) -> Dict[str, Tuple[Decimal, Decimal]]:
        """
        Compare the stored aggregate to the log

        Returns {field: (stored, projected)} for every drifting field; empty when consistent.
        """
        folio = self.get_folio(folio_id)
        self.db.refresh(folio)
        projected = self.project(folio_id)
        drift = {}
        for name in FolioProjection.FIELDS:
            stored = to_money(getattr(folio, name))
            expected = getattr(projected, name)
            if stored != expected:
                drift[name] = (stored, expected)
        if drift:
            logger.warning(f"Folio {folio.folio_number} aggregate drift: {drift}")
        return drift

    def _recompute(self, folio: Folio) -> None:
        self.db.flush()
        projected = self.project(folio.id)
        for name in FolioProjection.FIELDS:
            setattr(folio, name, getattr(projected, name))

    def _lock_folio(self, folio_id: int) -> Folio:
        """Fresh read of the folio row under FOR UPDATE; caller holds the keyed lock"""
        folio = self.db.query(Folio).filter(
            Folio.id == folio_id
        ).populate_existing().with_for_update().first()
        if not folio:
            raise NotFoundError("folio", folio_id)
        return folio

    def _publish(self, event_type: EventType, folio: Folio, **data) -> None:
        self._publish_event(Event(
            event_type=event_type,
            timestamp=datetime.now(),
            data=FolioEventData(
                folio_id=folio.id,
                folio_number=folio.folio_number,
                reservation_id=folio.reservation_id,
                balance=folio.balance,
                **data
            ).to_dict(),
            source="folio_service"
        ))

    # ============== Opening ==============

    def _generate_folio_number(self, prop: Property) -> str:
        """F-<PROPERTY_CODE>-<YYMMDD>-<seq>"""
        prefix = f"F-{prop.code}-{datetime.now().strftime('%y%m%d')}-"
        count = self.db.query(Folio).filter(
            Folio.property_id == prop.id,
            Folio.folio_number.like(f"{prefix}%")
        ).count()
        return f"{prefix}{str(count + 1).zfill(4)}"

    def _insert_folio(self, reservation: Reservation, folio_number: str,
                      created_by: Optional[str] = None) -> Folio:
        folio = Folio(
            property_id=reservation.property_id,
            reservation_id=reservation.id,
            guest_id=reservation.guest_id,
            folio_number=folio_number,
            status=FolioStatus.OPEN,
        )
        self.db.add(folio)
        self.db.flush()

        nights = reservation.nights
        for line in reservation.lines:
            self.db.add(self._build_item(
                folio,
                item_type=FolioItemType.ROOM_CHARGE,
                description=f"Room charge {line.room_type.code} x {nights} night(s)",
                quantity=nights,
                unit_price=line.rate_per_night,
                tax_rate=ZERO,
                service_charge_rate=ZERO,
                service_date=reservation.check_in_date,
                reference_type=SEED_REFERENCE,
                reference_id=line.id,
                created_by=created_by,
            ))
        self._recompute(folio)
        self.db.commit()
        return folio

    def open_for_reservation(self, reservation_id: int, created_by: Optional[str] = None) -> Folio:
        """
        Open the reservation's folio, or return the one that already exists

        The new folio carries one untaxed room_charge per room line, so its total
        equals the reservation total. A concurrent duplicate trips the unique
        reservation_id constraint and the loser returns the winner's folio; a
        folio number taken by another process is replaced with the next one.
        """
        existing = self.get_by_reservation(reservation_id)
        if existing:
            return existing

        reservation = self.db.query(Reservation).filter(Reservation.id == reservation_id).first()
        if not reservation:
            raise NotFoundError("reservation", reservation_id)

        with folio_locks.hold(("property", reservation.property_id)):
            existing = self.get_by_reservation(reservation_id)
            if existing:
                return existing
            for attempt in range(1, NUMBER_ATTEMPTS + 1):
                folio_number = self._generate_folio_number(reservation.hotel)
                try:
                    folio = self._insert_folio(reservation, folio_number, created_by)
                    break
                except IntegrityError:
                    self.db.rollback()
                    existing = self.get_by_reservation(reservation_id)
                    if existing:
                        return existing
                    taken = self.db.query(Folio).filter(
                        Folio.property_id == reservation.property_id,
                        Folio.folio_number == folio_number
                    ).first()
                    if taken is None:
                        raise
                    logger.warning(f"Folio number {folio_number} taken concurrently, attempt {attempt}")
                except Exception:
                    self.db.rollback()
                    raise
            else:
                raise ConflictError(
                    f"could not allocate a folio number for reservation {reservation.confirmation_number}",
                    code="number_collision"
                )
            self.db.refresh(folio)

        logger.info(
            f"Folio {folio.folio_number} opened for reservation "
            f"{reservation.confirmation_number}, balance {folio.balance}"
        )
        self._publish(EventType.FOLIO_CREATED, folio, amount=folio.total_amount)
        return folio

    # ============== Charges ==============

    def _resolve_rate(self, value, property_rate, default) -> Decimal:
        if value is None:
            value = property_rate if property_rate is not None else default
        rate = Decimal(str(value))
        if rate < 0 or rate > 1:
            raise ValidationError(f"rate {rate} must be between 0 and 1")
        return rate

    def _build_item(self, folio: Folio, item_type: FolioItemType, description: str,
                    quantity: int, unit_price, tax_rate: Decimal,
                    service_charge_rate: Decimal, service_date: Optional[date] = None,
                    reference_type: Optional[str] = None,
                    reference_id: Optional[int] = None,
                    created_by: Optional[str] = None) -> FolioItem:
        unit_price = to_money(unit_price)
        total_price = to_money(unit_price * quantity)
        return FolioItem(
            folio_id=folio.id,
            item_type=item_type,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
            tax_amount=percent_of(total_price, tax_rate),
            service_charge=percent_of(total_price, service_charge_rate),
            service_date=service_date or date.today(),
            reference_type=reference_type,
            reference_id=reference_id,
            created_by=created_by,
        )

    def post_charge(self, folio_id: int, item_type: FolioItemType, description: str,
                    quantity: int, unit_price, tax_rate=None, service_charge_rate=None,
                    service_date: Optional[date] = None,
                    reference_type: Optional[str] = None,
                    reference_id: Optional[int] = None,
                    created_by: Optional[str] = None) -> FolioItem:
        """
        Append a charge line

        Missing rates take the property's rates as of now; the resulting tax and
        service charge are stored on the item and never recomputed.
        """
        item_type = FolioItemType(item_type)
        if not description or not description.strip():
            raise ValidationError("charge description is required")
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer")
        unit_price = Decimal(str(unit_price))
        if unit_price < 0 and item_type != FolioItemType.DISCOUNT:
            raise ValidationError("unit price cannot be negative")

        with folio_locks.hold(folio_id):
            folio = self._lock_folio(folio_id)
            if not folio.is_open:
                raise ConflictError("folio is closed", code="folio_closed")

            prop = self.db.query(Property).filter(Property.id == folio.property_id).first()
            tax_rate = self._resolve_rate(tax_rate, prop.tax_rate, settings.DEFAULT_TAX_RATE)
            service_charge_rate = self._resolve_rate(
                service_charge_rate, prop.service_charge_rate, settings.DEFAULT_SERVICE_CHARGE_RATE
            )

            try:
                item = self._build_item(
                    folio, item_type, description.strip(), quantity, unit_price,
                    tax_rate, service_charge_rate, service_date,
                    reference_type, reference_id, created_by
                )
                self.db.add(item)
                self._recompute(folio)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(item)
            self.db.refresh(folio)

        logger.info(
            f"Charge posted to {folio.folio_number}: {item_type.value} {item.gross_amount}, "
            f"balance {folio.balance}"
        )
        self._publish(EventType.CHARGE_POSTED, folio, item_id=item.id, amount=item.gross_amount)
        return item

    # ============== Payments ==============

    def record_payment(self, folio_id: int, amount, method: PaymentMethod,
                       reference_number: Optional[str] = None,
                       notes: Optional[str] = None,
                       created_by: Optional[str] = None) -> Payment:
        """
        Append a payment

        A resubmission with a known reference_number and the same amount returns
        the stored payment; a different amount under that reference is a conflict.
        """
        method = PaymentMethod(method)
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("payment amount must be positive")
        reference_number = reference_number.strip() if reference_number else None

        with folio_locks.hold(folio_id):
            folio = self._lock_folio(folio_id)

            if reference_number:
                existing = self.db.query(Payment).filter(
                    Payment.folio_id == folio_id,
                    Payment.reference_number == reference_number
                ).first()
                if existing:
                    if to_money(existing.amount) != amount:
                        raise ConflictError(
                            f"payment reference {reference_number} already recorded "
                            f"with amount {to_money(existing.amount)}",
                            code="duplicate_payment"
                        )
                    logger.info(
                        f"Payment {reference_number} on {folio.folio_number} already recorded"
                    )
                    return existing

            if not folio.is_open:
                raise ConflictError("folio is closed", code="folio_closed")

            try:
                payment = Payment(
                    folio_id=folio.id,
                    amount=amount,
                    method=method,
                    reference_number=reference_number,
                    notes=notes,
                    created_by=created_by,
                )
                self.db.add(payment)
                self._recompute(folio)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(payment)
            self.db.refresh(folio)

        logger.info(
            f"Payment {amount} ({method.value}) recorded on {folio.folio_number}, "
            f"balance {folio.balance}"
        )
        self._publish(EventType.PAYMENT_RECEIVED, folio, payment_id=payment.id, amount=amount)
        return payment

    # ============== Voids ==============

    def void_item(self, item_id: int, reason: str, voided_by: Optional[str] = None,
                  property_id: Optional[int] = None) -> FolioItem:
        """Flag a charge line as voided; the row stays for audit"""
        if not reason or not reason.strip():
            raise ValidationError("void reason is required")

        item = self.db.query(FolioItem).filter(FolioItem.id == item_id).first()
        if not item or (property_id is not None and item.folio.property_id != property_id):
            raise NotFoundError("folio item", item_id)

        with folio_locks.hold(item.folio_id):
            folio = self._lock_folio(item.folio_id)
            item = self.db.query(FolioItem).filter(
                FolioItem.id == item_id
            ).populate_existing().first()
            if item.voided:
                raise ConflictError("item already voided", code="already_voided")
            if not folio.is_open:
                raise ConflictError("folio is closed", code="folio_closed")

            try:
                item.voided = True
                item.void_reason = reason.strip()
                item.voided_at = datetime.now()
                item.voided_by = voided_by
                self._recompute(folio)
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(item)
            self.db.refresh(folio)

        logger.info(
            f"Item {item.id} on {folio.folio_number} voided ({item.void_reason}), "
            f"balance {folio.balance}"
        )
        self._publish(
            EventType.ITEM_VOIDED, folio, item_id=item.id,
            amount=item.gross_amount, reason=item.void_reason
        )
        return item

    # ============== Closing ==============

    def close(self, folio_id: int, closed_by: Optional[str] = None,
              note: Optional[str] = None) -> CloseResult:
        """
        Close the folio

        A nonzero balance does not block closing; the result is flagged unsettled
        and the balance is kept as it is.
        """
        with folio_locks.hold(folio_id):
            folio = self._lock_folio(folio_id)
            if not folio.is_open:
                raise ConflictError("folio is already closed", code="folio_closed")

            try:
                self._recompute(folio)
                folio.status = FolioStatus.CLOSED
                folio.closed_at = datetime.now()
                folio.closed_by = closed_by
                folio.close_note = note
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
            self.db.refresh(folio)

        unsettled = to_money(folio.balance) != ZERO
        if unsettled:
            logger.warning(f"Folio {folio.folio_number} closed unsettled, balance {folio.balance}")
        else:
            logger.info(f"Folio {folio.folio_number} closed")
        self._publish(EventType.FOLIO_CLOSED, folio, amount=folio.total_amount, reason=note or "")
        return CloseResult(folio=folio, unsettled=unsettled)

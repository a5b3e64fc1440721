# Business Services
from hotel_core.services.availability_service import AvailabilityService
from hotel_core.services.reservation_service import ReservationService
from hotel_core.services.folio_service import FolioService
from hotel_core.services.booking_service import BookingService
from hotel_core.services.checkin_service import CheckInService
from hotel_core.services.checkout_service import CheckOutService
from hotel_core.services.report_service import ReportService

__all__ = [
    'AvailabilityService', 'ReservationService', 'FolioService',
    'BookingService', 'CheckInService', 'CheckOutService', 'ReportService'
]

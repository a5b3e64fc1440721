from hotel_core.models.ontology import (  # noqa: F401
    Property, RoomType, Room, Reservation, ReservationRoomLine,
    Folio, FolioItem, Payment,
    RoomStatus, ReservationStatus, BookingSource, FolioStatus,
    FolioItemType, PaymentMethod,
)

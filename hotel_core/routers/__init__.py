# API Routers
from hotel_core.routers import availability, reservations, folios, reports

__all__ = ['availability', 'reservations', 'folios', 'reports']

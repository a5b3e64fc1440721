"""
Hotel Core
Booking & folio ledger core of the property-management dashboard
"""
__version__ = "1.0.0"

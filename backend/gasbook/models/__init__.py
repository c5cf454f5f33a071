from .customers import Customer
from .bookings import Booking
from .inventory import CylinderUnit, StoveUnit, LendingRecord

__all__ = [
    'Customer',
    'Booking',
    'CylinderUnit', 'StoveUnit', 'LendingRecord',
]

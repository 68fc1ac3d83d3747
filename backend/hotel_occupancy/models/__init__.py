# Ontology Models
from hotel_occupancy.models.ontology import (
    Room, RoomImage, Booking, Stay, Reservation,
    Discount, OutboxEvent, Employee
)

__all__ = [
    'Room', 'RoomImage', 'Booking', 'Stay', 'Reservation',
    'Discount', 'OutboxEvent', 'Employee'
]

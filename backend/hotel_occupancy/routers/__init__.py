# API Routers
from hotel_occupancy.routers import auth, rooms, guests, reservations, discounts

__all__ = ['auth', 'rooms', 'guests', 'reservations', 'discounts']

"""Booking System Pro core: slots, bookings, incomplete leads and sheet sync."""

__version__ = "0.1.0"

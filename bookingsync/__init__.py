"""Reservation scheduling engine with external calendar mirroring and scheduled notifications"""

__version__ = "1.0.0"

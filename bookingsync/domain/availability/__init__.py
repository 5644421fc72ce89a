"""Availability domain - bookable buckets per tenant"""

from .service import AvailabilityEngine, Bucket, Slot

__all__ = ["AvailabilityEngine", "Bucket", "Slot"]

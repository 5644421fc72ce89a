"""
Error taxonomy shared by the scheduling core.

Local writes are the commit point: ExternalUnavailable never undoes them,
PersistenceError always propagates to the caller.
"""

from typing import Optional


class BookingSyncError(Exception):
    """Base class for every error raised by the scheduling core"""


class ValidationError(BookingSyncError):
    """Malformed or missing input; the caller can correct it"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class NotFoundError(BookingSyncError):
    """A referenced entity does not exist"""

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class SlotConflictError(BookingSyncError):
    """The target bucket has no capacity left (or is not bookable at all)"""

    def __init__(self, message: str, client_id: str, bucket_start=None):
        super().__init__(message)
        self.client_id = client_id
        self.bucket_start = bucket_start


class ExternalUnavailable(BookingSyncError):
    """
    A third-party call (calendar provider, mail transport) failed.

    recoverable=False marks failures a plain retry cannot fix, such as a
    revoked credential.
    """

    def __init__(self, service: str, message: str, recoverable: bool = True):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.recoverable = recoverable


class PersistenceError(BookingSyncError):
    """The document store rejected or failed an operation"""

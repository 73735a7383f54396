"""Error kinds raised by the identity resolution core and the contact store.

Each kind carries a stable ``error_code`` used by the API layer and a
``retryable`` flag telling callers whether replaying the same request can
succeed.
"""


class IdentityError(Exception):
    """Base class for identity resolution failures."""

    error_code = "IDENTITY_ERROR"
    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidRequest(IdentityError):
    """Neither an email nor a phone number was supplied."""

    error_code = "INVALID_REQUEST"


class ContactNotFound(IdentityError):
    """No live contact exists with the requested id."""

    error_code = "NOT_FOUND"

    def __init__(self, contact_id: int):
        self.contact_id = contact_id
        super().__init__(f"Contact not found: {contact_id}")


class IntegrityFault(IdentityError):
    """Stored linkage is corrupt, e.g. a secondary without a live primary."""

    error_code = "INTEGRITY_FAULT"

    def __init__(self, message: str, contact_ids: list[int] | None = None):
        self.contact_ids = contact_ids or []
        super().__init__(message)


class StoreUnavailable(IdentityError):
    """The contact store failed transiently (connection, timeout)."""

    error_code = "STORE_UNAVAILABLE"
    retryable = True


class ConcurrencyConflict(IdentityError):
    """A concurrent resolution touching the same records won the race."""

    error_code = "CONCURRENCY_CONFLICT"
    retryable = True

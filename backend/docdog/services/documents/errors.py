"""Error taxonomy for the document access core.

Every failure the core surfaces is a DocDogError subclass so callers can
catch the whole family at one boundary (the HTTP layer maps them to status
codes in main.py).
"""


class DocDogError(Exception):
    """Base class for all document access errors."""
    pass


class IOFailure(DocDogError):
    """Local byte stream could not be read."""
    pass


class NetworkFailure(DocDogError):
    """Transient connectivity problem or timeout talking to a store."""
    pass


class AuthFailure(DocDogError):
    """Store rejected the credentials (invalid or expired)."""
    pass


class BlobStoreError(DocDogError):
    """Blob store answered with an error that fits no narrower category."""

    def __init__(self, message: str, status: int | None = None):
        self.status = status
        super().__init__(message)


class BlobNotFound(DocDogError):
    """The object was deleted or never uploaded."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Blob '{key}' was not found")


class LedgerUnavailable(DocDogError):
    """Backing record store could not be read or written."""
    pass


class SerializationFailure(DocDogError):
    """A single persisted record is malformed."""
    pass


class RecordNotFound(DocDogError):
    """No history record exists for the storage path."""

    def __init__(self, storage_path: str):
        self.storage_path = storage_path
        super().__init__(f"No history record for '{storage_path}'")


class DocumentExpired(DocDogError):
    """The record's retention window has elapsed; it can no longer be opened."""

    def __init__(self, storage_path: str, expired_at: int):
        self.storage_path = storage_path
        self.expired_at = expired_at
        super().__init__(f"Document '{storage_path}' expired at {expired_at}")


class UnsupportedExpireOption(DocDogError):
    """The requested retention window is not offered by this configuration."""
    pass

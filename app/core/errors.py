# app/core/errors.py
"""
Error taxonomy of the deliverables core.

Every error carries a short message that is safe to show to end users.
Underlying store error text is logged where it happens and never copied
into ``message``.
"""

from __future__ import annotations


class DeliverableError(Exception):
    """Base class for all deliverable core errors."""

    default_message = "Unexpected error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(DeliverableError):
    """Bad input. Raised before any store is touched."""

    default_message = "invalid input"


class NotFound(DeliverableError):
    default_message = "Not found"


class Forbidden(DeliverableError):
    """Raised when the actor is not allowed to perform an operation."""

    default_message = "Not allowed"


class StorageError(DeliverableError):
    """Metadata store request failed."""

    default_message = "Metadata store request failed"


class ObjectStoreError(DeliverableError):
    """Upload, delete, list or signed-URL request to the object store failed."""

    default_message = "Object store request failed"


class DownloadError(ObjectStoreError):
    default_message = "Download link could not be generated"


class RateLimitError(DeliverableError):
    default_message = "Too many download attempts. Please wait a moment before trying again."


class IntegrityWarning(UserWarning):
    """Non-fatal finding produced by the integrity scanner."""

    def __init__(self, deliverable_id, reason: str, message: str):
        self.deliverable_id = deliverable_id
        self.reason = reason
        self.message = message
        super().__init__(f"{deliverable_id}: {reason}: {message}")

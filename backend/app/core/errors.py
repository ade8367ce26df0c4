"""
Error taxonomy for the messaging core.

Validation and not-found errors carry a user-facing reason. Persistence
failures carry an opaque message only; the underlying exception is logged
where it happens and chained as ``__cause__``.
"""
from __future__ import annotations

from typing import Any, Optional


class MailError(Exception):
    """Base error for the messaging and notification core."""

    code = "mail_error"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class ValidationFailed(MailError):
    code = "validation_error"


class NotFound(MailError):
    code = "not_found"


class PersistenceFailure(MailError):
    code = "persistence_error"


class AuthenticationFailed(MailError):
    code = "auth_error"


class DeliveryFailure(MailError):
    code = "delivery_error"

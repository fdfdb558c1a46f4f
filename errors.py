# errors.py
"""
Error taxonomy for the auth / payment trust boundary.

Every error carries the HTTP status it maps to and an optional payload that is
merged into the JSON body, e.g. ``remainingAttempts`` for a failed login.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class TrustBoundaryError(Exception):
    status_code = 400
    message = "Request rejected"

    def __init__(self, message: Optional[str] = None, **payload: Any):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.payload: Dict[str, Any] = payload

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "error": self.message}
        body.update(self.payload)
        return body


class BadRequest(TrustBoundaryError):
    status_code = 400
    message = "Malformed request"


class Unauthenticated(TrustBoundaryError):
    status_code = 401
    message = "Not authorized to access this route"


class Forbidden(TrustBoundaryError):
    status_code = 403
    message = "Insufficient permissions"


class CsrfRejected(TrustBoundaryError):
    status_code = 403
    message = "Invalid or missing CSRF token"


class InvalidCaptcha(TrustBoundaryError):
    status_code = 400
    message = "Invalid or expired captcha"


class InvalidCredentials(TrustBoundaryError):
    status_code = 401
    message = "Invalid credentials"


class AccountLocked(TrustBoundaryError):
    status_code = 401
    message = "Account temporarily locked due to too many failed login attempts"


class InvalidMfaCode(TrustBoundaryError):
    status_code = 401
    message = "Invalid or expired 2FA code"


class OutOfStock(TrustBoundaryError):
    status_code = 400
    message = "Product is out of stock"


class EmptyOrder(TrustBoundaryError):
    status_code = 400
    message = "No valid items to purchase"


class PaymentNotSucceeded(TrustBoundaryError):
    status_code = 400
    message = "Payment not successful"


class AuthorizationMismatch(TrustBoundaryError):
    status_code = 403
    message = "Payment authorization mismatch"


class IntegrityCheckFailed(TrustBoundaryError):
    status_code = 400
    message = "Order integrity check failed"


class IntentAlreadySettled(TrustBoundaryError):
    status_code = 409
    message = "Payment has already been used for an order"


class ProviderUnavailable(TrustBoundaryError):
    status_code = 502
    message = "Payment provider unavailable"

"""
storefront.errors

Error taxonomy shared by services and views.

Every error carries a stable `code` and the HTTP status the JSON envelope
uses, so services can raise without knowing about HttpResponse and views can
convert with one helper (see storefront.views._core.error_response).

========= CHANGE LOG =========
2025-09-02 • ADD: StorefrontError hierarchy (auth, catalog, checkout, reconciliation, upstream).
2025-09-14 • ADD: PaymentNotCompleted for the pull-confirmation path.
2025-09-21 • ADD: IllegalTransition (names the offending field for staff edits).
"""

from __future__ import annotations

from typing import Optional


class StorefrontError(Exception):
    code = "error"
    http_status = 500
    default_message = "Unexpected error."

    def __init__(self, message: Optional[str] = None, *, detail: Optional[str] = None):
        self.message = message or self.default_message
        self.detail = detail
        super().__init__(self.message)

    def as_dict(self) -> dict:
        err = {"code": self.code, "message": self.message}
        if self.detail:
            err["detail"] = self.detail[:500]
        return err


class Unauthenticated(StorefrontError):
    code = "unauthenticated"
    http_status = 401
    default_message = "Authentication required."


class Unauthorized(StorefrontError):
    code = "unauthorized"
    http_status = 403
    default_message = "You are not allowed to perform this action."


class NotFound(StorefrontError):
    code = "not_found"
    http_status = 404
    default_message = "Not found."


class ValidationFailed(StorefrontError):
    code = "validation_failed"
    http_status = 400
    default_message = "Invalid request."


class IllegalTransition(ValidationFailed):
    default_message = "Order cannot move to that state."

    def __init__(self, message: Optional[str] = None, *, field: str = "status", detail: Optional[str] = None):
        super().__init__(message, detail=detail)
        self.field = field


class InvalidAmount(ValidationFailed):
    code = "invalid_amount"
    default_message = "Charge amount must be a positive amount."


class PurchaseRequired(StorefrontError):
    code = "purchase_required"
    http_status = 403
    default_message = "Purchase required to download this template."


class PaymentNotCompleted(StorefrontError):
    code = "payment_not_completed"
    http_status = 400
    default_message = "Payment not completed."


class UpstreamFailure(StorefrontError):
    code = "upstream_failure"
    http_status = 502
    default_message = "Payment processor is unavailable. Please try again."


class SignatureInvalid(StorefrontError):
    code = "signature_invalid"
    http_status = 400
    default_message = "Signature verification failed."


class Inconsistent(StorefrontError):
    """A checkout session exists at Stripe but no local Order could be stored for it."""

    code = "inconsistent"
    http_status = 500
    default_message = "Checkout could not be recorded. Please try again."


class RateLimited(StorefrontError):
    code = "rate_limited"
    http_status = 429
    default_message = "Too many checkout attempts. Please try again in a minute."

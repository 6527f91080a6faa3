# Overview: Domain error taxonomy shared by services and routes.

"""
Every service raises one of these; routes turn them into JSON with
error_response(). Anything else escaping a service is a bug and is logged
as a 500 by the route.
"""

from __future__ import annotations

from flask import jsonify


class PharmacyError(Exception):
    """Base class for expected, caller-visible failures."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(PharmacyError):
    """400-level input problem. Raised before the store is touched."""


class NotFoundError(PharmacyError):
    status_code = 404


class ForeignKeyViolationError(PharmacyError):
    """A referenced row (medicine, supplier, batch...) does not exist."""

    status_code = 422


class ConflictError(PharmacyError):
    """409-level uniqueness or business rule conflict (e.g., duplicate barcode)."""

    status_code = 409


class InsufficientStockError(PharmacyError):
    status_code = 409

    def __init__(self, medicine_id: int, requested: int, available: int, medicine_name: str | None = None):
        label = medicine_name or f"medicine {medicine_id}"
        super().__init__(
            f"Insufficient stock for {label}: requested {requested}, available {available}",
            details={
                "medicine_id": medicine_id,
                "requested": requested,
                "available": available,
                "shortfall": requested - available,
            },
        )
        self.medicine_id = medicine_id
        self.requested = requested
        self.available = available


class ConcurrencyError(PharmacyError):
    """Lock or version conflict on a contended row. Safe to retry from scratch."""

    status_code = 409

    def __init__(self, message: str = "Stock changed during checkout, please try again", details: dict | None = None):
        details = dict(details or {})
        details.setdefault("retryable", True)
        super().__init__(message, details)


class AuthenticationError(PharmacyError):
    status_code = 401


class PermissionDeniedError(PharmacyError):
    status_code = 403


def error_response(exc: PharmacyError):
    return jsonify(exc.to_dict()), exc.status_code

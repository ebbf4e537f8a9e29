"""
Error taxonomy for label generation.

Each error carries the HTTP status the router answers with and an optional
``details`` payload (usually the carrier's raw error body) that is passed
through to the caller for support escalation.
"""
from typing import Any


class ShippingLabelError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ShippingLabelError):
    status_code = 400


class NotFoundError(ShippingLabelError):
    status_code = 404


class LabelInProgressError(ShippingLabelError):
    status_code = 409


class DuplicateLabelError(ShippingLabelError):
    """Another worker recorded a label for the order first."""
    status_code = 409


class AuthenticationError(ShippingLabelError):
    pass


class CarrierImportError(ShippingLabelError):
    pass


class CarrierLabelError(ShippingLabelError):
    pass


class CarrierTimeoutError(ShippingLabelError):
    pass


class LabelGenerationError(ShippingLabelError):
    pass


class TrackingCodesMissingError(LabelGenerationError, CarrierLabelError):
    """The aggregator answered 2xx but issued no tracking code."""


class PersistenceError(ShippingLabelError):
    pass

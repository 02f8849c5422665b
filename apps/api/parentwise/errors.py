"""Domain exceptions mapped to HTTP responses by the app's exception handlers."""
from __future__ import annotations

from typing import Any, Optional


class ParentWiseError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, *, details: Any = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class InvalidRequestError(ParentWiseError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(ParentWiseError):
    status_code = 401
    default_message = "Unauthorized"


class SubscriptionRequiredError(ParentWiseError):
    status_code = 402
    default_message = "Subscription required"


class ForbiddenError(ParentWiseError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(ParentWiseError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ParentWiseError):
    status_code = 409
    default_message = "Conflict"


class ServiceUnavailableError(ParentWiseError):
    status_code = 503
    default_message = "Service temporarily unavailable"


class AIServiceError(ServiceUnavailableError):
    default_message = "AI service temporarily unavailable. Please try again later."


class AIConfigurationError(AIServiceError):
    default_message = "AI service is not configured."


class EmailDeliveryError(ServiceUnavailableError):
    default_message = "Email delivery is unavailable."

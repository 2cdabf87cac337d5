"""Error taxonomy for plan generation, gating, and the client adapter.

Every error carries a stable ``code`` (the wire contract between server and
client), the HTTP status it maps to, whether the caller may retry, and a
message a user can act on.
"""

from __future__ import annotations

from typing import Any


class NutritionPlanError(Exception):
    """Base exception for all nutrition-plan errors."""

    code = "INTERNAL_ERROR"
    status_code = 500
    retryable = True
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }


class MetricsNotYetComputedError(NutritionPlanError):
    """No metrics snapshot exists for today. Never blocks first-time plans."""

    code = "METRICS_NOT_COMPUTED"
    status_code = 404
    retryable = False
    default_message = (
        "Your health metrics have not been computed yet. "
        "Complete your profile information to generate metrics."
    )


class MetricsAcknowledgmentRequiredError(NutritionPlanError):
    """Current metrics exist but the user has not acknowledged them."""

    code = "METRICS_ACK_REQUIRED"
    status_code = 403
    retryable = False
    default_message = "Please review and acknowledge your health metrics before generating a plan."


class StaleAcknowledgmentError(MetricsAcknowledgmentRequiredError):
    """An acknowledgment exists but for a different version/timestamp pair."""

    code = "STALE_ACKNOWLEDGMENT"
    default_message = (
        "Your health metrics were updated since you last reviewed them. "
        "Please acknowledge the latest metrics."
    )


class InputValidationError(NutritionPlanError):
    """Malformed or out-of-range input."""

    code = "VALIDATION_ERROR"
    status_code = 400
    retryable = True
    default_message = "Invalid input."


class ProfileNotFoundError(NutritionPlanError):
    code = "PROFILE_NOT_FOUND"
    status_code = 404
    retryable = False
    default_message = "Health profile not found. Please complete onboarding first."


class NetworkError(NutritionPlanError):
    """Transient transport failure."""

    code = "NETWORK_ERROR"
    status_code = 503
    retryable = True
    default_message = "Network unavailable. Please check your connection and try again."


class AuthExpiredError(NutritionPlanError):
    code = "AUTH_EXPIRED"
    status_code = 401
    retryable = True
    default_message = "Your session has expired. Please sign in again."


class CacheUnavailableError(NutritionPlanError):
    """Storage infrastructure failure. Gating fails closed on this."""

    code = "STORAGE_UNAVAILABLE"
    status_code = 503
    retryable = True
    default_message = "Plan storage is temporarily unavailable. Please try again shortly."


_ERRORS_BY_CODE: dict[str, type[NutritionPlanError]] = {
    cls.code: cls
    for cls in (
        NutritionPlanError,
        MetricsNotYetComputedError,
        MetricsAcknowledgmentRequiredError,
        StaleAcknowledgmentError,
        InputValidationError,
        ProfileNotFoundError,
        NetworkError,
        AuthExpiredError,
        CacheUnavailableError,
    )
}


def error_from_payload(payload: Any, *, status_code: int) -> NutritionPlanError:
    """Rebuild a typed error from an ``{"error": {...}}`` response body.

    Falls back on the HTTP status when the body carries no known code.
    """
    error = payload.get("error") if isinstance(payload, dict) else None
    code = error.get("code") if isinstance(error, dict) else None
    message = error.get("message") if isinstance(error, dict) else None

    cls = _ERRORS_BY_CODE.get(code or "")
    if cls is None:
        if status_code == 400:
            cls = InputValidationError
        elif status_code == 401:
            cls = AuthExpiredError
        elif status_code >= 500:
            cls = NetworkError
        else:
            cls = NutritionPlanError
    return cls(message if isinstance(message, str) and message else None)

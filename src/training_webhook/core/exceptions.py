"""
Custom exception classes for the training results webhook.
"""

from typing import Any, Dict, List, Optional, Tuple, Union

from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
)


class TrainingWebhookError(Exception):
    """Base exception for all training webhook errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_error_item(self) -> Dict[str, str]:
        """Machine readable {code, message} pair."""
        return {"code": self.error_code or type(self).__name__, "message": self.message}


class SignatureError(TrainingWebhookError):
    """Raised when the request signature does not match the payload."""
    pass


class ValidationError(TrainingWebhookError):
    """Raised when the payload is missing required data."""
    pass


class NotFoundError(TrainingWebhookError):
    """Raised when the user referenced by a payload does not exist."""
    pass


class UnexpectedError(TrainingWebhookError):
    """Raised for any failure without a more specific classification."""
    pass


class ExternalAPIError(TrainingWebhookError):
    """Raised when external API calls fail."""
    pass


class ConfigurationError(TrainingWebhookError):
    """Raised when configuration is invalid."""
    pass


ErrorBody = Union[List[Dict[str, str]], str]


class ErrorResponseBuilder:
    """Converts exceptions into (status_code, body) pairs for the webhook route."""

    # Errors reported as a list of {code, message} objects
    STRUCTURED_ERRORS = (SignatureError, ValidationError)

    @classmethod
    def build(cls, exc: Exception) -> Tuple[int, ErrorBody]:
        if isinstance(exc, cls.STRUCTURED_ERRORS):
            return HTTP_400_BAD_REQUEST, [exc.to_error_item()]

        if isinstance(exc, NotFoundError):
            return HTTP_404_NOT_FOUND, exc.message

        if not isinstance(exc, TrainingWebhookError):
            exc = UnexpectedError(message=str(exc), error_code="unexpected")

        return HTTP_400_BAD_REQUEST, exc.message

    @staticmethod
    def classify(exc: Exception) -> str:
        """Short error label used for metrics."""
        if isinstance(exc, TrainingWebhookError) and exc.error_code:
            return exc.error_code
        if isinstance(exc, NotFoundError):
            return "not-found"
        return "unexpected"


# Specific error factory functions
def create_signature_error() -> SignatureError:
    """Create the error returned when signature verification fails."""
    return SignatureError(
        message="request signature verfication failed",
        error_code="signature-verification-error",
    )


def create_missing_user_id_error() -> ValidationError:
    return ValidationError(
        message="response from typeform did not contain alchemy user id",
        error_code="missing-user-id",
    )


def create_missing_submitted_date_error() -> ValidationError:
    return ValidationError(
        message="response from typeform did not contain submitted_at",
        error_code="missing-submitted-date",
    )


def create_missing_score_error() -> ValidationError:
    return ValidationError(
        message="response from typeform did not contain a calculated score",
        error_code="missing-score",
    )


def create_missing_scored_answers_error() -> ValidationError:
    """Create the error for a form response without any choice answers."""
    return ValidationError(
        message="response from typeform did not contain any choice answers to grade",
        error_code="missing-scored-answers",
    )


def create_invalid_payload_error(exc: Any) -> ValidationError:
    """Create the error for a body that does not fit the Typeform payload shape."""
    fields = sorted(
        {".".join(str(part) for part in error["loc"]) for error in exc.errors()}
    )
    return ValidationError(
        message=f"response from typeform has invalid fields: {', '.join(fields)}",
        error_code="invalid-payload",
        details={"fields": fields},
    )


def create_user_not_found_error(user_id: str) -> NotFoundError:
    """Create a user not found error."""
    return NotFoundError(
        message="user record with id from typeform result was not found",
        error_code="user-not-found",
        details={"user_id": user_id},
    )


def create_external_api_error(api_name: str, status_code: int, reason: str) -> ExternalAPIError:
    """Create an external API error."""
    return ExternalAPIError(
        message=f"External API '{api_name}' failed: {reason}",
        error_code="external-api-failed",
        details={"api_name": api_name, "status_code": status_code, "reason": reason}
    )

# healthsyntra/errors.py

from typing import Any, Optional


class HealthsyntraError(Exception):
    """
    Base class for per-operation failures.

    - status_code is what the HTTP layer answers with.
    - message is safe to show to the user.
    """

    status_code: int = 500
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def kind(self) -> str:
        return type(self).__name__


class ConfigurationError(HealthsyntraError):
    status_code = 500
    default_message = "Server configuration error."


class ValidationError(HealthsyntraError):
    status_code = 400
    default_message = "The request is missing required fields."


class SchemaValidationError(HealthsyntraError):
    status_code = 502
    default_message = "The AI service returned an unexpected answer. Please try again."


class UpstreamServiceError(HealthsyntraError):
    status_code = 502
    default_message = "The AI service is unavailable right now. Please try again later."


class GatewayError(HealthsyntraError):
    status_code = 500
    default_message = "Could not initiate the checkout process. Please try again."


class ClientRedirectError(HealthsyntraError):
    status_code = 500
    default_message = "Stripe.js has not loaded yet."


class AuthenticationError(HealthsyntraError):
    status_code = 401
    default_message = "An unexpected authentication error occurred. Please try again later."

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code


class NotAuthenticated(HealthsyntraError):
    status_code = 401
    default_message = "No user is logged in."


class ReauthenticationRequired(HealthsyntraError):
    status_code = 401
    default_message = (
        "This is a sensitive operation. Please log out and log back in "
        "before deleting your account."
    )


class PersistenceError(HealthsyntraError):
    status_code = 500
    default_message = "Could not save your changes. Please try again."


class OperationResult:
    """
    Success/failure value handed back to the UI layer instead of raising.
    """

    def __init__(
        self,
        success: bool,
        *,
        message: Optional[str] = None,
        error: Optional[HealthsyntraError] = None,
        value: Any = None,
    ) -> None:
        self.success = success
        self.message = message
        self.error = error
        self.value = value

    @classmethod
    def ok(cls, value: Any = None, message: Optional[str] = None) -> "OperationResult":
        return cls(True, value=value, message=message)

    @classmethod
    def fail(cls, error: HealthsyntraError) -> "OperationResult":
        return cls(False, message=error.message, error=error)

    def __bool__(self) -> bool:
        return self.success

    def __repr__(self) -> str:
        return f"OperationResult(success={self.success!r}, message={self.message!r})"

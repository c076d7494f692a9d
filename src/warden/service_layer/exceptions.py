"""ABOUTME: Custom exceptions for service layer operations
ABOUTME: Each error kind carries the machine readable code that callers receive as {"error": code}"""


class WardenError(Exception):
    """Base exception for all our custom errors."""


class InvalidPasswordHash(WardenError):
    """The stored hash is not an Argon2id hash we can parse."""


class ServiceLayerError(WardenError):
    """Base exception for all service layer errors."""

    code = "UNEXPECTED_ERROR"

    def __init__(self, message: str = "", code: str | None = None) -> None:
        if code:
            self.code = code
        super().__init__(message or self.code)


class InvalidInput(ServiceLayerError):
    """Malformed email, password, code or key. Retrying the same input will not help."""

    code = "INVALID_DATA"


class IncorrectCredential(ServiceLayerError):
    """Wrong password, code, TOTP or recovery code."""

    code = "INCORRECT_PASSWORD"


class IncorrectPassword(IncorrectCredential):
    code = "INCORRECT_PASSWORD"


class IncorrectCode(IncorrectCredential):
    code = "INCORRECT_CODE"


class RateLimitExceeded(ServiceLayerError):
    """Raised when a caller has exhausted a rate limit for an operation."""

    code = "TOO_MANY_REQUESTS"

    def __init__(self, operation: str = "") -> None:
        message = f"Rate limit exceeded for {operation}" if operation else "Rate limit exceeded. Please try again later"
        super().__init__(message)
        self.operation = operation


class NotFoundError(ServiceLayerError):
    """General error to indicate something cannot be found in a repository"""

    code = "NOT_FOUND"


class UserNotFoundError(NotFoundError):
    """No user with the given email. Used where the email is the lookup key."""

    code = "USER_NOT_EXISTS"


class NoActiveRequest(NotFoundError):
    """There is no unexpired request to verify against, so the flow has to start again."""

    code = "NOT_ALLOWED"


class InvalidRequest(NotFoundError):
    """The password reset request is missing or has expired."""

    code = "INVALID_REQUEST"


class UserAlreadyExists(ServiceLayerError):
    """Raised when an email address is already used by another user."""

    code = "EMAIL_ALREADY_USED"

    def __init__(self, email: str = "") -> None:
        super().__init__(f"Email '{email}' is already used" if email else "Email is already used")
        self.email = email


class PasswordTooWeak(ServiceLayerError):
    """Exception if the password is too weak."""

    code = "WEAK_PASSWORD"


class StateConflict(ServiceLayerError):
    """The operation is not allowed in the current state of the flow."""

    code = "NOT_ALLOWED"


class NotAllowed(StateConflict):
    code = "NOT_ALLOWED"


class EmailNotVerified(StateConflict):
    code = "EMAIL_NOT_VERIFIED"


class SecondFactorNotVerified(StateConflict):
    code = "SECOND_FACTOR_NOT_VERIFIED"

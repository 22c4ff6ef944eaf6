"""API error classes.

Every error maps to an HTTP status and a machine-readable code. A single
set of exception handlers in app.main renders them into the
{"success": false, "message", "code"} envelope.

Token-level CredentialError subclasses (app.core.tokens) are not APIErrors;
the access guard and session service translate them.
"""


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class BadRequestError(APIError):
    """Request violates a business rule (400).

    E.g., unlinking the only sign-in method of an account.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="BAD_REQUEST",
            message=message,
            status_code=400,
        )


class UnauthenticatedError(APIError):
    """Authentication required (401).

    Use when no valid bearer credential is provided, or the account it
    names no longer exists.
    """

    def __init__(
        self,
        message: str = "Authentication required",
        *,
        code: str = "UNAUTHENTICATED",
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=401,
        )


class InvalidCredentialError(UnauthenticatedError):
    """A presented credential failed verification (401).

    Expired and malformed credentials are deliberately not distinguished.
    """

    def __init__(self, message: str = "Invalid credential") -> None:
        super().__init__(message, code="INVALID_CREDENTIAL")


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when auth is valid but the account lacks the role or ownership.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictRetryExhaustedError(APIError):
    """Concurrent writes kept colliding on a unique constraint (409).

    Raised by the identity resolver after its single retry also hit a
    uniqueness violation.
    """

    def __init__(
        self, message: str = "Conflicting concurrent sign-in, please retry"
    ) -> None:
        super().__init__(
            code="CONFLICT_RETRY_EXHAUSTED",
            message=message,
            status_code=409,
        )


class StoreUnavailableError(APIError):
    """The identity store could not be reached (503)."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(
            code="STORE_UNAVAILABLE",
            message=message,
            status_code=503,
        )

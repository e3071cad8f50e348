"""API error classes.

Every error the service raises on purpose is an APIError subclass, so the
exception handler in main.py can render it in the standard error envelope
with the right HTTP status.

Token failures are deliberately coarse: a magic-link failure never says
whether the token was unknown, already used, or expired.
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
        headers: Optional extra response headers (e.g., Retry-After).
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        self.headers = headers
        super().__init__(message)


class ValidationError(APIError):
    """Field validation failed (400).

    Use for request body validation errors, query param errors, etc.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Use when no valid session credentials are provided.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Not allowed to access resource (403).

    Use when the session is valid but the user lacks permission.
    """

    def __init__(self, message: str = "Access denied") -> None:
        super().__init__(
            code="FORBIDDEN",
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    Use when requested resource doesn't exist OR doesn't belong to the
    caller's organizations. Revealing "exists but not yours" leaks
    information.
    """

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


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class InvalidStateError(APIError):
    """Business rule violation (422).

    Use when request is syntactically valid but violates business rules.
    E.g., requesting a one-time code for an invite that does not use one.
    """

    def __init__(self, message: str) -> None:
        super().__init__(
            code="INVALID_STATE_TRANSITION",
            message=message,
            status_code=422,
        )


# =============================================================================
# Token and session errors
# =============================================================================


class InvalidOrExpiredTokenError(APIError):
    """Magic link is unknown, already redeemed, or expired (401).

    One generic message for every case so a caller cannot probe token state.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_OR_EXPIRED_TOKEN",
            message="Invalid or expired magic link",
            status_code=401,
        )


class RateLimitedError(APIError):
    """Too many attempts inside the sliding window (429).

    Args:
        retry_after: Whole seconds until the oldest counted attempt leaves
            the window.
    """

    def __init__(self, retry_after: int) -> None:
        self.retry_after = retry_after
        super().__init__(
            code="RATE_LIMITED",
            message="Too many requests. Please try again later.",
            status_code=429,
            details=[{"retry_after": retry_after}],
            headers={"Retry-After": str(retry_after)},
        )


# =============================================================================
# Guest invite errors
# =============================================================================


class InvalidInviteTokenError(APIError):
    """No invite matches the presented token (404).

    Also raised for a token that was replaced by regeneration.
    """

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_TOKEN",
            message="Invalid invite token",
            status_code=404,
        )


class InviteRevokedError(APIError):
    """Invite was revoked by the project owner (410)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVITE_REVOKED",
            message="Invite has been revoked",
            status_code=410,
        )


class InviteExpiredError(APIError):
    """Invite expiry timestamp is in the past (410)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVITE_EXPIRED",
            message="Invite has expired",
            status_code=410,
        )


class PasscodeRequiredError(APIError):
    """Passcode-protected invite presented without a passcode (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="PASSCODE_REQUIRED",
            message="Passcode required",
            status_code=400,
        )


class InvalidPasscodeError(APIError):
    """Passcode does not match (401)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_PASSCODE",
            message="Invalid passcode",
            status_code=401,
        )


class OtpRequiredError(APIError):
    """One-time code verification attempted without a code (400)."""

    def __init__(self) -> None:
        super().__init__(
            code="OTP_REQUIRED",
            message="One-time code required",
            status_code=400,
        )


class InvalidOtpError(APIError):
    """One-time code is wrong, expired, consumed, or out of attempts (401)."""

    def __init__(self) -> None:
        super().__init__(
            code="INVALID_OTP",
            message="Invalid or expired one-time code",
            status_code=401,
        )

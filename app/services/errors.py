"""Resolver failures surfaced to callers as request-level errors."""


class ResolverError(Exception):
    """Base class for failures with a stable code and a human-readable message."""

    code = "INTERNAL_ERROR"
    default_message = "Internal server error."

    def __init__(self, message: str | None = None, cause: Exception | None = None) -> None:
        self.message = message or self.default_message
        self.cause = cause
        super().__init__(self.message)


class MissingFields(ResolverError):
    code = "MISSING_FIELDS"
    default_message = "Missing required fields."

    def __init__(self, fields: list[str] | tuple[str, ...] = (), message: str | None = None) -> None:
        self.fields = list(fields)
        if message is None and self.fields:
            message = f"Missing required fields: {', '.join(self.fields)}."
        super().__init__(message)


class FieldTooLong(ResolverError):
    code = "FIELD_TOO_LONG"
    default_message = "A field exceeds its maximum length."

    def __init__(self, fields: list[str] | tuple[str, ...] = (), message: str | None = None) -> None:
        self.fields = list(fields)
        if message is None and self.fields:
            message = f"Fields exceed their maximum length: {', '.join(self.fields)}."
        super().__init__(message)


class InvalidEmail(ResolverError):
    code = "INVALID_EMAIL"
    default_message = "Invalid email address."


class InvalidKind(ResolverError):
    code = "INVALID_KIND"
    default_message = "Posting kind must be REQUEST or OFFER."


class DuplicateEmail(ResolverError):
    code = "DUPLICATE_EMAIL"
    default_message = "A user with that email already exists."


class InvalidCredentials(ResolverError):
    # Same text for unknown email and wrong password.
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid email or password."


class Unauthorized(ResolverError):
    code = "UNAUTHORIZED"
    default_message = "Not authenticated."


class Forbidden(ResolverError):
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this operation."


class NotFound(ResolverError):
    code = "NOT_FOUND"
    default_message = "Not found."


class IndexOutOfRange(ResolverError):
    code = "INDEX_OUT_OF_RANGE"
    default_message = "Index out of range."


class InternalError(ResolverError):
    code = "INTERNAL_ERROR"
    default_message = "Internal server error."

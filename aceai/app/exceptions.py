"""Custom exceptions for the study companion."""


class AceAIException(Exception):
    """Base class for application exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Unexpected error"):
        self.message = message
        super().__init__(message)


class InputValidationError(AceAIException):
    """Raised when a required field is missing or empty.

    Surfaced before any network call. Maps to HTTP 400 Bad Request.
    """
    status_code = 400

    def __init__(self, field: str | None = None, message: str | None = None):
        self.field = field
        super().__init__(message or f"{field} is required")


class UpstreamRequestError(AceAIException):
    """Raised when the study backend answers with a non-success status.

    The raw response body is kept so callers can show it verbatim.
    """

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Request failed ({status_code}). {body}")


class MalformedResponseError(AceAIException):
    """Raised when a successful upstream response does not have the expected shape.

    Maps to HTTP 502 Bad Gateway.
    """
    status_code = 502

    def __init__(self, detail: str, raw: str = "", message: str | None = None):
        self.detail = detail
        self.raw = raw
        super().__init__(message or f"Malformed response: {detail}")


class StreamDecodeError(MalformedResponseError):
    """Raised when a ``result`` event carries a payload that is not a course guide."""

    def __init__(self, detail: str, raw: str = ""):
        super().__init__(detail, raw, message=f"Malformed result event: {detail}")

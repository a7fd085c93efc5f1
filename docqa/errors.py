"""Error taxonomy for the question-answering service.

Every error carries its kind at the point it is raised, so the web layer
maps errors to responses without looking at message text.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Caller-facing error categories and their HTTP status codes."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    INTERNAL = "internal"

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self]


_STATUS_CODES = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.TIMEOUT: 504,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.INTERNAL: 500,
}

GENERIC_ERROR_MESSAGE = (
    "An unexpected error occurred while processing your request. Please try again."
)


class DocQAError(Exception):
    """Base exception for all service errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        self.message = message
        if kind is not None:
            self.kind = kind
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return self.kind.status_code

    @property
    def public_message(self) -> str:
        """Message that is safe to show to the caller."""
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.public_message}


class ValidationError(DocQAError):
    """Raised when caller input is rejected."""

    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.field:
            data["field"] = self.field
        return data


class ModelNotFoundError(DocQAError):
    """Raised when the model server does not have the requested model."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, model: str):
        self.model = model
        super().__init__(
            f"Model '{model}' not found. Please download it using: ollama pull {model}"
        )


class ProviderTimeoutError(DocQAError):
    """Raised when the model server does not answer within the deadline."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, operation: str, timeout: Optional[float] = None):
        self.operation = operation
        self.timeout = timeout
        super().__init__(
            "Connection to Ollama timed out. "
            "Please ensure Ollama is running and accessible."
        )


class RateLimitExceeded(DocQAError):
    """Raised when a client has used up its request budget."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, reset_at: float):
        self.reset_at = reset_at
        super().__init__("Too many requests. Please try again later.")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["resetAt"] = self.reset_at
        return data


class InternalError(DocQAError):
    """Raised for persistence failures and unexpected provider responses.

    The detail is kept for logging; callers only ever see the generic message.
    """

    kind = ErrorKind.INTERNAL

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)

    @property
    def public_message(self) -> str:
        return GENERIC_ERROR_MESSAGE


class DimensionMismatchError(InternalError):
    """Raised when two vectors that must be compared differ in length."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )

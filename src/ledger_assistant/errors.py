"""Error taxonomy shared by the client, the function registries and the orchestrator."""

from __future__ import annotations

from enum import StrEnum
from typing import Optional


class ErrorKind(StrEnum):
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMITED = "rate_limited"
    TRANSIENT = "transient"
    FATAL = "fatal"
    TIMEOUT = "timeout"
    VALIDATION = "validation"
    EXECUTION = "execution"
    UNKNOWN_FUNCTION = "unknown_function"
    INTERNAL = "internal"

    @property
    def retryable(self) -> bool:
        return self in (ErrorKind.RATE_LIMITED, ErrorKind.TRANSIENT)


# Text shown to the end user. Upstream detail goes to the log only.
USER_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.QUOTA_EXCEEDED: "The daily usage limit has been reached. Please try again tomorrow.",
    ErrorKind.RATE_LIMITED: "The assistant is busy right now. Please try again in a few seconds.",
    ErrorKind.TRANSIENT: "The assistant service is temporarily unavailable. Please try again.",
    ErrorKind.FATAL: "The assistant could not process this request.",
    ErrorKind.TIMEOUT: "The request to the assistant timed out.",
    ErrorKind.VALIDATION: "The request contained invalid parameters.",
    ErrorKind.EXECUTION: "The requested operation could not be completed.",
    ErrorKind.UNKNOWN_FUNCTION: "The requested operation is not available.",
    ErrorKind.INTERNAL: "An unexpected error occurred. Please try again.",
}


def user_message(kind: ErrorKind) -> str:
    return USER_MESSAGES[kind]


class UpstreamError(Exception):
    """A classified failure of the LLM provider, raised inside the retry loop."""

    def __init__(self, kind: ErrorKind, detail: str = "", status_code: Optional[int] = None):
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"UpstreamError(kind={self.kind.value!r}, status_code={self.status_code!r})"


class DeadlineExceeded(Exception):
    """A network call hit its deadline or the caller cancelled it."""


class DuplicateFunctionError(ValueError):
    """Two function handlers share a name within one registry or orchestrator."""


class ConfigError(ValueError):
    """Configuration is structurally valid YAML but semantically unusable."""


class PaymentRejected(ValueError):
    """A payment the invoice cannot take: it is closed, or the amount exceeds the open balance."""

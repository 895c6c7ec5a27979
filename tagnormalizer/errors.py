"""Errors raised by the tag normalization engine and its collaborators."""

from typing import Iterable, Optional

# HTTP statuses the providers use for throttling and transient faults
RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
RETRYABLE_ERROR_CODES = frozenset({
    "Throttling",
    "ThrottlingException",
    "TooManyRequests",
    "RequestLimitExceeded",
    "ServiceUnavailable",
})


class TagNormalizerError(Exception):
    """Base error for this package."""


class RuleFileError(TagNormalizerError):
    """Raised when a rule table cannot be read or parsed."""


class ResultSinkError(TagNormalizerError):
    """Raised when the result output cannot be opened for writing."""


class TransportError(TagNormalizerError):
    """A read or mutate call against the provider failed.

    Covers network faults, authorization failures, provider rejections and
    unsupported resource types.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    @property
    def retryable(self) -> bool:
        if self.status_code in RETRYABLE_STATUS_CODES:
            return True
        return self.code in RETRYABLE_ERROR_CODES


class VerificationMismatch(TagNormalizerError):
    """The mutation call succeeded but the re-read shows it did not take effect."""

    def __init__(self, phase: str, keys: Iterable[str]):
        self.phase = phase
        self.keys = list(keys)
        super().__init__(f"{phase}: {', '.join(self.keys)}")

"""Error classification for generation API failures.

This module maps HTTP statuses and transport exceptions raised while calling
the generation API onto failure reasons, and decides which of them are
systemic (abort the whole request) and which are tolerated per batch.
"""

import re
from enum import Enum
from typing import Optional

import httpx


class FailureReason(Enum):
    """Reasons a single batch attempt can fail."""

    TIMEOUT = "timeout"  # Client-side timeout
    RATE_LIMITED = "rate_limited"  # HTTP 429
    FORBIDDEN = "forbidden"  # HTTP 401/403, bad or missing credentials
    BAD_REQUEST = "bad_request"  # HTTP 400, malformed request
    NETWORK = "network"  # Connection-level failure
    UPSTREAM = "upstream"  # Any other non-2xx status
    MALFORMED_RESPONSE = "malformed_response"  # 2xx without usable text
    NO_JSON_FOUND = "no_json_found"
    PARSE_ERROR = "parse_error"
    SCHEMA_ERROR = "schema_error"
    COUNT_MISMATCH = "count_mismatch"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    CRITICAL = "critical"  # Requires immediate attention (e.g., credentials)
    HIGH = "high"  # Important but not blocking (e.g., rate limits)
    MEDIUM = "medium"  # Should be addressed (e.g., upstream errors)
    LOW = "low"  # Informational (e.g., temporary network issues)


# Failures that cannot be fixed by moving on to the next batch
SYSTEMIC_REASONS = frozenset({FailureReason.FORBIDDEN, FailureReason.BAD_REQUEST})


class ClassifiedError:
    """A classified API error with reason and severity."""

    def __init__(
        self,
        reason: FailureReason,
        severity: ErrorSeverity,
        provider: str,
        original_error: str,
        message: str,
        status_code: Optional[int] = None,
    ):
        """Initialize classified error.

        Args:
            reason: Failure reason
            severity: Error severity level
            provider: Provider name (e.g. "gemini")
            original_error: Original error type name
            message: Human-readable error message
            status_code: HTTP status code, when the upstream returned one
        """
        self.reason = reason
        self.severity = severity
        self.provider = provider
        self.original_error = original_error
        self.message = message
        self.status_code = status_code

    @property
    def is_systemic(self) -> bool:
        """Whether this failure should abort the whole request."""
        return self.reason in SYSTEMIC_REASONS

    def __str__(self) -> str:
        """String representation of classified error."""
        status = f" (HTTP {self.status_code})" if self.status_code else ""
        return (
            f"[{self.severity.value.upper()}] {self.provider}: "
            f"{self.reason.value}{status} - {self.message}"
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for logging/serialization."""
        return {
            "reason": self.reason.value,
            "severity": self.severity.value,
            "provider": self.provider,
            "original_error": self.original_error,
            "message": self.message,
            "status_code": self.status_code,
            "is_systemic": self.is_systemic,
        }


class ErrorClassifier:
    """Classifies generation API errors."""

    # Fallback patterns for exceptions that carry no status or transport type
    RATE_LIMIT_PATTERNS = [
        r"rate.*limit",
        r"too.*many.*requests",
        r"resource.*exhausted",
        r"\b429\b",
    ]

    AUTH_PATTERNS = [
        r"invalid.*api.*key",
        r"permission.*denied",
        r"unauthorized",
        r"forbidden",
        r"\b40[13]\b",
    ]

    TIMEOUT_PATTERNS = [
        r"timed?\s*out",
        r"deadline.*exceeded",
    ]

    NETWORK_PATTERNS = [
        r"connection.*(error|refused|reset|aborted)",
        r"network.*error",
        r"dns.*error",
        r"name.*resolution",
    ]

    @staticmethod
    def classify_status(
        status_code: int,
        provider: str,
        detail: str = "",
    ) -> ClassifiedError:
        """Classify a non-2xx HTTP response.

        Args:
            status_code: HTTP status code returned by the API
            provider: Provider name
            detail: Response body excerpt for the message

        Returns:
            ClassifiedError for the status
        """
        suffix = f": {detail[:200]}" if detail else ""

        if status_code == 429:
            return ClassifiedError(
                reason=FailureReason.RATE_LIMITED,
                severity=ErrorSeverity.HIGH,
                provider=provider,
                original_error="HTTPStatusError",
                message=f"Rate limit exceeded for {provider}{suffix}",
                status_code=status_code,
            )

        if status_code in (401, 403):
            return ClassifiedError(
                reason=FailureReason.FORBIDDEN,
                severity=ErrorSeverity.CRITICAL,
                provider=provider,
                original_error="HTTPStatusError",
                message=(
                    f"Access denied. Please verify your {provider} API key "
                    f"is valid{suffix}"
                ),
                status_code=status_code,
            )

        if status_code == 400:
            return ClassifiedError(
                reason=FailureReason.BAD_REQUEST,
                severity=ErrorSeverity.CRITICAL,
                provider=provider,
                original_error="HTTPStatusError",
                message=f"Request rejected by {provider} as malformed{suffix}",
                status_code=status_code,
            )

        return ClassifiedError(
            reason=FailureReason.UPSTREAM,
            severity=ErrorSeverity.MEDIUM,
            provider=provider,
            original_error="HTTPStatusError",
            message=f"{provider} returned HTTP {status_code}{suffix}",
            status_code=status_code,
        )

    @staticmethod
    def classify_error(
        error: Exception,
        provider: str,
    ) -> ClassifiedError:
        """Classify an exception raised while calling the API.

        Args:
            error: The exception that was raised
            provider: Provider name

        Returns:
            ClassifiedError with reason and severity
        """
        error_type = type(error).__name__

        if isinstance(error, httpx.HTTPStatusError):
            return ErrorClassifier.classify_status(
                error.response.status_code, provider, error.response.text
            )

        # TimeoutException is a TransportError, so it must be checked first
        if isinstance(error, httpx.TimeoutException):
            return ErrorClassifier._timeout(provider, error_type, error)

        if isinstance(error, httpx.TransportError):
            return ErrorClassifier._network(provider, error_type, error)

        error_str = str(error).lower()

        if ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.RATE_LIMIT_PATTERNS
        ):
            return ClassifiedError(
                reason=FailureReason.RATE_LIMITED,
                severity=ErrorSeverity.HIGH,
                provider=provider,
                original_error=error_type,
                message=f"Rate limit exceeded for {provider}",
            )

        if ErrorClassifier._match_patterns(error_str, ErrorClassifier.AUTH_PATTERNS):
            return ClassifiedError(
                reason=FailureReason.FORBIDDEN,
                severity=ErrorSeverity.CRITICAL,
                provider=provider,
                original_error=error_type,
                message=f"Access denied. Please verify your {provider} API key",
            )

        if isinstance(error, TimeoutError) or ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.TIMEOUT_PATTERNS
        ):
            return ErrorClassifier._timeout(provider, error_type, error)

        if isinstance(error, ConnectionError) or ErrorClassifier._match_patterns(
            error_str, ErrorClassifier.NETWORK_PATTERNS
        ):
            return ErrorClassifier._network(provider, error_type, error)

        return ClassifiedError(
            reason=FailureReason.UPSTREAM,
            severity=ErrorSeverity.MEDIUM,
            provider=provider,
            original_error=error_type,
            message=f"Unclassified error from {provider}: {str(error)[:100]}",
        )

    @staticmethod
    def malformed_response(provider: str, detail: str) -> ClassifiedError:
        """Build the error for a 2xx response without usable content."""
        return ClassifiedError(
            reason=FailureReason.MALFORMED_RESPONSE,
            severity=ErrorSeverity.MEDIUM,
            provider=provider,
            original_error="MalformedResponse",
            message=f"{provider} response had no usable content: {detail}",
        )

    @staticmethod
    def _timeout(provider: str, error_type: str, error: Exception) -> ClassifiedError:
        return ClassifiedError(
            reason=FailureReason.TIMEOUT,
            severity=ErrorSeverity.LOW,
            provider=provider,
            original_error=error_type,
            message=f"Request to {provider} timed out: {error}",
        )

    @staticmethod
    def _network(provider: str, error_type: str, error: Exception) -> ClassifiedError:
        return ClassifiedError(
            reason=FailureReason.NETWORK,
            severity=ErrorSeverity.LOW,
            provider=provider,
            original_error=error_type,
            message=f"Network connectivity issue reaching {provider}: {error}",
        )

    @staticmethod
    def _match_patterns(text: str, patterns: list[str]) -> bool:
        """Check if text matches any of the given regex patterns.

        Args:
            text: Text to search
            patterns: List of regex patterns

        Returns:
            True if any pattern matches
        """
        for pattern in patterns:
            if re.search(pattern, text, re.IGNORECASE):
                return True
        return False

    @staticmethod
    def should_alert(classified_error: ClassifiedError) -> bool:
        """Determine if an error should be reported to error tracking.

        Args:
            classified_error: The classified error

        Returns:
            True for critical (systemic) failures
        """
        return classified_error.severity == ErrorSeverity.CRITICAL

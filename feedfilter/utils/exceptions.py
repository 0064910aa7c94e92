"""
FeedFilter Custom Exceptions
============================

Exception hierarchy for the feed pipeline with error codes, context
information, and the transport classification used by the retry loop.
"""

import asyncio
from typing import Optional, Dict, Any
from enum import Enum

import aiohttp


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"

    # Feed retrieval errors (F001-F099)
    FEED_EMPTY_CONTENT = "F001"
    FEED_MALFORMED = "F002"
    FEED_SERVER_ERROR = "F003"
    FEED_TIMEOUT = "F004"
    FEED_HTTP_ERROR = "F005"
    FEED_NETWORK_ERROR = "F006"
    FEED_RETRIES_EXHAUSTED = "F007"

    # Rule errors (R001-R099)
    RULE_INVALID_PATTERN = "R001"
    RULE_UNRESOLVED_PREFIX = "R002"


# HTTP statuses that count as transient on top of every 5xx
REQUEST_TIMEOUT_STATUS = 408


class FeedFilterError(Exception):
    """Base exception for all FeedFilter errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize FeedFilter error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: User-friendly error message
            recoverable: Whether retrying the operation may succeed
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": self.message,
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        return self.message


class ConfigurationError(FeedFilterError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.pop("user_message", f"Configuration error: {message}"),
            **kwargs,
        )


class FeedError(FeedFilterError):
    """Feed retrieval and parsing errors."""

    def __init__(self, message: str, feed_url: Optional[str] = None, **kwargs):
        """Initialize feed error.

        Args:
            message: Error message
            feed_url: Feed URL that caused the error
            **kwargs: Additional arguments for FeedFilterError
        """
        context = kwargs.pop("context", {})
        if feed_url:
            context["feed_url"] = feed_url

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.FEED_NETWORK_ERROR),
            context=context,
            user_message=kwargs.pop(
                "user_message", f"Feed processing failed: {message}"
            ),
            recoverable=kwargs.pop("recoverable", False),
            **kwargs,
        )


class EmptyContentError(FeedError):
    """The upstream returned an empty or whitespace-only body."""

    def __init__(self, message: str = "Received empty RSS content", **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_EMPTY_CONTENT)
        super().__init__(message, **kwargs)


class MalformedInputError(FeedError):
    """The body could not be parsed into a tree with a root element."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", ErrorCode.FEED_MALFORMED)
        super().__init__(message, **kwargs)


class TransientTransportError(FeedError):
    """Server error, request-timeout status or operation timeout. Retriable."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        context = kwargs.pop("context", {})
        if status is not None:
            context["status"] = status
        kwargs.setdefault(
            "error_code",
            ErrorCode.FEED_TIMEOUT if status in (None, REQUEST_TIMEOUT_STATUS)
            else ErrorCode.FEED_SERVER_ERROR,
        )
        kwargs["recoverable"] = True
        super().__init__(message, context=context, **kwargs)
        self.status = status


class PermanentTransportError(FeedError):
    """Any other transport failure (4xx statuses, connection errors)."""

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        context = kwargs.pop("context", {})
        if status is not None:
            context["status"] = status
        kwargs.setdefault(
            "error_code",
            ErrorCode.FEED_HTTP_ERROR if status is not None
            else ErrorCode.FEED_NETWORK_ERROR,
        )
        kwargs["recoverable"] = False
        super().__init__(message, context=context, **kwargs)
        self.status = status


class RetryExhaustedError(FeedError):
    """All attempts failed without a recorded retriable error."""

    def __init__(self, message: str, attempts: int, **kwargs):
        context = kwargs.pop("context", {})
        context["attempts"] = attempts
        kwargs.setdefault("error_code", ErrorCode.FEED_RETRIES_EXHAUSTED)
        super().__init__(message, context=context, **kwargs)


class RuleError(FeedFilterError):
    """A transformation rule cannot be applied (bad regex, unknown prefix)."""

    def __init__(self, message: str, tag_name: Optional[str] = None, **kwargs):
        context = kwargs.pop("context", {})
        if tag_name:
            context["tag_name"] = tag_name

        super().__init__(
            message=message,
            error_code=kwargs.pop("error_code", ErrorCode.RULE_INVALID_PATTERN),
            context=context,
            user_message=kwargs.pop("user_message", f"Rule skipped: {message}"),
            **kwargs,
        )


# Exception handling utilities


def classify_transport_error(
    exception: BaseException, feed_url: Optional[str] = None
) -> Optional[FeedError]:
    """Map aiohttp/asyncio failures onto the transport taxonomy.

    Args:
        exception: Exception raised while retrieving the feed
        feed_url: Source URL for error context

    Returns:
        The classified FeedError, or None if the exception is not a
        transport failure
    """
    if isinstance(exception, FeedError):
        return exception

    if isinstance(exception, aiohttp.ClientResponseError):
        status = exception.status
        message = f"HTTP error: {exception.message}, Status: {status}"
        if status >= 500 or status == REQUEST_TIMEOUT_STATUS:
            return TransientTransportError(message, status=status, feed_url=feed_url)
        return PermanentTransportError(message, status=status, feed_url=feed_url)

    # aiohttp.ServerTimeoutError subclasses asyncio.TimeoutError, which is
    # distinct from the builtin TimeoutError before Python 3.11
    if isinstance(exception, (asyncio.TimeoutError, TimeoutError)):
        return TransientTransportError("Request timed out", feed_url=feed_url)

    if isinstance(exception, aiohttp.ClientError):
        return PermanentTransportError(
            f"Network error: {exception}", feed_url=feed_url
        )

    return None


def describe_error(exception: BaseException) -> str:
    """Build the one-line failure description logged by the poll loop."""
    if isinstance(exception, (TransientTransportError, PermanentTransportError)):
        if exception.status is not None:
            return f"HTTP error: {exception.message}, Status: {exception.status}"
        if exception.error_code == ErrorCode.FEED_TIMEOUT:
            return "Request timed out"
        return f"Network error: {exception.message}"

    if isinstance(exception, MalformedInputError):
        return f"XML parsing error: {exception.message}"

    if isinstance(exception, EmptyContentError):
        return f"Empty feed: {exception.message}"

    return f"Unexpected error: {exception}"


def is_retryable_error(exception: BaseException) -> bool:
    """Check if an error is worth retrying.

    Only transient transport failures qualify: 5xx and 408 responses and
    operation timeouts.
    """
    return isinstance(exception, TransientTransportError) and exception.recoverable


def get_user_friendly_message(exception: Exception) -> str:
    """Get user-friendly error message for any exception."""
    if isinstance(exception, FeedFilterError):
        return exception.user_message

    return str(exception) or "An unexpected error occurred"

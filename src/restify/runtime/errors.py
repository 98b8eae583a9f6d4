"""Error taxonomy for the restify call runtime.

Request-shape problems (configuration, URL templates, codecs) surface before
any transport attempt and are never retried. Transport errors are opaque and
subject to the retry predicate. :class:`CallException` is the single
top-level wrapper raised by the API caller.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .types import RequestDescriptor, ResponseEnvelope


class RestifyError(Exception):
    """Base class for all runtime errors."""


class ConfigError(RestifyError):
    """Required configuration could not be resolved."""


class UrlResolutionError(RestifyError):
    """A path template placeholder is empty or has no matching parameter."""

    def __init__(self, placeholder: str, template: str) -> None:
        super().__init__(
            f"unresolved path placeholder {{{placeholder}}} in {template!r}"
        )
        self.placeholder = placeholder
        self.template = template


class SerializationError(RestifyError):
    """A value could not be encoded or a payload could not be decoded."""


class MapperNotFoundError(RestifyError):
    """No mapper is available for a type key, or the body cannot satisfy it."""

    def __init__(self, message: str, key: Any = None) -> None:
        super().__init__(message)
        self.key = key


class TransportError(RestifyError):
    """Failure raised by a transport adapter."""


class RetryableTransportError(TransportError):
    """Transient transport failure (connection refused, reset, ...)."""


class RequestTimeoutError(RetryableTransportError):
    """The transport gave up waiting for the remote side."""


class TransportClosedError(TransportError):
    """The transport adapter was closed before or during the attempt."""


class RetryExhaustedError(RestifyError):
    """The retry loop ran out of budget without a usable result."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 0,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class CallException(RestifyError):
    """Top-level failure of one API call.

    Always carries the originating request and, when the transport produced
    one, the response that could not be mapped. The underlying error is
    chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        request: RequestDescriptor,
        response: ResponseEnvelope | None = None,
    ) -> None:
        super().__init__(message)
        self.request = request
        self.response = response

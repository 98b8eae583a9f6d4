"""Transport adapters performing one physical HTTP exchange.

The runtime only depends on :class:`TransportAdapter`. The bundled
:class:`RequestsTransportAdapter` maps a resolved :class:`TransportRequest`
onto a ``requests.Session`` and normalizes its failures into the runtime's
transport errors. HTTP status codes are never treated as failures here; a
404 or 500 comes back as a regular envelope for the mapper to interpret.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod

import requests

from .config import ApiConfig
from .errors import (
    RequestTimeoutError,
    RetryableTransportError,
    TransportClosedError,
    TransportError,
)
from .types import ResponseEnvelope, TransportRequest, parse_content_type

logger = logging.getLogger(__name__)


class TransportAdapter(ABC):
    """Boundary abstraction over a concrete HTTP engine."""

    @abstractmethod
    def execute(
        self, request: TransportRequest, config: ApiConfig
    ) -> ResponseEnvelope:
        """Perform one exchange and return the raw response."""

    @abstractmethod
    def close(self) -> None:
        """Release engine resources. Must be idempotent."""


class RequestsTransportAdapter(TransportAdapter):
    """Transport adapter backed by ``requests``.

    The session is shared by all calls. ``close()`` flips a lock-guarded flag
    exactly once; later attempts fail with :class:`TransportClosedError`.
    """

    def __init__(self, session: requests.Session | None = None) -> None:
        """Create a new adapter.

        Args:
            session: Session to use; a fresh one is created when omitted.
        """
        self._session = session or requests.Session()
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    @staticmethod
    def _get_timeout(config: ApiConfig) -> float | None:
        """Resolve the per-attempt timeout in seconds."""
        if config.timeout_millis is None:
            return None
        return config.timeout_millis / 1000.0

    @staticmethod
    def _headers(
        request: TransportRequest, config: ApiConfig
    ) -> dict[str, str]:
        headers = dict(request.headers)
        if config.user_agent and not any(
            name.lower() == "user-agent" for name in headers
        ):
            headers["User-Agent"] = config.user_agent
        return headers

    @staticmethod
    def _payload(request: TransportRequest) -> bytes | None:
        if isinstance(request.payload, str):
            return request.payload.encode("utf-8")
        return request.payload

    @staticmethod
    def _envelope(response: requests.Response) -> ResponseEnvelope:
        headers = dict(response.headers)
        return ResponseEnvelope(
            status_code=response.status_code,
            headers=headers,
            body=response.content,
            content_type=parse_content_type(response.headers.get("Content-Type")),
        )

    @staticmethod
    def _map_exception(
        error: requests.exceptions.RequestException,
    ) -> TransportError:
        """Map requests exceptions to runtime transport errors."""
        if isinstance(error, requests.exceptions.Timeout):
            return RequestTimeoutError(str(error))
        if isinstance(error, requests.exceptions.ConnectionError):
            return RetryableTransportError(str(error))
        return TransportError(str(error))

    def execute(
        self, request: TransportRequest, config: ApiConfig
    ) -> ResponseEnvelope:
        if self._closed:
            raise TransportClosedError("transport adapter is closed")

        timeout = self._get_timeout(config)
        verify = True if config.verify_tls is None else config.verify_tls
        try:
            response = self._session.request(
                request.method.value,
                request.url,
                headers=self._headers(request, config),
                data=self._payload(request),
                timeout=timeout,
                allow_redirects=config.follow_redirects,
                verify=verify,
            )
        except requests.exceptions.RequestException as exc:
            if self._closed:
                raise TransportClosedError(
                    "transport adapter closed during request"
                ) from exc
            logger.debug(
                "transport attempt failed",
                extra={
                    "method": request.method.value,
                    "url": request.url,
                    "final_error": type(exc).__name__,
                },
            )
            raise self._map_exception(exc) from exc

        logger.debug(
            "transport attempt completed",
            extra={
                "method": request.method.value,
                "url": request.url,
                "status_code": response.status_code,
            },
        )
        return self._envelope(response)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._session.close()
        except Exception:  # pragma: no cover - best effort shutdown
            logger.warning("error while closing requests session", exc_info=True)

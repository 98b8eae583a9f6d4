"""API caller: the single entry point generated client stubs call into."""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from requests.structures import CaseInsensitiveDict

from .cancellation import CallCancelledError, CancellationToken
from .codec import BodyCodec, default_body_codec
from .config import ApiConfig, merge_config
from .errors import CallException, ConfigError
from .transport import TransportAdapter
from .types import RequestDescriptor, ResponseEnvelope, TransportRequest
from .urls import UrlBuilder, build_url

T = TypeVar("T")

CONTENT_TYPE = "Content-Type"

logger = logging.getLogger(__name__)


class ApiCaller:
    """Run one request description through config, URL, codec and retry.

    Only the transport exchange is retried. Configuration, URL and codec
    problems fail before the first attempt; every surviving failure is
    wrapped in :class:`CallException`, while cancellation propagates as is.
    """

    def __init__(
        self,
        transport: TransportAdapter,
        config: ApiConfig,
        url_builder: UrlBuilder = build_url,
        body_codec: BodyCodec | None = None,
    ) -> None:
        self._transport = transport
        self._config = config
        self._url_builder = url_builder
        self._default_codec = body_codec or default_body_codec()

    @property
    def config(self) -> ApiConfig:
        return self._config

    def _prepare(
        self, request: RequestDescriptor, cfg: ApiConfig
    ) -> TransportRequest:
        url = self._url_builder(
            cfg.base_url,
            request.url_path,
            request.path_parameters,
            request.query_parameters,
        )
        codec = cfg.body_codec or self._default_codec
        serialized = codec.serialize(request.body, request.content_type)

        headers: CaseInsensitiveDict[str] = CaseInsensitiveDict(
            cfg.default_headers
        )
        headers.update(request.headers)
        if serialized.content_type is not None and CONTENT_TYPE not in headers:
            headers[CONTENT_TYPE] = serialized.content_type

        return TransportRequest(
            method=request.method,
            url=url,
            headers=dict(headers.items()),
            payload=serialized.payload,
        )

    def call(
        self,
        request: RequestDescriptor,
        mapper: Callable[[ResponseEnvelope], T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        """Execute ``request`` and map the response with ``mapper``.

        Args:
            request: Description of the call.
            mapper: Function turning the response envelope into the result.
            cancel_token: Optional token observed before each attempt and
                before each backoff sleep.

        Returns:
            The mapped result.

        Raises:
            CallCancelledError: if ``cancel_token`` is cancelled.
            CallException: for any other failure; the original error is
                chained as ``__cause__``.
        """
        token = cancel_token or CancellationToken()
        token.raise_if_cancelled()

        try:
            cfg = merge_config(self._config, request.per_call_config)
            policy = cfg.retry_policy
            if policy is None:
                raise ConfigError("no retry policy resolved")
            transport_request = self._prepare(request, cfg)
            logger.debug(
                "dispatching call",
                extra={
                    "method": transport_request.method.value,
                    "url": transport_request.url,
                },
            )
            response = policy.retry(
                lambda: self._transport.execute(transport_request, cfg),
                token,
            )
        except CallCancelledError:
            raise
        except Exception as exc:
            logger.info(
                "call failed",
                extra={
                    "method": request.method.value,
                    "url_path": request.url_path,
                    "final_error": type(exc).__name__,
                },
            )
            raise CallException(
                f"{request.method.value} {request.url_path} failed: {exc}",
                request,
            ) from exc

        try:
            return mapper(response)
        except CallCancelledError:
            raise
        except Exception as exc:
            raise CallException(
                f"{request.method.value} {request.url_path}: cannot map "
                f"response with status {response.status_code}: {exc}",
                request,
                response,
            ) from exc

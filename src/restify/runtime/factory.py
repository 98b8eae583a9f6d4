"""Wiring of callers and generated clients from explicit dependencies."""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Any, Callable, Protocol, TypeVar

from .cancellation import CancellationToken
from .caller import ApiCaller
from .config import ApiConfig
from .mappers import ResponseMapperFactory, default_mapper_factory
from .retry import DEFAULT_TIME_BUDGET_MILLIS, RetryPolicy, TimeBoundRetryPolicy
from .transport import RequestsTransportAdapter, TransportAdapter
from .types import RequestDescriptor, ResponseEnvelope

T = TypeVar("T")
C_co = TypeVar("C_co", covariant=True)


class ClientConstructor(Protocol[C_co]):
    """Fixed constructor signature of generated client classes."""

    def __call__(
        self,
        *,
        caller: ManagedApiCaller,
        config: ApiConfig,
        mapper_factory: ResponseMapperFactory,
    ) -> C_co: ...


class ManagedApiCaller:
    """API caller owning its transport; ``close()`` releases it once."""

    def __init__(self, caller: ApiCaller, transport: TransportAdapter) -> None:
        self._caller = caller
        self._transport = transport
        self._closed = False
        self._lock = threading.Lock()

    @property
    def config(self) -> ApiConfig:
        return self._caller.config

    @property
    def closed(self) -> bool:
        return self._closed

    def call(
        self,
        request: RequestDescriptor,
        mapper: Callable[[ResponseEnvelope], T],
        cancel_token: CancellationToken | None = None,
    ) -> T:
        return self._caller.call(request, mapper, cancel_token)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._transport.close()

    def __enter__(self) -> ManagedApiCaller:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


class ApiClientBuilder:
    """Fluent builder for :class:`ManagedApiCaller` and generated clients.

    Retry policy precedence: the config's own policy, then the one given to
    :meth:`retry_policy`, then a :class:`TimeBoundRetryPolicy` using
    :meth:`default_retry_timeout_millis`.
    """

    def __init__(self) -> None:
        self._adapter: TransportAdapter | None = None
        self._config = ApiConfig()
        self._retry_policy: RetryPolicy | None = None
        self._default_retry_timeout_millis = DEFAULT_TIME_BUDGET_MILLIS
        self._mapper_factory: ResponseMapperFactory | None = None

    def adapter(self, adapter: TransportAdapter | None) -> ApiClientBuilder:
        self._adapter = adapter
        return self

    def config(self, config: ApiConfig) -> ApiClientBuilder:
        self._config = config
        return self

    def configure(self, **changes: Any) -> ApiClientBuilder:
        """Apply field changes to the current :class:`ApiConfig`."""
        self._config = replace(self._config, **changes)
        return self

    def retry_policy(self, policy: RetryPolicy | None) -> ApiClientBuilder:
        self._retry_policy = policy
        return self

    def default_retry_timeout_millis(self, millis: int) -> ApiClientBuilder:
        if millis <= 0:
            raise ValueError("default_retry_timeout_millis must be > 0")
        self._default_retry_timeout_millis = millis
        return self

    def mapper_factory(
        self, factory: ResponseMapperFactory | None
    ) -> ApiClientBuilder:
        self._mapper_factory = factory
        return self

    def _resolved_config(self) -> ApiConfig:
        policy = (
            self._config.retry_policy
            or self._retry_policy
            or TimeBoundRetryPolicy(self._default_retry_timeout_millis)
        )
        mapper_factory = (
            self._config.mapper_factory
            or self._mapper_factory
            or default_mapper_factory()
        )
        return replace(
            self._config, retry_policy=policy, mapper_factory=mapper_factory
        )

    def build_caller(self) -> ManagedApiCaller:
        config = self._resolved_config()
        transport = self._adapter or RequestsTransportAdapter()
        return ManagedApiCaller(ApiCaller(transport, config), transport)

    def create_client(self, client_cls: ClientConstructor[C_co]) -> C_co:
        """Instantiate a generated client with its fixed dependencies."""
        caller = self.build_caller()
        config = caller.config
        return client_cls(
            caller=caller,
            config=config,
            mapper_factory=config.mapper_factory,
        )

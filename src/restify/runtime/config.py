"""Client configuration and per-call configuration merging."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, TypeVar

if TYPE_CHECKING:
    from .codec import BodyCodec
    from .mappers import ResponseMapperFactory
    from .retry import RetryPolicy


def _default_headers() -> Mapping[str, str]:
    """Return immutable empty default headers mapping."""

    return MappingProxyType({})


@dataclass(frozen=True)
class ApiConfig:
    """Configuration shared by every call made through one client.

    A request may carry its own ``ApiConfig`` as a per-call override; see
    :func:`merge_config` for how the two are combined.
    """

    base_url: str = ""
    default_headers: Mapping[str, str] = field(default_factory=_default_headers)
    timeout_millis: int | None = None
    retry_policy: RetryPolicy | None = None
    body_codec: BodyCodec | None = None
    mapper_factory: ResponseMapperFactory | None = None
    follow_redirects: bool = True
    user_agent: str | None = None
    verify_tls: bool | None = None

    def __post_init__(self) -> None:
        if self.timeout_millis is not None and self.timeout_millis <= 0:
            raise ValueError("timeout_millis must be > 0 when provided")

        # Freeze copied headers to avoid post-init mutation side effects.
        object.__setattr__(
            self,
            "default_headers",
            MappingProxyType(dict(self.default_headers)),
        )


_T = TypeVar("_T")


def _first_present(override: _T | None, base: _T | None) -> _T | None:
    return override if override is not None else base


def merge_config(base: ApiConfig, override: ApiConfig | None) -> ApiConfig:
    """Combine a client's base config with a per-call override.

    Optional fields fall back to ``base`` when the override leaves them
    unset and headers merge key by key with the override winning.
    ``follow_redirects`` is always taken from the override, even when the
    override never set it explicitly.
    """
    if override is None:
        return base

    headers = dict(base.default_headers)
    headers.update(override.default_headers)

    return replace(
        base,
        base_url=override.base_url if override.base_url.strip() else base.base_url,
        default_headers=headers,
        timeout_millis=_first_present(override.timeout_millis, base.timeout_millis),
        retry_policy=_first_present(override.retry_policy, base.retry_policy),
        body_codec=_first_present(override.body_codec, base.body_codec),
        mapper_factory=_first_present(
            override.mapper_factory, base.mapper_factory
        ),
        user_agent=_first_present(override.user_agent, base.user_agent),
        verify_tls=_first_present(override.verify_tls, base.verify_tls),
        follow_redirects=override.follow_redirects,
    )

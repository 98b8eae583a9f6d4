"""Resolve path templates and query parameters into absolute URLs."""

from __future__ import annotations

import re
from typing import Mapping, Protocol
from urllib.parse import quote, quote_plus

from .errors import UrlResolutionError

_PLACEHOLDER = re.compile(r"\{([^{}]*)\}")


class UrlBuilder(Protocol):
    def __call__(
        self,
        base_url: str,
        template: str,
        path_params: Mapping[str, str],
        query_params: Mapping[str, str | None],
    ) -> str: ...


def _resolve_path(template: str, path_params: Mapping[str, str]) -> str:
    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if not name.strip() or name not in path_params:
            raise UrlResolutionError(name, template)
        return quote(str(path_params[name]), safe="")

    path = _PLACEHOLDER.sub(substitute, template)
    if not path:
        return ""
    return "/" + path.lstrip("/")


def _query_string(query_params: Mapping[str, str | None]) -> str:
    pairs = [
        f"{quote_plus(str(name))}={quote_plus(str(value))}"
        for name, value in query_params.items()
        if value is not None
    ]
    if not pairs:
        return ""
    return "?" + "&".join(pairs)


def build_url(
    base_url: str,
    template: str,
    path_params: Mapping[str, str] | None = None,
    query_params: Mapping[str, str | None] | None = None,
) -> str:
    """Build an absolute URL from a base, a path template and parameters.

    Args:
        base_url: Scheme and authority, optionally with a base path. Trailing
            slashes are dropped.
        template: Path template such as ``/users/{id}``. A missing leading
            slash is added.
        path_params: Values for ``{name}`` placeholders, percent-encoded as a
            single path segment.
        query_params: Query values; entries whose value is ``None`` are
            omitted.

    Returns:
        The resolved URL.

    Raises:
        UrlResolutionError: if a placeholder is empty or has no matching
            parameter.
    """
    path = _resolve_path(template, path_params or {})
    return base_url.rstrip("/") + path + _query_string(query_params or {})

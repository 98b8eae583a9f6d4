"""Value types shared across the call runtime."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Union

if TYPE_CHECKING:
    from .config import ApiConfig


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"


def _coerce_method(method: HttpMethod | str) -> HttpMethod:
    if isinstance(method, HttpMethod):
        return method
    return HttpMethod(method.upper())


class MediaType(str, Enum):
    """Media types the default codec knows about."""

    APPLICATION_JSON = "application/json"
    APPLICATION_OCTET_STREAM = "application/octet-stream"
    APPLICATION_FORM_URLENCODED = "application/x-www-form-urlencoded"
    TEXT_PLAIN = "text/plain"
    TEXT_HTML = "text/html"

    def __str__(self) -> str:
        return self.value


def media_type_str(content_type: MediaType | str | None) -> str | None:
    """Normalize a media type argument to its string form."""
    if content_type is None:
        return None
    if isinstance(content_type, MediaType):
        return content_type.value
    return str(content_type)


def parse_content_type(header: str | None) -> str | None:
    """Strip parameters (``; charset=...``) and lowercase a Content-Type."""
    if header is None or not header.strip():
        return None
    return header.split(";", 1)[0].strip().lower() or None


def _frozen(mapping: Mapping[str, Any] | None) -> Mapping[str, Any]:
    """Return an immutable copy of ``mapping``."""
    return MappingProxyType(dict(mapping or {}))


def _empty_mapping() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class RequestDescriptor:
    """Immutable description of one API call before URL/body resolution."""

    method: HttpMethod
    url_path: str
    path_parameters: Mapping[str, str] = field(default_factory=_empty_mapping)
    headers: Mapping[str, str] = field(default_factory=_empty_mapping)
    query_parameters: Mapping[str, str | None] = field(
        default_factory=_empty_mapping
    )
    body: Any = None
    content_type: MediaType | str | None = None
    per_call_config: ApiConfig | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", _coerce_method(self.method))
        object.__setattr__(
            self, "path_parameters", _frozen(self.path_parameters)
        )
        object.__setattr__(self, "headers", _frozen(self.headers))
        object.__setattr__(
            self, "query_parameters", _frozen(self.query_parameters)
        )

    @staticmethod
    def builder() -> RequestDescriptorBuilder:
        return RequestDescriptorBuilder()


class RequestDescriptorBuilder:
    """Fluent builder used by generated client stubs."""

    def __init__(self) -> None:
        self._method: HttpMethod | str | None = None
        self._url_path: str | None = None
        self._path_parameters: dict[str, str] = {}
        self._headers: dict[str, str] = {}
        self._query_parameters: dict[str, str | None] = {}
        self._body: Any = None
        self._content_type: MediaType | str | None = None
        self._per_call_config: ApiConfig | None = None

    def method(self, method: HttpMethod | str) -> RequestDescriptorBuilder:
        self._method = method
        return self

    def url_path(self, url_path: str) -> RequestDescriptorBuilder:
        self._url_path = url_path
        return self

    def path_param(self, name: str, value: str) -> RequestDescriptorBuilder:
        self._path_parameters[name] = value
        return self

    def path_parameters(
        self, params: Mapping[str, str]
    ) -> RequestDescriptorBuilder:
        self._path_parameters.update(params)
        return self

    def header(self, name: str, value: str) -> RequestDescriptorBuilder:
        self._headers[name] = value
        return self

    def headers(self, headers: Mapping[str, str]) -> RequestDescriptorBuilder:
        self._headers.update(headers)
        return self

    def query_param(
        self, name: str, value: str | None
    ) -> RequestDescriptorBuilder:
        self._query_parameters[name] = value
        return self

    def query_parameters(
        self, params: Mapping[str, str | None]
    ) -> RequestDescriptorBuilder:
        self._query_parameters.update(params)
        return self

    def body(self, body: Any) -> RequestDescriptorBuilder:
        self._body = body
        return self

    def content_type(
        self, content_type: MediaType | str | None
    ) -> RequestDescriptorBuilder:
        self._content_type = content_type
        return self

    def per_call_config(
        self, config: ApiConfig | None
    ) -> RequestDescriptorBuilder:
        self._per_call_config = config
        return self

    def build(self) -> RequestDescriptor:
        if self._method is None:
            raise ValueError("RequestDescriptor.method must be provided")
        if self._url_path is None:
            raise ValueError("RequestDescriptor.url_path must be provided")
        return RequestDescriptor(
            method=_coerce_method(self._method),
            url_path=self._url_path,
            path_parameters=self._path_parameters,
            headers=self._headers,
            query_parameters=self._query_parameters,
            body=self._body,
            content_type=self._content_type,
            per_call_config=self._per_call_config,
        )


@dataclass(frozen=True)
class ResponseEnvelope:
    """One transport attempt's response; raw bytes are decoded by mappers."""

    status_code: int
    headers: Mapping[str, str] = field(default_factory=_empty_mapping)
    body: bytes | None = None
    content_type: str | None = None


@dataclass(frozen=True)
class SerializedBody:
    payload: bytes | str | None
    content_type: str | None = None


@dataclass(frozen=True)
class TransportRequest:
    """Fully resolved request handed to a transport adapter."""

    method: HttpMethod
    url: str
    headers: Mapping[str, str] = field(default_factory=_empty_mapping)
    payload: bytes | str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "headers", _frozen(self.headers))


@dataclass(frozen=True)
class Single:
    """Type key for a single decoded value of ``shape``."""

    shape: Any
    nullable: bool = False


@dataclass(frozen=True)
class ListOf:
    """Type key for a list whose elements decode to ``shape``."""

    shape: Any
    element_nullable: bool = False


TypeKey = Union[Single, ListOf]

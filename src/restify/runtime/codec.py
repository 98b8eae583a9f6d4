"""Request body serialization.

A :class:`BodyCodec` is an ordered chain of shape handlers. The first handler
that accepts a value produces the :class:`SerializedBody`; values no handler
claims go to the registered structured codec (JSON by default). A requested
content type always overrides the handler's default.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from dataclasses import fields, is_dataclass
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import Any, Iterable, Mapping
from uuid import UUID

from pydantic import BaseModel, TypeAdapter

from .errors import SerializationError
from .fields import OptionalField
from .types import MediaType, SerializedBody, media_type_str

OCTET_STREAM = MediaType.APPLICATION_OCTET_STREAM.value
JSON = MediaType.APPLICATION_JSON.value
TEXT_PLAIN = MediaType.TEXT_PLAIN.value


class BodyShapeHandler(ABC):
    """Serializes one family of body shapes."""

    @abstractmethod
    def accepts(self, value: Any) -> bool: ...

    @abstractmethod
    def serialize(self, value: Any, requested: str | None) -> SerializedBody: ...


class NoneHandler(BodyShapeHandler):
    def accepts(self, value: Any) -> bool:
        return value is None

    def serialize(self, value: Any, requested: str | None) -> SerializedBody:
        return SerializedBody(None, None)


class BytesHandler(BodyShapeHandler):
    def accepts(self, value: Any) -> bool:
        return isinstance(value, (bytes, bytearray, memoryview))

    def serialize(self, value: Any, requested: str | None) -> SerializedBody:
        return SerializedBody(bytes(value), requested or OCTET_STREAM)


class TextHandler(BodyShapeHandler):
    """Strings are sent verbatim; callers usually pass pre-encoded JSON."""

    def accepts(self, value: Any) -> bool:
        return isinstance(value, str)

    def serialize(self, value: Any, requested: str | None) -> SerializedBody:
        return SerializedBody(value, requested or JSON)


class PrimitiveHandler(BodyShapeHandler):
    def accepts(self, value: Any) -> bool:
        return isinstance(value, (bool, int, float, Decimal, Fraction))

    def serialize(self, value: Any, requested: str | None) -> SerializedBody:
        if isinstance(value, bool):
            text = "true" if value else "false"
        else:
            text = str(value)
        return SerializedBody(text, requested or TEXT_PLAIN)


class StructuredCodec(ABC):
    """Encodes arbitrary structured values (DTOs, mappings, lists)."""

    content_type: str = JSON

    @abstractmethod
    def encode(self, value: Any) -> str: ...


def _is_absent(value: Any) -> bool:
    return isinstance(value, OptionalField) and not value.is_present


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, OptionalField):
        return _to_jsonable(value.get_or_none())
    if is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: _to_jsonable(getattr(value, f.name))
            for f in fields(value)
            if not _is_absent(getattr(value, f.name))
        }
    if isinstance(value, Mapping):
        return {
            str(key): _to_jsonable(item)
            for key, item in value.items()
            if not _is_absent(item)
        }
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return _to_jsonable(value.value)
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


class JsonStructuredCodec(StructuredCodec):
    """Standard library JSON encoder aware of dataclasses and OptionalField."""

    def __init__(self, *, sort_keys: bool = False) -> None:
        self._sort_keys = sort_keys

    def encode(self, value: Any) -> str:
        try:
            return json.dumps(
                _to_jsonable(value),
                default=_json_default,
                sort_keys=self._sort_keys,
                separators=(",", ":"),
                allow_nan=False,
            )
        except (TypeError, ValueError, RecursionError) as exc:
            raise SerializationError(
                f"cannot serialize body of type {type(value).__name__}: {exc}"
            ) from exc


class PydanticStructuredCodec(StructuredCodec):
    """Encoder backed by pydantic models and type adapters."""

    def __init__(self, *, exclude_none: bool = False) -> None:
        self._exclude_none = exclude_none

    def encode(self, value: Any) -> str:
        try:
            if isinstance(value, BaseModel):
                return value.model_dump_json(exclude_none=self._exclude_none)
            adapter = TypeAdapter(type(value))
            return adapter.dump_json(
                value, exclude_none=self._exclude_none
            ).decode("utf-8")
        except (TypeError, ValueError) as exc:
            raise SerializationError(
                f"cannot serialize body of type {type(value).__name__}: {exc}"
            ) from exc


DEFAULT_HANDLERS: tuple[BodyShapeHandler, ...] = (
    NoneHandler(),
    BytesHandler(),
    TextHandler(),
    PrimitiveHandler(),
)


class BodyCodec:
    """Serialize outbound bodies and normalize raw inbound payloads."""

    def __init__(
        self,
        handlers: Iterable[BodyShapeHandler] | None = None,
        structured: StructuredCodec | None = None,
    ) -> None:
        self._handlers = tuple(
            DEFAULT_HANDLERS if handlers is None else handlers
        )
        self._structured = structured

    @property
    def structured(self) -> StructuredCodec | None:
        return self._structured

    def with_handler(self, handler: BodyShapeHandler) -> BodyCodec:
        """Return a codec that consults ``handler`` after the current chain."""
        return BodyCodec((*self._handlers, handler), self._structured)

    def serialize(
        self,
        value: Any,
        requested_content_type: MediaType | str | None = None,
    ) -> SerializedBody:
        """Turn ``value`` into a transport payload.

        Raises:
            SerializationError: if no handler accepts the value and the
                structured codec is missing or fails.
        """
        requested = media_type_str(requested_content_type)
        for handler in self._handlers:
            if handler.accepts(value):
                return handler.serialize(value, requested)

        if self._structured is None:
            raise SerializationError(
                f"unsupported body type {type(value).__name__}; "
                "configure a structured codec on ApiConfig.body_codec"
            )
        payload = self._structured.encode(value)
        return SerializedBody(payload, requested or self._structured.content_type)

    def deserialize(
        self,
        raw: Any,
        content_type: MediaType | str | None = None,
    ) -> bytes | None:
        """Normalize a raw payload to bytes for untyped handling."""
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray, memoryview)):
            return bytes(raw)
        if isinstance(raw, str):
            return raw.encode("utf-8")
        raise SerializationError(
            f"unsupported raw payload type {type(raw).__name__}"
        )


def default_body_codec() -> BodyCodec:
    """Codec used when the effective config does not name one."""
    return BodyCodec(structured=JsonStructuredCodec())


def pydantic_body_codec(*, exclude_none: bool = False) -> BodyCodec:
    return BodyCodec(structured=PydanticStructuredCodec(exclude_none=exclude_none))

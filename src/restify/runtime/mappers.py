"""Response mapping: from a neutral :data:`TypeKey` to a decoding function.

Factories are looked up by key rather than by concrete type so several codec
backends can coexist. :class:`DelegatingResponseMapperFactory` tries its
factories in order and the first that produces a mapper wins.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional, TypeVar

from pydantic import (
    PydanticUndefinedAnnotation,
    PydanticUserError,
    TypeAdapter,
    ValidationError,
)

from .errors import MapperNotFoundError, SerializationError
from .types import ListOf, ResponseEnvelope, Single, TypeKey

T = TypeVar("T")

ResponseMapper = Callable[[ResponseEnvelope], Any]

logger = logging.getLogger(__name__)


class ResponseMapperFactory(ABC):
    """Resolves type keys to response mappers."""

    @abstractmethod
    def try_for(self, key: TypeKey) -> ResponseMapper | None:
        """Return a mapper for ``key`` or ``None`` when unsupported."""

    def resolve(self, key: TypeKey) -> ResponseMapper:
        """Return a mapper for ``key``.

        Raises:
            MapperNotFoundError: if this factory cannot handle ``key``.
        """
        mapper = self.try_for(key)
        if mapper is None:
            raise MapperNotFoundError(f"no mapper for key {key!r}", key=key)
        return mapper

    @staticmethod
    def from_bytes(
        decode: Callable[[bytes | None], T],
    ) -> Callable[[ResponseEnvelope], T]:
        """Wrap a plain ``bytes -> value`` function as a response mapper."""

        def mapper(response: ResponseEnvelope) -> T:
            return decode(response.body)

        return mapper


def _body_mapper(
    key: TypeKey,
    decode: Callable[[bytes], Any],
    nullable: bool,
) -> ResponseMapper:
    """Apply the shared empty-body and null-result rules around ``decode``."""

    def mapper(response: ResponseEnvelope) -> Any:
        if not response.body:
            if nullable:
                return None
            raise MapperNotFoundError(
                f"empty body for non-nullable target {key!r}", key=key
            )
        result = decode(response.body)
        if result is None and not nullable:
            raise MapperNotFoundError(
                f"decoded null for non-nullable target {key!r}", key=key
            )
        return result

    return mapper


_BUILTIN_SHAPES = (dict, list, str, int, float, bool)


def _builtin_converter(shape: type) -> Callable[[Any], Any]:
    def convert(value: Any) -> Any:
        if shape is float and isinstance(value, int) and not isinstance(
            value, bool
        ):
            return float(value)
        if shape is int and isinstance(value, bool):
            raise SerializationError(f"expected int, got {value!r}")
        if not isinstance(value, shape):
            raise SerializationError(
                f"expected {shape.__name__}, got {type(value).__name__}"
            )
        return value

    return convert


class JsonResponseMapperFactory(ResponseMapperFactory):
    """Standard library JSON backend for builtin shapes.

    Dataclasses and models are left to :class:`PydanticResponseMapperFactory`.
    """

    def _converter(self, shape: Any) -> Callable[[Any], Any] | None:
        if shape is Any or shape is object:
            return lambda value: value
        if shape in _BUILTIN_SHAPES:
            return _builtin_converter(shape)
        return None

    @staticmethod
    def _load(body: bytes) -> Any:
        try:
            return json.loads(body)
        except ValueError as exc:
            raise SerializationError(f"invalid JSON body: {exc}") from exc

    def try_for(self, key: TypeKey) -> ResponseMapper | None:
        convert = self._converter(key.shape)
        if convert is None:
            return None

        if isinstance(key, Single):

            def decode_single(body: bytes) -> Any:
                data = self._load(body)
                return None if data is None else convert(data)

            return _body_mapper(key, decode_single, key.nullable)

        def decode_list(body: bytes) -> list[Any]:
            data = self._load(body)
            if not isinstance(data, list):
                raise SerializationError(
                    f"expected JSON array, got {type(data).__name__}"
                )
            items = []
            for item in data:
                if item is None:
                    if not key.element_nullable:
                        raise SerializationError(
                            f"null element in list of non-nullable "
                            f"{getattr(key.shape, '__name__', key.shape)}"
                        )
                    items.append(None)
                else:
                    items.append(convert(item))
            return items

        return _body_mapper(key, decode_list, False)


class PydanticResponseMapperFactory(ResponseMapperFactory):
    """Backend validating JSON bodies with pydantic type adapters."""

    def _adapter(self, key: TypeKey) -> TypeAdapter[Any] | None:
        try:
            if isinstance(key, ListOf):
                element = (
                    Optional[key.shape] if key.element_nullable else key.shape
                )
                target: Any = List[element]  # type: ignore[valid-type]
            else:
                target = Optional[key.shape]
            adapter: TypeAdapter[Any] = TypeAdapter(target)
            # Forward references are resolved lazily; force it here.
            adapter.rebuild(raise_errors=True)
        except (PydanticUserError, PydanticUndefinedAnnotation, TypeError):
            logger.debug("pydantic cannot build a schema for %r", key)
            return None
        return adapter

    def try_for(self, key: TypeKey) -> ResponseMapper | None:
        adapter = self._adapter(key)
        if adapter is None:
            return None

        def decode(body: bytes) -> Any:
            try:
                return adapter.validate_json(body)
            except ValidationError as exc:
                raise SerializationError(
                    f"response does not match {key!r}: {exc}"
                ) from exc

        nullable = isinstance(key, Single) and key.nullable
        return _body_mapper(key, decode, nullable)


class DelegatingResponseMapperFactory(ResponseMapperFactory):
    """Try registered factories in order; the first mapper wins."""

    def __init__(self, factories: Iterable[ResponseMapperFactory]) -> None:
        self._factories = tuple(factories)

    @property
    def factories(self) -> tuple[ResponseMapperFactory, ...]:
        return self._factories

    def try_for(self, key: TypeKey) -> ResponseMapper | None:
        for factory in self._factories:
            mapper = factory.try_for(key)
            if mapper is not None:
                return mapper
        return None


def default_mapper_factory() -> DelegatingResponseMapperFactory:
    return DelegatingResponseMapperFactory(
        [JsonResponseMapperFactory(), PydanticResponseMapperFactory()]
    )

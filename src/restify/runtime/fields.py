"""Three-state optional field for request payloads.

``OptionalField`` distinguishes a property that was never provided
(:data:`ABSENT`) from one explicitly sent as ``null``. The JSON structured
codec omits absent fields entirely, which is what PATCH-style partial updates
need.
"""

from __future__ import annotations

from typing import Any, Callable, Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")

_MISSING: Any = object()


class OptionalField(Generic[T]):
    """Wrapper for a property that is absent, present-null or present."""

    __slots__ = ("_value",)

    def __init__(self, value: Any = _MISSING) -> None:
        self._value = value

    @classmethod
    def absent(cls) -> OptionalField[Any]:
        return ABSENT

    @classmethod
    def present(cls, value: T | None) -> OptionalField[T]:
        return cls(value)

    @property
    def is_present(self) -> bool:
        return self._value is not _MISSING

    def get_or_none(self) -> T | None:
        """Return the value if present, otherwise ``None``."""
        return None if self._value is _MISSING else self._value

    def require_present(self) -> T | None:
        """Return the value (possibly ``None``); raise if absent."""
        if self._value is _MISSING:
            raise LookupError("OptionalField is absent")
        return self._value

    def require_value(self) -> T:
        """Return the value; raise if absent or explicitly ``None``."""
        value = self.require_present()
        if value is None:
            raise LookupError("OptionalField value is null")
        return value

    def get_or_else(self, default: T | Callable[[], T]) -> T:
        """Return the value when present and not ``None``, else ``default``.

        A callable default is invoked lazily.
        """
        if self._value is not _MISSING and self._value is not None:
            return self._value
        if callable(default):
            return default()
        return default

    def map(self, transform: Callable[[T | None], R | None]) -> OptionalField[R]:
        if self._value is _MISSING:
            return ABSENT
        return OptionalField(transform(self._value))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OptionalField):
            return NotImplemented
        return self._value is other._value or self._value == other._value

    def __hash__(self) -> int:
        return hash((OptionalField, self._value))

    def __repr__(self) -> str:
        if self._value is _MISSING:
            return "OptionalField.absent()"
        return f"OptionalField.present({self._value!r})"


ABSENT: OptionalField[Any] = OptionalField()

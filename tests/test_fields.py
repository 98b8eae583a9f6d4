import pytest

from restify.runtime.fields import ABSENT, OptionalField


def test_absent_field_state():
    field = OptionalField.absent()

    assert field is ABSENT
    assert not field.is_present
    assert field.get_or_none() is None
    assert field.get_or_else("fallback") == "fallback"
    with pytest.raises(LookupError):
        field.require_present()


def test_present_null_field_state():
    field = OptionalField.present(None)

    assert field.is_present
    assert field.require_present() is None
    assert field.get_or_else(lambda: "lazy") == "lazy"
    with pytest.raises(LookupError):
        field.require_value()


def test_present_value_field_state():
    field = OptionalField.present(5)

    assert field.require_value() == 5
    assert field.map(lambda value: value * 2) == OptionalField.present(10)
    assert ABSENT.map(lambda value: value) is ABSENT
    assert repr(field) == "OptionalField.present(5)"

import pytest

from restify.runtime.cancellation import CallCancelledError, CancellationToken
from restify.runtime.types import (
    HttpMethod,
    ListOf,
    MediaType,
    RequestDescriptor,
    Single,
    media_type_str,
    parse_content_type,
)


def test_builder_requires_method_and_path():
    with pytest.raises(ValueError, match="method"):
        RequestDescriptor.builder().url_path("/x").build()
    with pytest.raises(ValueError, match="url_path"):
        RequestDescriptor.builder().method(HttpMethod.GET).build()


def test_builder_collects_parameters():
    request = (
        RequestDescriptor.builder()
        .method("patch")
        .url_path("/users/{id}")
        .path_parameters({"id": "1"})
        .headers({"X-A": "1"})
        .header("X-B", "2")
        .query_parameters({"a": None})
        .query_param("b", "2")
        .body({"name": "x"})
        .content_type(MediaType.APPLICATION_JSON)
        .build()
    )

    assert request.method is HttpMethod.PATCH
    assert dict(request.path_parameters) == {"id": "1"}
    assert dict(request.headers) == {"X-A": "1", "X-B": "2"}
    assert dict(request.query_parameters) == {"a": None, "b": "2"}
    assert request.content_type is MediaType.APPLICATION_JSON
    assert request.per_call_config is None


def test_request_descriptor_maps_are_frozen_copies():
    headers = {"X-A": "1"}
    request = RequestDescriptor(HttpMethod.GET, "/x", headers=headers)
    headers["X-A"] = "2"

    assert request.headers["X-A"] == "1"
    with pytest.raises(TypeError):
        request.headers["X-A"] = "3"  # type: ignore[index]


def test_type_keys_are_hashable_values():
    assert Single(int) == Single(int, nullable=False)
    assert Single(int) != Single(int, nullable=True)
    assert len({ListOf(str), ListOf(str), Single(str)}) == 2


def test_content_type_helpers():
    assert media_type_str(MediaType.TEXT_PLAIN) == "text/plain"
    assert media_type_str("image/png") == "image/png"
    assert media_type_str(None) is None
    assert parse_content_type("Application/JSON; charset=utf-8") == "application/json"
    assert parse_content_type("  ") is None
    assert parse_content_type(None) is None


def test_cancellation_token_states():
    token = CancellationToken()

    assert not token.is_cancelled()
    token.raise_if_cancelled()
    token.sleep(0)

    token.cancel()

    assert token.is_cancelled()
    with pytest.raises(CallCancelledError):
        token.raise_if_cancelled()
    with pytest.raises(CallCancelledError):
        token.sleep(10)

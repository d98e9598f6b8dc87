"""Tests for McpError and error classification."""

import json

import httpx
import pytest
from pydantic import BaseModel, ValidationError

from mcp_sse_client.shared.exceptions import ERROR_CODES, ErrorKind, McpError, classify_error
from mcp_sse_client.types import ErrorData


class _Model(BaseModel):
    value: int


def _validation_error() -> ValidationError:
    try:
        _Model.model_validate({"value": "not a number"})
    except ValidationError as exc:
        return exc
    raise AssertionError("expected a validation error")  # pragma: no cover


def test_error_codes_per_kind() -> None:
    assert ERROR_CODES == {
        ErrorKind.TIMEOUT: -32000,
        ErrorKind.NETWORK: -32001,
        ErrorKind.PARSE: -32700,
        ErrorKind.CONNECTION: -32002,
        ErrorKind.INTEGRATION: -32099,
        ErrorKind.PROTOCOL: -32603,
    }


def test_create_uses_code_of_kind() -> None:
    error = McpError.create(ErrorKind.TIMEOUT, "Response timeout after 30 seconds", source="request(tools/list)")

    assert error.code == -32000
    assert error.kind is ErrorKind.TIMEOUT
    assert error.message == "Response timeout after 30 seconds"
    assert error.source == "request(tools/list)"
    assert str(error) == "Response timeout after 30 seconds"


def test_from_error_data_keeps_server_code_and_data() -> None:
    error = McpError.from_error_data(ErrorData(code=-32601, message="Method not found", data={"method": "x"}))

    assert error.kind is ErrorKind.PROTOCOL
    assert error.code == -32601
    assert error.data == {"method": "x"}


def test_classify_returns_existing_error_unchanged() -> None:
    original = McpError.create(ErrorKind.TIMEOUT, "Connection timeout after 30 seconds")

    assert classify_error(original, "SSE stream") is original
    assert original.kind is ErrorKind.TIMEOUT


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (TimeoutError(), ErrorKind.TIMEOUT),
        (httpx.ReadTimeout("read timed out"), ErrorKind.TIMEOUT),
        (httpx.ConnectError("connection refused"), ErrorKind.NETWORK),
        (json.JSONDecodeError("Expecting value", "", 0), ErrorKind.PARSE),
    ],
)
def test_classify_by_exception_type(exc: Exception, kind: ErrorKind) -> None:
    assert classify_error(exc, "send_request(tools/list)").kind is kind


def test_classify_validation_error_as_parse() -> None:
    error = classify_error(_validation_error(), "list_tools")

    assert error.kind is ErrorKind.PARSE
    assert error.code == -32700


@pytest.mark.parametrize(
    ("message", "kind"),
    [
        ("Operation timeout", ErrorKind.TIMEOUT),
        ("network unreachable", ErrorKind.NETWORK),
        ("failed to fetch", ErrorKind.NETWORK),
        ("could not parse body", ErrorKind.PARSE),
    ],
)
def test_classify_by_message(message: str, kind: ErrorKind) -> None:
    assert classify_error(RuntimeError(message), "send_request(ping)").kind is kind


@pytest.mark.parametrize(
    ("context", "kind"),
    [
        ("SSE", ErrorKind.CONNECTION),
        ("connection", ErrorKind.CONNECTION),
        ("Connection reset", ErrorKind.CONNECTION),
        ("integration: tool conversion", ErrorKind.INTEGRATION),
        ("model SDK", ErrorKind.INTEGRATION),
        ("send_request(tools/list)", ErrorKind.PROTOCOL),
    ],
)
def test_classify_by_context(context: str, kind: ErrorKind) -> None:
    error = classify_error(RuntimeError("boom"), context)

    assert error.kind is kind
    assert error.code == ERROR_CODES[kind]


def test_classify_chains_the_original_exception() -> None:
    cause = RuntimeError("boom")

    error = classify_error(cause, "ensure_connection")

    assert error.__cause__ is cause
    assert error.source == "ensure_connection"
    assert error.message == "boom"


def test_classify_uses_class_name_for_empty_message() -> None:
    assert classify_error(KeyError(), "list_tools").message == "KeyError"

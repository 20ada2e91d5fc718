from __future__ import annotations

import pytest

from portcullis.exceptions import HTTPError
from portcullis.requests import _MAX_FORM_FIELDS, _MAX_QUERY_PARAMS, FormData, Request

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded; charset=utf-8"}


def build_request(**kwargs) -> Request:
    kwargs.setdefault("method", "POST")
    return Request(path="/login/userpass", **kwargs)


@pytest.mark.asyncio
async def test_form_parsing_keeps_blank_fields() -> None:
    request = build_request(headers=FORM_HEADERS, body=b"username=&password=pw&remember_username=Yes")

    form = await request.form()

    assert form.has("username")
    assert form.get("username") == ""
    assert form.get("password") == "pw"
    assert "remember_username" in form
    assert not form.has("organization")
    assert len(form) == 3
    assert form is await request.form()


@pytest.mark.asyncio
async def test_form_last_value_wins() -> None:
    request = build_request(headers=FORM_HEADERS, body=b"org=a&org=b")

    form = await request.form()

    assert form.get("org") == "b"
    assert form.get("missing") is None
    assert form.get("missing", "") == ""


@pytest.mark.asyncio
async def test_get_requests_and_other_content_types_have_empty_forms() -> None:
    get_request = build_request(method="GET", headers=FORM_HEADERS, body=b"username=alice")
    json_request = build_request(headers={"content-type": "application/json"}, body=b'{"username":"alice"}')

    assert len(await get_request.form()) == 0
    assert len(await json_request.form()) == 0


@pytest.mark.asyncio
async def test_form_rejects_bad_encoding() -> None:
    request = build_request(headers=FORM_HEADERS, body=b"username=\xff\xfe")

    with pytest.raises(HTTPError) as excinfo:
        await request.form()
    assert excinfo.value.status == 400


@pytest.mark.asyncio
async def test_form_field_limit() -> None:
    body = "&".join(f"f{i}=v" for i in range(_MAX_FORM_FIELDS + 1)).encode()
    request = build_request(headers=FORM_HEADERS, body=body)

    with pytest.raises(HTTPError) as excinfo:
        await request.form()
    assert excinfo.value.detail == {"detail": "too_many_form_fields"}


def test_query_parameter_limit() -> None:
    query = "&".join(f"q{i}=v" for i in range(_MAX_QUERY_PARAMS + 1))
    request = build_request(method="GET", query_string=query)

    with pytest.raises(HTTPError):
        _ = request.query_params


def test_query_value_and_cookies() -> None:
    request = build_request(
        method="GET",
        query_string="AuthState=abc&AuthState=def",
        headers={"Cookie": "src1-username=bob%40example.com", "User-Agent": "pytest"},
    )

    assert request.query_value("AuthState") == "def"
    assert request.query_value("missing") is None
    assert request.cookies == {"src1-username": "bob@example.com"}
    assert request.user_agent == "pytest"
    assert request.header("USER-AGENT") == "pytest"


@pytest.mark.asyncio
async def test_body_loader_is_called_once() -> None:
    calls = 0

    async def loader() -> bytes:
        nonlocal calls
        calls += 1
        return b"password=pw"

    request = build_request(headers=FORM_HEADERS, body_loader=loader)

    assert await request.body() == b"password=pw"
    assert (await request.form()).get("password") == "pw"
    assert calls == 1


def test_body_and_loader_are_exclusive() -> None:
    async def loader() -> bytes:
        return b""

    with pytest.raises(ValueError):
        build_request(body=b"", body_loader=loader)


def test_form_data_defaults() -> None:
    form = FormData()

    assert form.get("x") is None
    assert form.get("x", "fallback") == "fallback"

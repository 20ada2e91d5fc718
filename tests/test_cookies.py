from __future__ import annotations

import datetime as dt

import pytest

from portcullis.cookies import (
    EXPIRED_COOKIE_OFFSET,
    REMEMBER_COOKIE_TTL,
    Cookie,
    decide_remember,
    parse_cookie_header,
    remember_cookie,
    remember_cookie_name,
    same_site_none_supported,
)

NOW = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_remember_disabled_sets_nothing() -> None:
    decision = decide_remember(False, True, now=NOW)

    assert not decision.should_set
    assert remember_cookie("src1-username", "alice", decision, same_site_none=True) is None


def test_checked_box_keeps_cookie_for_a_year() -> None:
    decision = decide_remember(True, True, now=NOW)

    assert decision.should_set
    assert decision.expiry == REMEMBER_COOKIE_TTL
    assert decision.expires_at == NOW + dt.timedelta(days=365)


def test_unchecked_box_expires_cookie_in_the_past() -> None:
    decision = decide_remember(True, False, now=NOW)

    assert decision.should_set
    assert decision.expiry == EXPIRED_COOKIE_OFFSET
    cookie = remember_cookie("src1-username", "alice", decision, same_site_none=True)
    assert cookie is not None
    assert cookie.expires is not None and cookie.expires < NOW
    assert "Max-Age=0" in cookie.to_header(now=NOW)


def test_remember_cookie_secure_flag() -> None:
    decision = decide_remember(True, True, now=NOW)

    secure = remember_cookie("src1-username", "alice", decision, same_site_none=True, secure=True)
    plain = remember_cookie("src1-username", "alice", decision, same_site_none=True)

    assert secure is not None and plain is not None
    assert "; Secure; HttpOnly; SameSite=None" in secure.to_header(now=NOW)
    assert "Secure" not in plain.to_header(now=NOW)


def test_remember_cookie_attributes() -> None:
    cookie = remember_cookie("src1-username", "alice smith", decide_remember(True, True, now=NOW), same_site_none=True)
    assert cookie is not None

    header = cookie.to_header(now=NOW)

    assert header.startswith("src1-username=alice%20smith; ")
    assert "Expires=Thu, 01 May 2025 12:00:00 GMT" in header
    assert f"Max-Age={int(REMEMBER_COOKIE_TTL.total_seconds())}" in header
    assert "Path=/" in header
    assert "HttpOnly" in header
    assert "SameSite=None" in header
    assert "Secure" not in header
    assert "Domain" not in header


def test_same_site_omitted_for_incompatible_clients() -> None:
    cookie = remember_cookie("n", "v", decide_remember(True, True, now=NOW), same_site_none=False)
    assert cookie is not None
    assert "SameSite" not in cookie.to_header(now=NOW)


def test_raw_cookie_value_is_not_encoded() -> None:
    cookie = Cookie(name="n", value="a b", raw=True)
    assert cookie.to_header(now=NOW).startswith("n=a b")


def test_cookie_name_format() -> None:
    assert remember_cookie_name("src1", "organization") == "src1-organization"


@pytest.mark.parametrize(
    ("user_agent", "supported"),
    [
        (None, True),
        ("", True),
        (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 12_1 like Mac OS X) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/12.0 Mobile/15E148 Safari/604.1",
            False,
        ),
        (
            "Mozilla/5.0 (iPhone; CPU iPhone OS 13_3 like Mac OS X) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/13.0 Mobile/15E148 Safari/604.1",
            True,
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_14_6) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/12.1.2 Safari/605.1.15",
            False,
        ),
        (
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
            "(KHTML, like Gecko) Version/14.0 Safari/605.1.15",
            True,
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/60.0.3112.90 Safari/537.36",
            False,
        ),
        (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
            True,
        ),
        ("Mozilla/5.0 (X11; Linux x86_64; rv:109.0) Gecko/20100101 Firefox/115.0", True),
    ],
)
def test_same_site_none_capability(user_agent: str | None, supported: bool) -> None:
    assert same_site_none_supported(user_agent) is supported


def test_parse_cookie_header() -> None:
    cookies = parse_cookie_header('a=1; b="quoted"; a=2; c=x%40y; broken; =nope')

    assert cookies == {"a": "1", "b": "quoted", "c": "x@y"}
    assert parse_cookie_header(None) == {}

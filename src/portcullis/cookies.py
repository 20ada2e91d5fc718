"""Cookie primitives and the remember-field cookie policy."""

from __future__ import annotations

import datetime as dt
from email.utils import format_datetime
from typing import Final, Mapping
from urllib.parse import quote, unquote

import rure
from msgspec import Struct

__all__ = [
    "EXPIRED_COOKIE_OFFSET",
    "REMEMBER_COOKIE_TTL",
    "Cookie",
    "RememberDecision",
    "decide_remember",
    "parse_cookie_header",
    "remember_cookie",
    "remember_cookie_name",
    "same_site_none_supported",
]

REMEMBER_COOKIE_TTL: Final = dt.timedelta(days=365)
EXPIRED_COOKIE_OFFSET: Final = dt.timedelta(seconds=-300)
SAME_SITE_NONE: Final = "None"

_IOS_PATTERN = rure.compile(r"\(iP.+; CPU .*OS (\d+)[_\d]*.*\) AppleWebKit/")
_MACOS_PATTERN = rure.compile(r"\(Macintosh;.*Mac OS X (\d+)_(\d+)[_\d]*.*\) AppleWebKit/")
_SAFARI_PATTERN = rure.compile(r"Version/.* Safari/")
_CHROMIUM_PATTERN = rure.compile(r"(?i)Chrom(?:e|ium)/(\d+)\.")


class Cookie(Struct, frozen=True):
    """A ``Set-Cookie`` instruction.

    ``secure=None`` omits the flag; the login controllers set it from the
    request scheme. An ``expires`` in the past makes the browser drop the
    cookie.
    """

    name: str
    value: str | None
    expires: dt.datetime | None = None
    path: str = "/"
    domain: str | None = None
    secure: bool | None = None
    http_only: bool = True
    raw: bool = False
    same_site: str | None = None

    def to_header(self, *, now: dt.datetime | None = None) -> str:
        moment = now or dt.datetime.now(dt.timezone.utc)
        value = self.value or ""
        if not self.raw:
            value = quote(value, safe="")
        parts = [f"{self.name}={value}"]
        if self.expires is not None:
            expires = self.expires.astimezone(dt.timezone.utc)
            parts.append(f"Expires={format_datetime(expires, usegmt=True)}")
            max_age = int((expires - moment).total_seconds())
            parts.append(f"Max-Age={max(max_age, 0)}")
        if self.path:
            parts.append(f"Path={self.path}")
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.secure:
            parts.append("Secure")
        if self.http_only:
            parts.append("HttpOnly")
        if self.same_site:
            parts.append(f"SameSite={self.same_site}")
        return "; ".join(parts)


class RememberDecision(Struct, frozen=True):
    """Outcome of the remember policy for one field in one round."""

    should_set: bool
    expiry: dt.timedelta | None = None
    expires_at: dt.datetime | None = None


def remember_cookie_name(auth_source_id: str, field: str) -> str:
    return f"{auth_source_id}-{field}"


def decide_remember(enabled: bool, checked: bool, *, now: dt.datetime | None = None) -> RememberDecision:
    """Decide the cookie action for a remembered field.

    A checked box keeps the cookie for a year; an unchecked one rewrites it
    with an expiry in the past, which is how the cookie gets deleted.
    """

    if not enabled:
        return RememberDecision(should_set=False)
    moment = now or dt.datetime.now(dt.timezone.utc)
    expiry = REMEMBER_COOKIE_TTL if checked else EXPIRED_COOKIE_OFFSET
    return RememberDecision(should_set=True, expiry=expiry, expires_at=moment + expiry)


def remember_cookie(
    name: str,
    value: str,
    decision: RememberDecision,
    *,
    same_site_none: bool,
    secure: bool | None = None,
) -> Cookie | None:
    if not decision.should_set:
        return None
    return Cookie(
        name=name,
        value=value,
        expires=decision.expires_at,
        path="/",
        domain=None,
        secure=secure,
        http_only=True,
        raw=False,
        same_site=SAME_SITE_NONE if same_site_none else None,
    )


def same_site_none_supported(user_agent: str | None) -> bool:
    """Return ``False`` for clients known to mishandle ``SameSite=None``."""

    if not user_agent:
        return True
    ios = _IOS_PATTERN.search(user_agent)
    if ios is not None:
        return int(ios.group(1)) != 12
    macos = _MACOS_PATTERN.search(user_agent)
    if macos is not None and _SAFARI_PATTERN.search(user_agent) is not None:
        if _CHROMIUM_PATTERN.search(user_agent) is None:
            return not (int(macos.group(1)) == 10 and int(macos.group(2)) == 14)
    chromium = _CHROMIUM_PATTERN.search(user_agent)
    if chromium is not None:
        major = int(chromium.group(1))
        return major < 51 or major >= 67
    return True


def parse_cookie_header(header: str | None) -> Mapping[str, str]:
    """Parse a request ``Cookie`` header; the first occurrence of a name wins."""

    cookies: dict[str, str] = {}
    if not header:
        return cookies
    for chunk in header.split(";"):
        name, sep, value = chunk.strip().partition("=")
        if not sep or not name:
            continue
        name = name.strip()
        if name in cookies:
            continue
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] == '"':
            value = value[1:-1]
        cookies[name] = unquote(value)
    return cookies

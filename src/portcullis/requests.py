"""Request primitives."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Mapping, MutableMapping
from urllib.parse import parse_qsl

from .cookies import parse_cookie_header
from .exceptions import HTTPError
from .http import Status

BodyLoader = Callable[[], Awaitable[bytes | bytearray | memoryview | None]]

_MAX_QUERY_PARAMS = 1024
_MAX_FORM_FIELDS = 1024
_FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _parse_pairs(raw: str, *, limit: int, detail: str) -> MutableMapping[str, list[str]]:
    parsed: MutableMapping[str, list[str]] = {}
    try:
        pairs = parse_qsl(raw, keep_blank_values=True, max_num_fields=limit)
    except ValueError as exc:
        raise HTTPError(Status.BAD_REQUEST, {"detail": detail}) from exc
    for key, value in pairs:
        parsed.setdefault(key, []).append(value)
    return parsed


class FormData:
    """Read-only view over submitted form fields.

    ``has`` reports presence, including fields submitted with an empty value.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, list[str]] | None = None) -> None:
        self._fields = {key: list(values) for key, values in (fields or {}).items()}

    def has(self, name: str) -> bool:
        return name in self._fields

    def get(self, name: str, default: str | None = None) -> str | None:
        values = self._fields.get(name)
        if not values:
            return default
        return values[-1]

    def __contains__(self, name: object) -> bool:
        return name in self._fields

    def __len__(self) -> int:
        return len(self._fields)


class Request:
    """Immutable view of an incoming request."""

    __slots__ = (
        "_body",
        "_body_loader",
        "_body_lock",
        "_cookies",
        "_form_cache",
        "_query_params",
        "_raw_query",
        "headers",
        "method",
        "path",
        "path_params",
        "scheme",
    )

    def __init__(
        self,
        *,
        method: str,
        path: str,
        scheme: str = "http",
        headers: Mapping[str, str] | None = None,
        path_params: Mapping[str, str] | None = None,
        query_string: str | None = None,
        body: bytes | None = None,
        body_loader: BodyLoader | None = None,
    ) -> None:
        if body is not None and body_loader is not None:
            raise ValueError("Request body and body_loader are mutually exclusive")
        self.method = method.upper()
        self.path = path
        self.scheme = scheme.lower()
        self.headers = {k.lower(): v for k, v in (headers or {}).items()}
        self.path_params = dict(path_params or {})
        self._raw_query = query_string or ""
        self._body: bytes | None = body if body is not None else None
        self._body_loader = body_loader
        self._body_lock = asyncio.Lock()
        self._form_cache: FormData | None = None
        self._query_params: MutableMapping[str, list[str]] | None = None
        self._cookies: Mapping[str, str] | None = None

    @property
    def query_params(self) -> MutableMapping[str, list[str]]:
        if self._query_params is None:
            self._query_params = _parse_pairs(
                self._raw_query, limit=_MAX_QUERY_PARAMS, detail="too_many_query_parameters"
            )
        return self._query_params

    def query_value(self, name: str) -> str | None:
        values = self.query_params.get(name)
        if not values:
            return None
        return values[-1]

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

    @property
    def cookies(self) -> Mapping[str, str]:
        if self._cookies is None:
            self._cookies = parse_cookie_header(self.headers.get("cookie"))
        return self._cookies

    @property
    def is_secure(self) -> bool:
        return self.scheme == "https"

    @property
    def user_agent(self) -> str | None:
        return self.headers.get("user-agent")

    async def _ensure_body(self) -> bytes:
        if self._body is None:
            loader = self._body_loader
            if loader is None:
                self._body = b""
            else:
                async with self._body_lock:
                    if self._body is None:
                        raw = await loader()
                        if raw is None:
                            self._body = b""
                        elif isinstance(raw, bytes):
                            self._body = raw
                        else:
                            self._body = bytes(raw)
                        self._body_loader = None
        body = self._body
        assert body is not None
        return body

    async def form(self) -> FormData:
        """Decode an ``application/x-www-form-urlencoded`` body.

        Non-POST requests and bodies of other content types yield an empty
        form; the login pages treat that as "nothing submitted".
        """

        if self._form_cache is None:
            content_type = (self.headers.get("content-type") or "").split(";", 1)[0].strip().lower()
            if self.method != "POST" or content_type != _FORM_CONTENT_TYPE:
                self._form_cache = FormData()
            else:
                body = await self._ensure_body()
                try:
                    text = body.decode("utf-8")
                except UnicodeDecodeError as exc:
                    raise HTTPError(Status.BAD_REQUEST, {"detail": "invalid_form_encoding"}) from exc
                self._form_cache = FormData(
                    _parse_pairs(text, limit=_MAX_FORM_FIELDS, detail="too_many_form_fields")
                )
        return self._form_cache

    async def body(self) -> bytes:
        return await self._ensure_body()

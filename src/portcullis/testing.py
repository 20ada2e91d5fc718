"""Testing helpers."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import quote, urlencode

from .application import PortcullisApp
from .responses import Response


class TestClient:
    """Async test client that executes requests in-process."""

    __test__ = False

    def __init__(self, app: PortcullisApp, *, user_agent: str | None = None, scheme: str = "http") -> None:
        self.app = app
        self.user_agent = user_agent
        self.scheme = scheme

    async def __aenter__(self) -> "TestClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    async def request(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        form: Mapping[str, Any] | None = None,
        cookies: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        payload = b""
        request_headers = {key.lower(): value for key, value in (headers or {}).items()}
        if form is not None:
            payload = urlencode(form, doseq=True).encode("utf-8")
            request_headers.setdefault("content-type", "application/x-www-form-urlencoded")
        if cookies:
            request_headers.setdefault(
                "cookie", "; ".join(f"{name}={quote(value, safe='')}" for name, value in cookies.items())
            )
        if self.user_agent is not None:
            request_headers.setdefault("user-agent", self.user_agent)
        path, _, inline_query = path.partition("?")
        query_string = urlencode(query or {}, doseq=True)
        if inline_query:
            query_string = f"{inline_query}&{query_string}" if query_string else inline_query
        return await self.app.dispatch(
            method,
            path,
            scheme=self.scheme,
            query_string=query_string,
            headers=request_headers,
            body=payload,
        )

    async def get(
        self,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        cookies: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return await self.request("GET", path, query=query, cookies=cookies, headers=headers)

    async def post(
        self,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        form: Mapping[str, Any] | None = None,
        cookies: Mapping[str, str] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return await self.request("POST", path, query=query, form=form or {}, cookies=cookies, headers=headers)


__all__ = ["TestClient"]

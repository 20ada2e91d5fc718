"""Application core."""

from __future__ import annotations

import datetime as dt
from typing import Any, Awaitable, Callable, Mapping
from urllib.parse import urlencode

from .config import AppConfig, build_registry
from .exceptions import ConfigurationError, HTTPError
from .http import Status, is_server_error
from .login import AUTH_STATE_PARAM, LoginController
from .middleware import MiddlewareCallable, apply_middleware
from .observability import Observability
from .requests import Request
from .responses import RedirectResponse, Response, exception_to_response, security_headers_middleware
from .routing import MethodNotAllowed, Router
from .sources import AuthSourceRegistry, OrganizationCredentialSource
from .state import InMemoryStateStore, StateStore
from .views import ViewRenderer


class PortcullisApp:
    """Central application object serving the login pages."""

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        store: StateStore | None = None,
        sources: AuthSourceRegistry | None = None,
        renderer: ViewRenderer | None = None,
        observability: Observability | None = None,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.config = config or AppConfig()
        if store is None:
            if not self.config.secret_key:
                raise ConfigurationError("A secret_key is required to sign state identifiers")
            store = InMemoryStateStore(
                secret_key=self.config.secret_key,
                ttl_seconds=self.config.state_ttl_seconds,
            )
        self.store = store
        self.sources = sources if sources is not None else build_registry(self.config, self.store)
        self.observability = observability or Observability(self.config.observability)
        self.login = LoginController(
            store=self.store,
            sources=self.sources,
            renderer=renderer,
            observability=self.observability,
            template=self.config.template_userpass,
            clock=clock,
        )
        self.router = Router()
        self._middlewares: list[MiddlewareCallable] = [security_headers_middleware]
        self.router.add_route(
            self.config.route(self.config.userpass_path),
            methods=("GET", "POST"),
            endpoint=self.login.login_userpass,
            name="login_userpass",
        )
        self.router.add_route(
            self.config.route(self.config.userpass_org_path),
            methods=("GET", "POST"),
            endpoint=self.login.login_userpass_org,
            name="login_userpass_org",
        )

    @classmethod
    def from_config(cls, config: AppConfig | Mapping[str, Any], **options: Any) -> "PortcullisApp":
        if isinstance(config, AppConfig):
            return cls(config=config, **options)
        return cls(config=AppConfig.from_mapping(config), **options)

    def url_path_for(self, name: str) -> str:
        return self.router.url_for(name)

    # ------------------------------------------------------------------ middleware
    def add_middleware(self, middleware: MiddlewareCallable) -> None:
        """Register ``middleware``; security headers always stay innermost."""

        if self._middlewares and self._middlewares[-1] is security_headers_middleware:
            self._middlewares.insert(len(self._middlewares) - 1, middleware)
        else:
            self._middlewares.append(middleware)

    # ------------------------------------------------------------------ login entry
    async def start_login(
        self,
        source_id: str,
        return_url: str,
        *,
        forced_username: str | None = None,
        sp_metadata: Any = None,
    ) -> Response:
        """Open a login attempt at ``source_id`` and redirect to its form."""

        source = self.sources.get(source_id)
        if source is None:
            raise ConfigurationError(f"Unknown authentication source {source_id!r}")
        state_id = await source.authenticate(
            return_url,
            forced_username=forced_username,
            sp_metadata=sp_metadata,
        )
        name = "login_userpass_org" if isinstance(source, OrganizationCredentialSource) else "login_userpass"
        location = f"{self.url_path_for(name)}?{urlencode({AUTH_STATE_PARAM: state_id})}"
        return RedirectResponse(location)

    # ------------------------------------------------------------------ request handling
    async def dispatch(
        self,
        method: str,
        path: str,
        *,
        scheme: str = "http",
        query_string: str | None = None,
        headers: Mapping[str, str] | None = None,
        body: bytes | None = None,
        body_loader: Callable[[], Awaitable[bytes]] | None = None,
    ) -> Response:
        request = Request(
            method=method,
            path=path,
            scheme=scheme,
            headers=headers or {},
            query_string=query_string or "",
            body=body,
            body_loader=None if body is not None else body_loader,
        )
        observation = self.observability.on_request_start(request)
        try:
            try:
                match = self.router.find(method, path)
            except MethodNotAllowed as exc:
                raise HTTPError(Status.METHOD_NOT_ALLOWED, {"allowed": list(exc.allowed)}) from exc
            except LookupError as exc:
                raise HTTPError(Status.NOT_FOUND, "not_found") from exc
            request.path_params.update(match.params)
            handler = apply_middleware(self._middlewares, match.route.endpoint)
            response = await handler(request)
        except HTTPError as exc:
            response = exception_to_response(exc)
            if is_server_error(exc.status):
                self.observability.on_request_error(observation, exc, status_code=response.status)
                return response
            return self.observability.on_request_success(observation, response)
        except Exception as exc:
            status = getattr(exc, "status", None)
            status_code = int(status) if isinstance(status, int) else int(Status.INTERNAL_SERVER_ERROR)
            self.observability.on_request_error(observation, exc, status_code=status_code)
            raise
        return self.observability.on_request_success(observation, response)

    # ------------------------------------------------------------------ interface adapters
    async def __call__(
        self,
        scope: Mapping[str, Any],
        receive: Callable[[], Awaitable[Mapping[str, Any]]],
        send: Callable[[Mapping[str, Any]], Awaitable[None]],
    ) -> None:
        if scope.get("type") != "http":
            raise RuntimeError("PortcullisApp only supports HTTP scopes")
        headers = {key.decode().lower(): value.decode() for key, value in scope.get("headers", [])}
        limit = self.config.max_request_body_bytes

        async def load_body() -> bytes:
            buffer = bytearray()
            while True:
                message = await receive()
                message_type = message.get("type")
                if message_type == "http.disconnect":
                    break
                if message_type != "http.request":
                    continue
                buffer.extend(message.get("body", b""))
                if limit is not None and len(buffer) > limit:
                    raise HTTPError(Status.PAYLOAD_TOO_LARGE, "request_body_too_large")
                if not message.get("more_body", False):
                    break
            return bytes(buffer)

        response = await self.dispatch(
            scope["method"],
            scope["path"],
            scheme=scope.get("scheme", "http"),
            query_string=(scope.get("query_string") or b"").decode(),
            headers=headers,
            body_loader=load_body,
        )
        await send(
            {
                "type": "http.response.start",
                "status": response.status,
                "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in response.headers],
            }
        )
        await send({"type": "http.response.body", "body": response.body})


__all__ = ["PortcullisApp"]

"""Test support utilities for the login flow tests."""

from __future__ import annotations

import datetime as dt
from typing import Any, Iterable, Mapping
from urllib.parse import parse_qs, urlsplit

from portcullis import (
    AppConfig,
    AuthSourceRegistry,
    CredentialSource,
    InMemoryStateStore,
    LoginFailure,
    LoginView,
    Organization,
    PortcullisApp,
    Response,
    SourceConfig,
    StaticCredentialSource,
    StaticOrganizationSource,
    StaticUser,
    UserConfig,
)
from portcullis.serialization import json_decode
from portcullis.views import JSONViewRenderer

SECRET = "test-secret-key"
FIXED_NOW = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)
RETURN_URL = "https://sp.example.com/acs?target=home"


class FakeMonotonic:
    """Manually advanced replacement for :func:`time.monotonic`."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def fixed_clock() -> dt.datetime:
    return FIXED_NOW


def make_store(*, ttl_seconds: int = 3600, clock: FakeMonotonic | None = None) -> InMemoryStateStore:
    return InMemoryStateStore(secret_key=SECRET, ttl_seconds=ttl_seconds, clock=clock)


class RecordingRenderer(JSONViewRenderer):
    """JSON renderer that also keeps every view it was handed."""

    def __init__(self) -> None:
        self.rendered: list[tuple[str, LoginView]] = []

    def render(self, template: str, view: LoginView) -> Response:
        self.rendered.append((template, view))
        return super().render(template, view)


class ScriptedSource(CredentialSource):
    """Credential source answering from a queue of scripted outcomes."""

    def __init__(self, auth_id: str, *, outcomes: Iterable[Any], **options: Any) -> None:
        super().__init__(auth_id, **options)
        self._outcomes = list(outcomes)
        self.calls: list[tuple[str, str]] = []

    async def login(self, username: str, password: str) -> Mapping[str, list[str]]:
        self.calls.append((username, password))
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, LoginFailure):
            raise outcome
        return outcome


def userpass_source(store: InMemoryStateStore, **options: Any) -> StaticCredentialSource:
    return StaticCredentialSource(
        "src1",
        store=store,
        users=[StaticUser(username="alice", password="correct-horse", attributes={"mail": ["alice@example.com"]})],
        **options,
    )


def org_source(
    store: InMemoryStateStore,
    *,
    organizations: list[Organization] | None = None,
    **options: Any,
) -> StaticOrganizationSource:
    return StaticOrganizationSource(
        "orgsrc",
        store=store,
        users=[
            StaticUser(username="alice", password="secret", organization="acme"),
            StaticUser(username="bob", password="hunter2", organization="globex"),
        ],
        organizations=organizations,
        **options,
    )


def build_app(*sources: Any, store: InMemoryStateStore, renderer: RecordingRenderer | None = None) -> PortcullisApp:
    return PortcullisApp(
        AppConfig(secret_key=SECRET),
        store=store,
        sources=AuthSourceRegistry(sources),
        renderer=renderer or RecordingRenderer(),
        clock=fixed_clock,
    )


def demo_config(**overrides: Any) -> AppConfig:
    sources = (
        SourceConfig(
            id="src1",
            remember_username_enabled=True,
            users=(UserConfig(username="alice", password="correct-horse"),),
        ),
    )
    values: dict[str, Any] = {"secret_key": SECRET, "sources": sources}
    values.update(overrides)
    return AppConfig(**values)


def view_of(response: Response) -> dict[str, Any]:
    return json_decode(response.body)


def auth_state_from_location(response: Response) -> str:
    location = response.header("location")
    assert location is not None
    return parse_qs(urlsplit(location).query)["AuthState"][-1]


def set_cookie_headers(response: Response) -> dict[str, str]:
    cookies: dict[str, str] = {}
    for header in response.header_values("set-cookie"):
        name = header.split("=", 1)[0]
        cookies[name] = header
    return cookies


__all__ = [
    "FIXED_NOW",
    "FakeMonotonic",
    "RETURN_URL",
    "RecordingRenderer",
    "SECRET",
    "ScriptedSource",
    "auth_state_from_location",
    "build_app",
    "demo_config",
    "fixed_clock",
    "make_store",
    "org_source",
    "set_cookie_headers",
    "userpass_source",
    "view_of",
]

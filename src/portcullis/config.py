"""Application configuration objects."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Mapping

import msgspec
from msgspec import Struct

from .exceptions import ConfigurationError
from .observability import ObservabilityConfig
from .sources import (
    AuthSource,
    AuthSourceRegistry,
    LoginLink,
    Organization,
    StaticCredentialSource,
    StaticOrganizationSource,
    StaticUser,
    UsernameOrgMethod,
)
from .state import StateStore

__all__ = [
    "AppConfig",
    "OrganizationConfig",
    "SourceConfig",
    "UserConfig",
    "build_registry",
    "load_config",
]


class UserConfig(Struct, frozen=True):
    username: str
    password: str
    attributes: dict[str, list[str]] = msgspec.field(default_factory=dict)
    organization: str | None = None


class OrganizationConfig(Struct, frozen=True):
    id: str
    name: str


class LinkConfig(Struct, frozen=True):
    label: str
    href: str


class SourceConfig(Struct, frozen=True):
    """One configured credential backend."""

    id: str
    kind: Literal["userpass", "userpass_org"] = "userpass"
    remember_username_enabled: bool = False
    remember_username_checked: bool = False
    remember_me_enabled: bool = False
    remember_me_checked: bool = False
    remember_organization_enabled: bool = False
    remember_organization_checked: bool = False
    username_org_method: UsernameOrgMethod = UsernameOrgMethod.NONE
    links: tuple[LinkConfig, ...] = ()
    users: tuple[UserConfig, ...] = ()
    organizations: tuple[OrganizationConfig, ...] | None = None


class AppConfig(Struct, frozen=True):
    """Typed configuration for a :class:`~portcullis.application.PortcullisApp` instance."""

    secret_key: str = ""
    base_path: str = ""
    state_ttl_seconds: int = 3600
    userpass_path: str = "/login/userpass"
    userpass_org_path: str = "/login/userpass-org"
    template_userpass: str = "core:loginuserpass.twig"
    max_request_body_bytes: int | None = 65_536
    observability: ObservabilityConfig = ObservabilityConfig()
    sources: tuple[SourceConfig, ...] = ()

    def __post_init__(self) -> None:
        if self.state_ttl_seconds <= 0:
            raise ValueError("state_ttl_seconds must be positive")
        seen: set[str] = set()
        for source in self.sources:
            if source.id in seen:
                raise ValueError(f"duplicate source id {source.id!r}")
            seen.add(source.id)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AppConfig":
        try:
            return msgspec.convert(dict(data), type=cls)
        except msgspec.ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc

    def route(self, path: str) -> str:
        """Return ``path`` mounted under :attr:`base_path`."""

        base = self.base_path.rstrip("/")
        return f"{base}{path}" if base else path


def load_config(path: str | Path) -> AppConfig:
    """Read an :class:`AppConfig` from a ``.json`` or ``.toml`` file."""

    path = Path(path)
    raw = path.read_bytes()
    suffix = path.suffix.lower()
    try:
        if suffix == ".json":
            return msgspec.json.decode(raw, type=AppConfig)
        if suffix == ".toml":
            return msgspec.toml.decode(raw, type=AppConfig)
    except msgspec.ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}: {exc}") from exc
    except msgspec.DecodeError as exc:
        raise ConfigurationError(f"Malformed configuration file {path}: {exc}") from exc
    raise ConfigurationError(f"Unsupported configuration format {suffix!r}")


def _build_source(source: SourceConfig, store: StateStore) -> AuthSource:
    links = tuple(LoginLink(label=link.label, href=link.href) for link in source.links)
    users = [
        StaticUser(
            username=user.username,
            password=user.password,
            attributes={key: list(values) for key, values in user.attributes.items()},
            organization=user.organization,
        )
        for user in source.users
    ]
    if source.kind == "userpass":
        return StaticCredentialSource(
            source.id,
            users=users,
            store=store,
            remember_username_enabled=source.remember_username_enabled,
            remember_username_checked=source.remember_username_checked,
            remember_me_enabled=source.remember_me_enabled,
            remember_me_checked=source.remember_me_checked,
            login_links=links,
        )
    organizations = None
    if source.organizations is not None:
        organizations = [Organization(id=org.id, display_name=org.name) for org in source.organizations]
    return StaticOrganizationSource(
        source.id,
        users=users,
        organizations=organizations,
        store=store,
        remember_username_enabled=source.remember_username_enabled,
        remember_username_checked=source.remember_username_checked,
        remember_organization_enabled=source.remember_organization_enabled,
        remember_organization_checked=source.remember_organization_checked,
        username_org_method=source.username_org_method,
        login_links=links,
    )


def build_registry(config: AppConfig, store: StateStore) -> AuthSourceRegistry:
    """Instantiate every configured source against ``store``."""

    return AuthSourceRegistry(_build_source(source, store) for source in config.sources)

"""Credential backends consumed by the login controllers."""

from __future__ import annotations

import hmac
import logging
from enum import Enum
from typing import Awaitable, Callable, ClassVar, Iterable, Iterator, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import msgspec
from msgspec import Struct

from .exceptions import ConfigurationError, HTTPError, LoginFailure
from .http import Status
from .responses import RedirectResponse, Response
from .state import AuthenticationState, AuthStage, StateStore

logger = logging.getLogger(__name__)

__all__ = [
    "AuthSource",
    "AuthSourceRegistry",
    "Completion",
    "CredentialSource",
    "LoginLink",
    "Organization",
    "OrganizationCredentialSource",
    "StaticCredentialSource",
    "StaticOrganizationSource",
    "StaticUser",
    "UsernameOrgMethod",
    "redirect_to_return_url",
]

Attributes = Mapping[str, list[str]]
Completion = Callable[[AuthenticationState, StateStore], Awaitable[Response]]


class LoginLink(Struct, frozen=True):
    """Alternate login entry shown next to the form."""

    label: str
    href: str


class Organization(Struct, frozen=True, rename={"display_name": "displayName"}):
    id: str
    display_name: str


class UsernameOrgMethod(str, Enum):
    """How an organization may be embedded in the username as ``user@org``."""

    NONE = "none"
    ALLOW = "allow"
    FORCE = "force"


async def redirect_to_return_url(state: AuthenticationState, store: StateStore) -> Response:
    """Persist the completed state and send the browser back to the caller."""

    if not state.return_url:
        raise HTTPError(Status.BAD_REQUEST, {"code": "BADREQUEST", "detail": "missing_return_url"})
    completed_id = await store.save(state, AuthStage.COMPLETED)
    parts = urlsplit(state.return_url)
    query = parse_qsl(parts.query, keep_blank_values=True)
    query.append(("AuthState", completed_id))
    return RedirectResponse(urlunsplit(parts._replace(query=urlencode(query))))


class AuthSource:
    """Shared configuration of a username/password style backend."""

    stage: ClassVar[AuthStage]

    def __init__(
        self,
        auth_id: str,
        *,
        store: StateStore,
        remember_username_enabled: bool = False,
        remember_username_checked: bool = False,
        login_links: Iterable[LoginLink] = (),
        completion: Completion | None = None,
    ) -> None:
        if not auth_id:
            raise ConfigurationError("Authentication sources need an id")
        self.auth_id = auth_id
        self.store = store
        self.remember_username_enabled = remember_username_enabled
        self.remember_username_checked = remember_username_checked
        self.login_links = tuple(login_links)
        self._completion = completion or redirect_to_return_url

    async def authenticate(
        self,
        return_url: str,
        *,
        forced_username: str | None = None,
        sp_metadata: object = None,
    ) -> str:
        """Open a login attempt and return the id the login page expects."""

        state = AuthenticationState(
            auth_source_id=self.auth_id,
            forced_username=forced_username,
            sp_metadata=sp_metadata,
            return_url=return_url,
        )
        return await self.store.save(state, self.stage)

    async def complete(self, state: AuthenticationState) -> Response:
        logger.info("authentication completed for source %s", self.auth_id)
        return await self._completion(state, self.store)


class CredentialSource(AuthSource):
    """Backend verifying a username and a password."""

    stage = AuthStage.USERPASS

    def __init__(
        self,
        auth_id: str,
        *,
        store: StateStore,
        remember_username_enabled: bool = False,
        remember_username_checked: bool = False,
        remember_me_enabled: bool = False,
        remember_me_checked: bool = False,
        login_links: Iterable[LoginLink] = (),
        completion: Completion | None = None,
    ) -> None:
        super().__init__(
            auth_id,
            store=store,
            remember_username_enabled=remember_username_enabled,
            remember_username_checked=remember_username_checked,
            login_links=login_links,
            completion=completion,
        )
        self.remember_me_enabled = remember_me_enabled
        self.remember_me_checked = remember_me_checked

    async def login(self, username: str, password: str) -> Attributes:
        """Return the user's attributes or raise :class:`LoginFailure`."""

        raise NotImplementedError

    async def handle_login(self, state_id: str, username: str, password: str) -> Response:
        """Verify the credentials and hand the attempt to the completion step.

        Returns only on success; failures propagate as :class:`LoginFailure`.
        """

        state = await self.store.load(state_id, self.stage)
        attributes = await self.login(username, password)
        state = state.replace(cached_username=username, attributes=dict(attributes), error=None)
        return await self.complete(state)


class OrganizationCredentialSource(AuthSource):
    """Backend verifying a username, a password and an organization."""

    stage = AuthStage.USERPASS_ORG

    def __init__(
        self,
        auth_id: str,
        *,
        store: StateStore,
        remember_username_enabled: bool = False,
        remember_username_checked: bool = False,
        remember_organization_enabled: bool = False,
        remember_organization_checked: bool = False,
        username_org_method: UsernameOrgMethod = UsernameOrgMethod.NONE,
        login_links: Iterable[LoginLink] = (),
        completion: Completion | None = None,
    ) -> None:
        super().__init__(
            auth_id,
            store=store,
            remember_username_enabled=remember_username_enabled,
            remember_username_checked=remember_username_checked,
            login_links=login_links,
            completion=completion,
        )
        self.remember_organization_enabled = remember_organization_enabled
        self.remember_organization_checked = remember_organization_checked
        self.username_org_method = UsernameOrgMethod(username_org_method)

    async def login(self, username: str, password: str, organization: str) -> Attributes:
        raise NotImplementedError

    async def organizations(self) -> list[Organization] | None:
        """Known organizations, or ``None`` when the user need not pick one."""

        raise NotImplementedError

    async def list_organizations(self, state_id: str) -> list[Organization] | None:
        await self.store.load(state_id, self.stage)
        if self.username_org_method is UsernameOrgMethod.FORCE:
            return None
        return await self.organizations()

    async def handle_login(self, state_id: str, username: str, password: str, organization: str) -> Response:
        state = await self.store.load(state_id, self.stage)
        if self.username_org_method is not UsernameOrgMethod.NONE:
            user, sep, org = username.partition("@")
            if sep:
                username, organization = user, org
            elif self.username_org_method is UsernameOrgMethod.FORCE:
                raise LoginFailure("WRONGUSERPASS")
        attributes = await self.login(username, password, organization)
        state = state.replace(
            cached_username=username,
            cached_organization=organization,
            organization_id=organization,
            attributes=dict(attributes),
            error=None,
        )
        return await self.complete(state)


class StaticUser(Struct, frozen=True):
    """A user record held in configuration."""

    username: str
    password: str
    attributes: dict[str, list[str]] = msgspec.field(default_factory=dict)
    organization: str | None = None


def _check_password(user: StaticUser | None, password: str) -> StaticUser:
    # Compare even for unknown users so both paths cost the same.
    expected = user.password if user is not None else "\x00"
    if not hmac.compare_digest(expected.encode("utf-8"), password.encode("utf-8")) or user is None:
        raise LoginFailure("WRONGUSERPASS")
    return user


def _attributes_for(user: StaticUser) -> dict[str, list[str]]:
    attributes = {key: list(values) for key, values in user.attributes.items()}
    attributes.setdefault("uid", [user.username])
    return attributes


class StaticCredentialSource(CredentialSource):
    """Username/password backend backed by an in-memory user list."""

    def __init__(self, auth_id: str, *, users: Iterable[StaticUser], **options) -> None:
        super().__init__(auth_id, **options)
        self._users = {user.username: user for user in users}

    async def login(self, username: str, password: str) -> Attributes:
        user = _check_password(self._users.get(username), password)
        return _attributes_for(user)


class StaticOrganizationSource(OrganizationCredentialSource):
    """Username/password/organization backend backed by in-memory records."""

    def __init__(
        self,
        auth_id: str,
        *,
        users: Iterable[StaticUser],
        organizations: Iterable[Organization] | None = None,
        **options,
    ) -> None:
        super().__init__(auth_id, **options)
        self._users = {(user.organization, user.username): user for user in users}
        self._organizations = list(organizations) if organizations is not None else None

    async def organizations(self) -> list[Organization] | None:
        if self._organizations is None:
            return None
        return list(self._organizations)

    async def login(self, username: str, password: str, organization: str) -> Attributes:
        key = (organization or None, username)
        user = _check_password(self._users.get(key), password)
        attributes = _attributes_for(user)
        if organization:
            attributes.setdefault("organization", [organization])
        return attributes


class AuthSourceRegistry:
    """Configured backends keyed by their id."""

    def __init__(self, sources: Iterable[AuthSource] | None = None) -> None:
        self._sources: dict[str, AuthSource] = {}
        for source in sources or ():
            self.register(source)

    def register(self, source: AuthSource) -> None:
        if source.auth_id in self._sources:
            raise ConfigurationError(f"Duplicate authentication source id {source.auth_id!r}")
        self._sources[source.auth_id] = source

    def get(self, auth_id: str) -> AuthSource | None:
        return self._sources.get(auth_id)

    def ids(self) -> tuple[str, ...]:
        return tuple(self._sources)

    def __contains__(self, auth_id: object) -> bool:
        return auth_id in self._sources

    def __iter__(self) -> Iterator[AuthSource]:
        return iter(self._sources.values())

    def __len__(self) -> int:
        return len(self._sources)

"""View model handed to the template layer."""

from __future__ import annotations

from typing import Any, Protocol

import msgspec
from msgspec import UNSET, Struct, UnsetType

from .responses import Response
from .serialization import json_encode
from .sources import LoginLink, Organization

__all__ = ["JSONViewRenderer", "LoginView", "ViewRenderer"]


class LoginView(
    Struct,
    frozen=True,
    rename={
        "auth_state": "AuthState",
        "force_username": "forceUsername",
        "remember_username_enabled": "rememberUsernameEnabled",
        "remember_username_checked": "rememberUsernameChecked",
        "remember_me_enabled": "rememberMeEnabled",
        "remember_me_checked": "rememberMeChecked",
        "remember_organization_enabled": "rememberOrganizationEnabled",
        "remember_organization_checked": "rememberOrganizationChecked",
        "error_code": "errorcode",
        "error_codes": "errorcodes",
        "error_params": "errorparams",
        "query_params": "queryParams",
        "sp_metadata": "SPMetadata",
        "selected_org": "selectedOrg",
    },
):
    """Key/value context for the login templates.

    Fields left ``UNSET`` are omitted from the encoded view, mirroring keys
    the template only receives for one of the two form variants.
    """

    auth_state: str
    username: str
    force_username: bool = False
    remember_username_enabled: bool = False
    remember_username_checked: bool = False
    remember_me_enabled: bool = False
    remember_me_checked: bool = False
    links: tuple[LoginLink, ...] = ()
    error_code: str | None = None
    error_codes: dict[str, dict[str, str]] = msgspec.field(default_factory=dict)
    error_params: dict[str, Any] | None = None
    sp_metadata: Any = None
    query_params: dict[str, str] | UnsetType = UNSET
    remember_organization_enabled: bool | UnsetType = UNSET
    remember_organization_checked: bool | UnsetType = UNSET
    organizations: list[Organization] | UnsetType = UNSET
    selected_org: str | UnsetType = UNSET


class ViewRenderer(Protocol):
    """Turns a view model into an HTTP response."""

    def render(self, template: str, view: LoginView) -> Response:  # pragma: no cover - protocol
        ...


class JSONViewRenderer:
    """Renderer that emits the view model as JSON.

    Used when no template engine is wired in; the template name travels in a
    header so clients can still tell the two forms apart.
    """

    template_header = "x-portcullis-template"

    def render(self, template: str, view: LoginView) -> Response:
        return Response(
            headers=(
                ("content-type", "application/json"),
                (self.template_header, template),
            ),
            body=json_encode(view),
        )

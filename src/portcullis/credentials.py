"""Resolution of the effective credentials for the current request.

Each remembered field comes from one of three ranked sources: the submitted
form field, the remember cookie, then the value cached in the state.
"""

from __future__ import annotations

from typing import Final, Mapping

from .cookies import remember_cookie_name
from .requests import FormData

__all__ = [
    "CHECKED_VALUE",
    "ORGANIZATION_FIELD",
    "PASSWORD_FIELD",
    "REMEMBER_ME_FIELD",
    "REMEMBER_ORGANIZATION_FIELD",
    "REMEMBER_USERNAME_FIELD",
    "USERNAME_FIELD",
    "extract",
    "is_checked",
    "resolve_organization",
    "resolve_password",
    "resolve_username",
]

USERNAME_FIELD: Final = "username"
PASSWORD_FIELD: Final = "password"
ORGANIZATION_FIELD: Final = "organization"
REMEMBER_USERNAME_FIELD: Final = "remember_username"
REMEMBER_ME_FIELD: Final = "remember_me"
REMEMBER_ORGANIZATION_FIELD: Final = "remember_organization"
CHECKED_VALUE: Final = "Yes"


def extract(
    *,
    submitted: str | None,
    cookie_present: bool,
    cookie_value: str | None,
    cookie_enabled: bool,
    cached: object | None,
) -> str:
    """Pick the first available value; ``submitted`` wins even when empty."""

    if submitted is not None:
        return submitted
    if cookie_enabled and cookie_present:
        return cookie_value or ""
    if cached is not None:
        return str(cached)
    return ""


def _remembered_field(
    field: str,
    form: FormData,
    cookies: Mapping[str, str],
    *,
    auth_source_id: str,
    remember_enabled: bool,
    cached: object | None,
) -> str:
    name = remember_cookie_name(auth_source_id, field)
    return extract(
        submitted=form.get(field, "") if form.has(field) else None,
        cookie_present=name in cookies,
        cookie_value=cookies.get(name),
        cookie_enabled=remember_enabled,
        cached=cached,
    )


def resolve_username(
    form: FormData,
    cookies: Mapping[str, str],
    *,
    auth_source_id: str,
    remember_enabled: bool,
    cached: object | None,
) -> str:
    return _remembered_field(
        USERNAME_FIELD,
        form,
        cookies,
        auth_source_id=auth_source_id,
        remember_enabled=remember_enabled,
        cached=cached,
    )


def resolve_organization(
    form: FormData,
    cookies: Mapping[str, str],
    *,
    auth_source_id: str,
    remember_enabled: bool,
    cached: object | None,
) -> str:
    return _remembered_field(
        ORGANIZATION_FIELD,
        form,
        cookies,
        auth_source_id=auth_source_id,
        remember_enabled=remember_enabled,
        cached=cached,
    )


def resolve_password(form: FormData) -> str:
    return form.get(PASSWORD_FIELD, "") or ""


def is_checked(form: FormData, field: str) -> bool:
    return form.get(field) == CHECKED_VALUE

"""Portcullis username/password login flow for single sign-on services."""

from .application import PortcullisApp
from .config import AppConfig, OrganizationConfig, SourceConfig, UserConfig, build_registry, load_config
from .cookies import Cookie, decide_remember, same_site_none_supported
from .error_codes import ErrorCodes
from .exceptions import (
    ConfigurationError,
    HTTPError,
    LoginFailure,
    NoStateError,
    PortcullisError,
    StageMismatchError,
    StateError,
    StateTamperedError,
)
from .login import LoginController
from .observability import Observability, ObservabilityConfig
from .requests import FormData, Request
from .responses import JSONResponse, PlainTextResponse, RedirectResponse, Response
from .sources import (
    AuthSource,
    AuthSourceRegistry,
    CredentialSource,
    LoginLink,
    Organization,
    OrganizationCredentialSource,
    StaticCredentialSource,
    StaticOrganizationSource,
    StaticUser,
    UsernameOrgMethod,
)
from .state import AuthenticationState, AuthStage, InMemoryStateStore, StateErrorInfo, StateStore
from .views import JSONViewRenderer, LoginView, ViewRenderer

__all__ = [
    "AppConfig",
    "AuthSource",
    "AuthSourceRegistry",
    "AuthStage",
    "AuthenticationState",
    "ConfigurationError",
    "Cookie",
    "CredentialSource",
    "ErrorCodes",
    "FormData",
    "HTTPError",
    "InMemoryStateStore",
    "JSONResponse",
    "JSONViewRenderer",
    "LoginController",
    "LoginFailure",
    "LoginLink",
    "LoginView",
    "NoStateError",
    "Observability",
    "ObservabilityConfig",
    "Organization",
    "OrganizationConfig",
    "OrganizationCredentialSource",
    "PlainTextResponse",
    "PortcullisApp",
    "PortcullisError",
    "RedirectResponse",
    "Request",
    "Response",
    "SourceConfig",
    "StageMismatchError",
    "StateError",
    "StateErrorInfo",
    "StateStore",
    "StateTamperedError",
    "StaticCredentialSource",
    "StaticOrganizationSource",
    "StaticUser",
    "UserConfig",
    "UsernameOrgMethod",
    "ViewRenderer",
    "build_registry",
    "decide_remember",
    "load_config",
    "same_site_none_supported",
]

"""Controllers serving the username/password login pages."""

from __future__ import annotations

import datetime as dt
import logging
from typing import Awaitable, Callable, Iterable, TypeVar

from msgspec import structs

from .cookies import Cookie, decide_remember, remember_cookie, remember_cookie_name, same_site_none_supported
from .credentials import (
    ORGANIZATION_FIELD,
    REMEMBER_ME_FIELD,
    REMEMBER_ORGANIZATION_FIELD,
    REMEMBER_USERNAME_FIELD,
    USERNAME_FIELD,
    is_checked,
    resolve_organization,
    resolve_password,
    resolve_username,
)
from .error_codes import ErrorCodes
from .exceptions import HTTPError, LoginFailure, StateError
from .http import Status
from .observability import Observability
from .requests import FormData, Request
from .responses import Response
from .sources import (
    AuthSource,
    AuthSourceRegistry,
    CredentialSource,
    Organization,
    OrganizationCredentialSource,
)
from .state import AuthenticationState, AuthStage, StateErrorInfo, StateStore
from .views import JSONViewRenderer, LoginView, ViewRenderer

logger = logging.getLogger(__name__)

__all__ = ["AUTH_STATE_PARAM", "DEFAULT_TEMPLATE", "LoginController"]

AUTH_STATE_PARAM = "AuthState"
DEFAULT_TEMPLATE = "core:loginuserpass.twig"

SourceT = TypeVar("SourceT", bound=AuthSource)


def _state_http_error(exc: StateError) -> HTTPError:
    return HTTPError(Status.BAD_REQUEST, {"code": exc.code, "detail": str(exc)})


class _Submission:
    """Per-request bookkeeping shared by both form variants."""

    __slots__ = ("cookies", "error", "state", "state_id")

    def __init__(self, state_id: str, state: AuthenticationState) -> None:
        self.state_id = state_id
        self.state = state
        self.error: StateErrorInfo | None = state.error
        self.cookies: list[Cookie] = []

    @property
    def query_params(self) -> dict[str, str] | None:
        if self.error is None:
            return None
        return {AUTH_STATE_PARAM: self.state_id}


class LoginController:
    """Run one round of the login form: render it or verify a submission.

    Every round starts from the state named by the ``AuthState`` parameter.
    A successful verification returns the source's continuation response;
    anything else re-renders the form, reissuing the state whenever it had to
    change.
    """

    def __init__(
        self,
        *,
        store: StateStore,
        sources: AuthSourceRegistry,
        renderer: ViewRenderer | None = None,
        observability: Observability | None = None,
        template: str = DEFAULT_TEMPLATE,
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self.store = store
        self.sources = sources
        self.renderer = renderer or JSONViewRenderer()
        self.observability = observability or Observability()
        self.template = template
        self._clock = clock or (lambda: dt.datetime.now(dt.timezone.utc))

    # ------------------------------------------------------------------ helpers
    @staticmethod
    def _auth_state_id(request: Request, form: FormData) -> str:
        state_id = request.query_value(AUTH_STATE_PARAM) or form.get(AUTH_STATE_PARAM)
        if not state_id:
            raise HTTPError(Status.BAD_REQUEST, {"code": "BADREQUEST", "detail": "missing_auth_state"})
        return state_id

    async def _load(self, state_id: str, stage: AuthStage) -> AuthenticationState:
        try:
            return await self.store.load(state_id, stage)
        except StateError as exc:
            logger.info("rejected state %s: %s", state_id, exc)
            raise _state_http_error(exc) from exc

    def _source(self, state: AuthenticationState, kind: type[SourceT]) -> SourceT:
        source = self.sources.get(state.auth_source_id)
        if not isinstance(source, kind):
            logger.error("no %s registered under id %r", kind.__name__, state.auth_source_id)
            raise HTTPError(
                Status.INTERNAL_SERVER_ERROR,
                {
                    "code": "AUTHSOURCEERROR",
                    "detail": f"Could not find authentication source with id {state.auth_source_id}",
                },
            )
        return source

    def _remember(
        self,
        submission: _Submission,
        request: Request,
        form: FormData,
        *,
        auth_source_id: str,
        field: str,
        checkbox: str,
        value: str,
    ) -> None:
        decision = decide_remember(True, is_checked(form, checkbox), now=self._clock())
        cookie = remember_cookie(
            remember_cookie_name(auth_source_id, field),
            value,
            decision,
            same_site_none=same_site_none_supported(request.user_agent),
            secure=request.is_secure,
        )
        if cookie is not None:
            submission.cookies.append(cookie)

    async def _verify(
        self, submission: _Submission, source: AuthSource, attempt: Callable[[str], Awaitable[Response]]
    ) -> Response | None:
        """Run ``attempt``; on :class:`LoginFailure` attach the error to a reissued state."""

        context = self.observability.on_login_attempt_start(source.auth_id, source.stage.value)
        try:
            response = await attempt(submission.state_id)
        except LoginFailure as failure:
            self.observability.on_login_attempt_failure(context, failure.code)
            logger.info("login failed for source %s: %s", source.auth_id, failure.code)
            submission.state = submission.state.with_error(failure.code, failure.params)
            submission.error = submission.state.error
            submission.state_id = await self.store.save(submission.state, source.stage)
            # The error now lives in the persisted snapshot only.
            submission.state = submission.state.without_error()
            return None
        except StateError as exc:
            self.observability.on_login_attempt_failure(context, exc.code)
            raise _state_http_error(exc) from exc
        except Exception as exc:
            self.observability.on_login_attempt_error(context, exc)
            raise
        self.observability.on_login_attempt_success(context)
        return response.with_cookies(submission.cookies, now=self._clock())

    def _render(self, view: LoginView, submission: _Submission) -> Response:
        response = self.renderer.render(self.template, view)
        return response.with_cookies(submission.cookies, now=self._clock())

    # ------------------------------------------------------------------ username/password
    async def login_userpass(self, request: Request) -> Response:
        form = await request.form()
        state_id = self._auth_state_id(request, form)
        state = await self._load(state_id, AuthStage.USERPASS)
        source = self._source(state, CredentialSource)
        submission = _Submission(state_id, state)
        cookies = request.cookies

        username = resolve_username(
            form,
            cookies,
            auth_source_id=source.auth_id,
            remember_enabled=source.remember_username_enabled,
            cached=state.cached_username,
        )
        password = resolve_password(form)

        if form.get(USERNAME_FIELD) or password:
            # A new attempt supersedes whatever error the state carried.
            submission.state = submission.state.without_error()
            if state.forced_username is not None:
                username = state.forced_username

            if source.remember_username_enabled:
                self._remember(
                    submission,
                    request,
                    form,
                    auth_source_id=source.auth_id,
                    field=USERNAME_FIELD,
                    checkbox=REMEMBER_USERNAME_FIELD,
                    value=username,
                )

            if source.remember_me_enabled and is_checked(form, REMEMBER_ME_FIELD):
                submission.state = submission.state.replace(remember_me=True)
                submission.state_id = await self.store.save(submission.state, AuthStage.USERPASS)

            response = await self._verify(
                submission,
                source,
                lambda current_id: source.handle_login(current_id, username, password),
            )
            if response is not None:
                return response

        if state.forced_username is not None:
            view_username = state.forced_username
            remember_username_enabled = False
            remember_username_checked = False
        else:
            view_username = username
            remember_username_enabled = source.remember_username_enabled
            remember_username_checked = source.remember_username_checked or (
                remember_cookie_name(source.auth_id, USERNAME_FIELD) in cookies
            )

        view = LoginView(
            auth_state=submission.state_id,
            username=view_username,
            force_username=state.forced_username is not None,
            remember_username_enabled=remember_username_enabled,
            remember_username_checked=remember_username_checked,
            remember_me_enabled=source.remember_me_enabled,
            remember_me_checked=source.remember_me_checked,
            links=source.login_links,
            error_code=submission.error.code if submission.error else None,
            error_codes=ErrorCodes.all_messages(),
            error_params=dict(submission.error.params) if submission.error else None,
            sp_metadata=state.sp_metadata,
        )
        query_params = submission.query_params
        if query_params is not None:
            view = _with_query_params(view, query_params)
        return self._render(view, submission)

    # ------------------------------------------------------------------ username/password/organization
    async def login_userpass_org(self, request: Request) -> Response:
        form = await request.form()
        state_id = self._auth_state_id(request, form)
        state = await self._load(state_id, AuthStage.USERPASS_ORG)
        source = self._source(state, OrganizationCredentialSource)
        submission = _Submission(state_id, state)
        cookies = request.cookies

        try:
            organizations = await source.list_organizations(state_id)
        except StateError as exc:
            raise _state_http_error(exc) from exc

        username = resolve_username(
            form,
            cookies,
            auth_source_id=source.auth_id,
            remember_enabled=source.remember_username_enabled,
            cached=state.cached_username,
        )
        password = resolve_password(form)
        organization = resolve_organization(
            form,
            cookies,
            auth_source_id=source.auth_id,
            remember_enabled=source.remember_organization_enabled,
            cached=state.cached_organization,
        )

        if organizations is None or organization != "":
            if form.get(USERNAME_FIELD) or password:
                submission.state = submission.state.without_error()
                if source.remember_username_enabled:
                    self._remember(
                        submission,
                        request,
                        form,
                        auth_source_id=source.auth_id,
                        field=USERNAME_FIELD,
                        checkbox=REMEMBER_USERNAME_FIELD,
                        value=username,
                    )
                if source.remember_organization_enabled:
                    self._remember(
                        submission,
                        request,
                        form,
                        auth_source_id=source.auth_id,
                        field=ORGANIZATION_FIELD,
                        checkbox=REMEMBER_ORGANIZATION_FIELD,
                        value=organization,
                    )
                response = await self._verify(
                    submission,
                    source,
                    lambda current_id: source.handle_login(current_id, username, password, organization),
                )
                if response is not None:
                    return response

        view = LoginView(
            auth_state=submission.state_id,
            username=username,
            remember_username_enabled=source.remember_username_enabled,
            remember_username_checked=source.remember_username_checked
            or remember_cookie_name(source.auth_id, USERNAME_FIELD) in cookies,
            remember_organization_enabled=source.remember_organization_enabled,
            remember_organization_checked=source.remember_organization_checked
            or remember_cookie_name(source.auth_id, ORGANIZATION_FIELD) in cookies,
            links=source.login_links,
            error_code=submission.error.code if submission.error else None,
            error_codes=ErrorCodes.all_messages(),
            error_params=dict(submission.error.params) if submission.error else None,
            sp_metadata=state.sp_metadata,
        )
        if organizations is not None:
            view = _with_organizations(view, organizations, organization)
        query_params = submission.query_params
        if query_params is not None:
            view = _with_query_params(view, query_params)
        return self._render(view, submission)


def _with_query_params(view: LoginView, query_params: dict[str, str]) -> LoginView:
    return structs.replace(view, query_params=query_params)


def _with_organizations(view: LoginView, organizations: Iterable[Organization], selected: str) -> LoginView:
    return structs.replace(view, organizations=list(organizations), selected_org=selected)

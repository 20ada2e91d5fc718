"""Tracing, metrics, error reporting and event logs for login traffic.

Every integration is optional: OpenTelemetry, Sentry and Datadog are imported
lazily and silently skipped when the package is missing. Event logs are JSON
lines on the ``portcullis.observability`` logger and need nothing extra.
"""

from __future__ import annotations

import json
import logging
import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Mapping, NamedTuple

import msgspec

if TYPE_CHECKING:
    from .requests import Request
    from .responses import Response


class LoginObservabilityConfig(msgspec.Struct, frozen=True):
    """Span and metric names for credential verification attempts."""

    span_name: str = "portcullis.login"
    datadog_metric_success: str = "portcullis.login.success"
    datadog_metric_failure: str = "portcullis.login.failures"
    datadog_metric_timing: str = "portcullis.login.duration"


class RequestObservabilityConfig(msgspec.Struct, frozen=True):
    span_name: str = "portcullis.request"
    datadog_metric_error: str = "portcullis.request.errors"
    datadog_metric_timing: str = "portcullis.request.duration"


class ObservabilityConfig(msgspec.Struct, frozen=True):
    enabled: bool = True
    log_events: bool = True
    opentelemetry_enabled: bool = True
    opentelemetry_tracer: str = "portcullis"
    sentry_enabled: bool = True
    sentry_capture_exceptions: bool = True
    datadog_enabled: bool = True
    datadog_tags: tuple[tuple[str, str], ...] = ()
    login: LoginObservabilityConfig = LoginObservabilityConfig()
    request: RequestObservabilityConfig = RequestObservabilityConfig()


class _Metrics(NamedTuple):
    success: str | None
    failure: str | None
    timing: str | None


@dataclass(slots=True)
class _Observation:
    result_key: str
    metrics: _Metrics
    tags: tuple[str, ...]
    span: Any | None
    stack: ExitStack
    log_fields: dict[str, Any] = field(default_factory=dict)
    started: float = field(default_factory=time.perf_counter)

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.started) * 1000.0


class Observability:
    """Fan request and login events out to the configured integrations."""

    def __init__(self, config: ObservabilityConfig | None = None) -> None:
        self.config = config or ObservabilityConfig()
        self._logger = logging.getLogger("portcullis.observability")
        self._tags = tuple(f"{key}:{value}" for key, value in self.config.datadog_tags)
        self._tracer: Any | None = None
        self._span_kinds: dict[str, Any] = {}
        self._span_status: Callable[..., Any] | None = None
        self._status_codes: Any | None = None
        self._capture: Callable[[BaseException], Any] | None = None
        self._statsd: Any | None = None
        if self.config.enabled:
            self._load_integrations()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def _load_integrations(self) -> None:
        if self.config.opentelemetry_enabled:
            try:
                from opentelemetry import trace  # type: ignore[import-not-found]
            except ImportError:  # pragma: no cover - optional dependency
                pass
            else:
                self._tracer = trace.get_tracer(self.config.opentelemetry_tracer)
                kinds = getattr(trace, "SpanKind", None)
                self._span_kinds = {
                    "server": getattr(kinds, "SERVER", None),
                    "internal": getattr(kinds, "INTERNAL", None),
                }
                self._span_status = getattr(trace, "Status", None)
                self._status_codes = getattr(trace, "StatusCode", None)
        if self.config.sentry_enabled and self.config.sentry_capture_exceptions:
            try:
                import sentry_sdk  # type: ignore[import-not-found]
            except ImportError:  # pragma: no cover - optional dependency
                pass
            else:
                self._capture = sentry_sdk.capture_exception
        if self.config.datadog_enabled:
            try:
                from datadog import statsd  # type: ignore[import-not-found]
            except ImportError:  # pragma: no cover - optional dependency
                pass
            else:
                self._statsd = statsd

    # ------------------------------------------------------------------ plumbing
    def _begin(
        self,
        span_name: str,
        *,
        kind: str,
        result_key: str,
        metrics: _Metrics,
        attributes: Mapping[str, Any],
        tags: tuple[str, ...],
        log_fields: Mapping[str, Any],
    ) -> _Observation | None:
        if not self.enabled:
            return None
        stack = ExitStack()
        span = None
        if self._tracer is not None:
            span = stack.enter_context(self._tracer.start_as_current_span(span_name, kind=self._span_kinds.get(kind)))
            for key, value in attributes.items():
                span.set_attribute(key, value)
        return _Observation(
            result_key=result_key,
            metrics=metrics,
            tags=self._tags + tags,
            span=span,
            stack=stack,
            log_fields=dict(log_fields),
        )

    def _span_status_for(self, ok: bool, description: str | None) -> Any | None:
        if self._span_status is None or self._status_codes is None:
            return None
        code = getattr(self._status_codes, "OK" if ok else "ERROR", None)
        if code is None:
            return None
        if ok or description is None:
            return self._span_status(code)
        return self._span_status(code, description=description)

    def _finish(
        self,
        observation: _Observation,
        *,
        result: str,
        counter: str | None,
        event: str,
        extra_tags: tuple[str, ...] = (),
        attributes: Mapping[str, Any] | None = None,
        details: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
        description: str | None = None,
    ) -> None:
        ok = result == "success"
        tags = list(observation.tags + extra_tags)
        if self._statsd is not None:
            if counter:
                self._statsd.increment(counter, tags=tags)
            if observation.metrics.timing:
                self._statsd.timing(observation.metrics.timing, observation.elapsed_ms(), tags=tags)
        span = observation.span
        if span is not None:
            span.set_attribute(observation.result_key, result)
            for key, value in (attributes or {}).items():
                span.set_attribute(key, value)
            if error is not None and hasattr(span, "record_exception"):
                span.record_exception(error)
            status = self._span_status_for(ok, description)
            if status is not None:
                span.set_status(status)
        if self.config.log_events:
            payload = dict(observation.log_fields)
            payload.update({key: value for key, value in (details or {}).items() if value is not None})
            payload["event"] = event
            self._logger.info(json.dumps(payload, separators=(",", ":"), default=str))
        if error is None:
            observation.stack.close()
        else:
            observation.stack.__exit__(type(error), error, error.__traceback__)

    def _report(self, error: BaseException) -> None:
        if self._capture is not None:
            self._capture(error)

    # ------------------------------------------------------------------ requests
    def on_request_start(self, request: "Request") -> _Observation | None:
        settings = self.config.request
        return self._begin(
            settings.span_name,
            kind="server",
            result_key="http.result",
            metrics=_Metrics(None, settings.datadog_metric_error, settings.datadog_metric_timing),
            attributes={"http.method": request.method, "http.target": request.path},
            tags=(f"method:{request.method}",),
            log_fields={"method": request.method, "path": request.path},
        )

    def on_request_success(self, observation: _Observation | None, response: "Response") -> "Response":
        if observation is not None:
            self._finish(
                observation,
                result="success",
                counter=None,
                event="request.completed",
                extra_tags=(f"status:{response.status}",),
                attributes={"http.status_code": response.status},
                details={"status": response.status},
            )
        return response

    def on_request_error(
        self,
        observation: _Observation | None,
        error: BaseException,
        *,
        status_code: int | None = None,
    ) -> None:
        """Record a failed request and report ``error`` to Sentry."""

        self._report(error)
        if observation is None:
            return
        self._finish(
            observation,
            result="error",
            counter=observation.metrics.failure,
            event="request.failed",
            extra_tags=(f"status:{status_code}",) if status_code is not None else (),
            attributes={"http.status_code": status_code} if status_code is not None else None,
            details={"status": status_code, "error": type(error).__name__},
            error=error,
            description=str(error),
        )

    # ------------------------------------------------------------------ login attempts
    def on_login_attempt_start(self, auth_source_id: str, stage: str) -> _Observation | None:
        settings = self.config.login
        return self._begin(
            settings.span_name,
            kind="internal",
            result_key="login.result",
            metrics=_Metrics(
                settings.datadog_metric_success,
                settings.datadog_metric_failure,
                settings.datadog_metric_timing,
            ),
            attributes={"login.source": auth_source_id, "login.stage": stage},
            tags=(f"source:{auth_source_id}",),
            log_fields={"source": auth_source_id, "stage": stage},
        )

    def on_login_attempt_success(self, observation: _Observation | None) -> None:
        if observation is not None:
            self._finish(
                observation,
                result="success",
                counter=observation.metrics.success,
                event="login.succeeded",
            )

    def on_login_attempt_failure(self, observation: _Observation | None, code: str) -> None:
        # Wrong passwords are routine; they are counted but never sent to Sentry.
        if observation is not None:
            self._finish(
                observation,
                result="failure",
                counter=observation.metrics.failure,
                event="login.failed",
                extra_tags=(f"code:{code}",),
                attributes={"login.error_code": code},
                details={"code": code},
                description=code,
            )

    def on_login_attempt_error(self, observation: _Observation | None, error: BaseException) -> None:
        """Close the attempt after an unexpected error; the request layer reports it."""

        if observation is not None:
            self._finish(
                observation,
                result="error",
                counter=observation.metrics.failure,
                event="login.errored",
                extra_tags=(f"error:{type(error).__name__}",),
                details={"error": type(error).__name__},
                error=error,
                description=str(error),
            )


__all__ = [
    "LoginObservabilityConfig",
    "Observability",
    "ObservabilityConfig",
    "RequestObservabilityConfig",
]

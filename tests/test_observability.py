from __future__ import annotations

import json
import logging

import pytest

from portcullis import AppConfig, Observability, ObservabilityConfig, Request, Response
from portcullis.testing import TestClient
from tests.observability_stubs import (
    disable_optional_integrations,
    setup_stub_datadog,
    setup_stub_opentelemetry,
    setup_stub_sentry,
)
from tests.support import RETURN_URL, build_app, make_store, userpass_source


def _events(caplog: pytest.LogCaptureFixture) -> list[dict]:
    return [json.loads(record.getMessage()) for record in caplog.records if record.name == "portcullis.observability"]


def test_disabled_observability_is_inert(monkeypatch: pytest.MonkeyPatch) -> None:
    hub = setup_stub_sentry(monkeypatch)
    observability = Observability(ObservabilityConfig(enabled=False))

    context = observability.on_request_start(Request(method="GET", path="/"))
    observability.on_request_error(context, RuntimeError("boom"))

    assert context is None
    assert not observability.enabled
    assert hub.captured == []


def test_missing_integrations_still_log_events(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    disable_optional_integrations(monkeypatch)
    caplog.set_level(logging.INFO, logger="portcullis.observability")
    observability = Observability()

    context = observability.on_request_start(Request(method="GET", path="/login/userpass"))
    observability.on_request_success(context, Response(status=200))

    assert _events(caplog) == [
        {"method": "GET", "path": "/login/userpass", "status": 200, "event": "request.completed"}
    ]


def test_request_error_records_span_metrics_and_sentry(monkeypatch: pytest.MonkeyPatch) -> None:
    tracer = setup_stub_opentelemetry(monkeypatch)
    hub = setup_stub_sentry(monkeypatch)
    statsd = setup_stub_datadog(monkeypatch)
    observability = Observability(ObservabilityConfig(datadog_tags=(("env", "test"),)))
    error = RuntimeError("boom")

    context = observability.on_request_start(Request(method="POST", path="/login/userpass"))
    observability.on_request_error(context, error, status_code=500)

    span = tracer.spans[-1]
    assert span.name == "portcullis.request"
    assert span.kind == "server"
    assert span.attributes["http.status_code"] == 500
    assert span.exceptions == [error]
    assert span.status.status_code == "error"
    assert span.ended
    assert hub.captured == [error]
    metric, _, tags = statsd.increments[-1]
    assert metric == "portcullis.request.errors"
    assert "env:test" in tags and "status:500" in tags


def test_login_attempt_hooks(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture) -> None:
    tracer = setup_stub_opentelemetry(monkeypatch)
    hub = setup_stub_sentry(monkeypatch)
    statsd = setup_stub_datadog(monkeypatch)
    caplog.set_level(logging.INFO, logger="portcullis.observability")
    observability = Observability()

    failed = observability.on_login_attempt_start("src1", "core:UserPassBase.state")
    observability.on_login_attempt_failure(failed, "WRONGUSERPASS")
    succeeded = observability.on_login_attempt_start("src1", "core:UserPassBase.state")
    observability.on_login_attempt_success(succeeded)

    failure_span, success_span = tracer.named("portcullis.login")
    assert failure_span.kind == "internal"
    assert failure_span.attributes["login.error_code"] == "WRONGUSERPASS"
    assert failure_span.attributes["login.result"] == "failure"
    assert success_span.attributes["login.result"] == "success"
    assert hub.captured == []
    increments = [metric for metric, _, _ in statsd.increments]
    assert increments == ["portcullis.login.failures", "portcullis.login.success"]
    assert ("portcullis.login.failures", 1.0, ("source:src1", "code:WRONGUSERPASS")) in statsd.increments
    assert [event["event"] for event in _events(caplog)] == ["login.failed", "login.succeeded"]


@pytest.mark.asyncio
async def test_login_flow_reports_attempts(monkeypatch: pytest.MonkeyPatch) -> None:
    tracer = setup_stub_opentelemetry(monkeypatch)
    setup_stub_sentry(monkeypatch)
    statsd = setup_stub_datadog(monkeypatch)
    store = make_store()
    source = userpass_source(store)
    app = build_app(source, store=store)
    state_id = await source.authenticate(RETURN_URL)

    await TestClient(app).post(
        "/login/userpass", query={"AuthState": state_id}, form={"username": "alice", "password": "nope"}
    )

    assert [span.name for span in tracer.spans] == ["portcullis.request", "portcullis.login"]
    assert tracer.spans[0].attributes["http.status_code"] == 200
    assert any(metric == "portcullis.login.failures" for metric, _, _ in statsd.increments)
    assert isinstance(app.config, AppConfig)


@pytest.mark.asyncio
async def test_missing_source_is_reported_as_server_error(monkeypatch: pytest.MonkeyPatch) -> None:
    hub = setup_stub_sentry(monkeypatch)
    statsd = setup_stub_datadog(monkeypatch)
    store = make_store()
    state_id = await userpass_source(store).authenticate(RETURN_URL)
    app = build_app(store=store)

    response = await TestClient(app).get("/login/userpass", query={"AuthState": state_id})

    assert response.status == 500
    assert [error.status for error in hub.captured] == [500]
    assert statsd.increments[-1][0] == "portcullis.request.errors"


@pytest.mark.asyncio
async def test_unexpected_backend_error_closes_login_span(monkeypatch: pytest.MonkeyPatch) -> None:
    tracer = setup_stub_opentelemetry(monkeypatch)
    setup_stub_sentry(monkeypatch)
    statsd = setup_stub_datadog(monkeypatch)
    store = make_store()
    source = userpass_source(store)
    app = build_app(source, store=store)
    state_id = await source.authenticate("")

    response = await TestClient(app).post(
        "/login/userpass", query={"AuthState": state_id}, form={"username": "alice", "password": "correct-horse"}
    )

    (login_span,) = tracer.named("portcullis.login")
    assert response.status == 400
    assert all(span.ended for span in tracer.spans)
    assert login_span.attributes["login.result"] == "error"
    assert login_span.status.status_code == "error"
    assert login_span.exit_exception is not None
    assert ("portcullis.login.failures", 1.0, ("source:src1", "error:HTTPError")) in statsd.increments

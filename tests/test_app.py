from __future__ import annotations

import json
from dataclasses import replace

import pytest
from pytest_httpx import HTTPXMock

from services.flow_api.app import lambda_handler
from services.flow_api.config import VERSION
from tests.conftest import FLOW_BASE, FakeLambdaContext, SlowTransport, make_event, response_json


def test_options_preflight_returns_204(flow_config):
    resp = lambda_handler(make_event(method="OPTIONS"), None, config=flow_config)
    assert resp["statusCode"] == 204
    assert resp["body"] == ""
    assert "X-API-Key" in resp["headers"]["Access-Control-Allow-Headers"]


def test_health(flow_config):
    resp = lambda_handler(make_event(method="GET", path="/api/health"), None, config=flow_config)
    body = response_json(resp)
    assert resp["statusCode"] == 200
    assert body["ok"] is True
    assert body["version"] == VERSION
    assert body["service"] == "api"
    assert body["flow_base_set"] is True
    assert body["flow_key_set"] is False
    assert "debug" not in body


def test_health_debug_never_leaks_key(keyed_config):
    event = make_event(method="GET", path="/.netlify/functions/api/health", query={"debug": "1"})
    resp = lambda_handler(event, None, config=keyed_config)
    body = response_json(resp)
    assert body["debug"] == {"flowBase": FLOW_BASE, "hasKey": True}
    assert "secret-key" not in resp["body"]


def test_health_reads_env(monkeypatch):
    monkeypatch.setenv("FLOW_API_KEY", "k")
    body = response_json(lambda_handler(make_event(method="GET", path="/health"), None))
    assert body["flow_base_set"] is False
    assert body["flow_key_set"] is True


@pytest.mark.parametrize("method", ["GET", "PUT", "DELETE"])
def test_non_post_on_auth_route_is_405(method, flow_config):
    resp = lambda_handler(make_event(method=method, path="/api/auth/login"), None, config=flow_config)
    assert resp["statusCode"] == 405
    assert response_json(resp) == {"ok": False, "version": VERSION, "message": f"Method {method} not allowed"}


def test_unknown_route_is_404(flow_config):
    resp = lambda_handler(make_event(path="/api/auth/logout"), None, config=flow_config)
    body = response_json(resp)
    assert resp["statusCode"] == 404
    assert body["message"] == "Not Found"
    assert body["path"] == "/auth/logout"
    assert body["method"] == "POST"


@pytest.mark.parametrize(
    "path, route",
    [
        ("/api/auth/login", "/webhook/api/auth/login"),
        ("/.netlify/functions/api/auth/signup", "/webhook/api/auth/signup"),
        ("/auth/login/", "/webhook/api/auth/login"),
    ],
)
def test_auth_routes_forward_to_flow(path, route, httpx_mock: HTTPXMock, flow_config):
    httpx_mock.add_response(url=f"{FLOW_BASE}{route}", method="POST", status_code=201, json={"id": 7})

    event = make_event(path=path, body="email=a%40b.c&password=pw", content_type="application/x-www-form-urlencoded")
    resp = lambda_handler(event, FakeLambdaContext(), config=flow_config)

    assert resp["statusCode"] == 201
    assert response_json(resp) == {"id": 7}
    assert resp["headers"]["Access-Control-Allow-Origin"] == "*"

    envelope = json.loads(httpx_mock.get_request().content)
    assert envelope["parsedAs"] == "form-urlencoded"
    assert envelope["contentType"] == "application/x-www-form-urlencoded"
    assert envelope["payload"] == {"email": "a@b.c", "password": "pw"}


def test_malformed_body_is_never_a_client_error(httpx_mock: HTTPXMock, flow_config):
    httpx_mock.add_response(method="POST", json={"ok": True})

    resp = lambda_handler(make_event(body="{{{ broken"), None, config=flow_config)

    assert resp["statusCode"] == 200
    envelope = json.loads(httpx_mock.get_request().content)
    assert envelope["parsedAs"] == "raw"
    assert envelope["payload"] == {"rawBody": "{{{ broken"}
    assert envelope["parseError"]


def test_upstream_timeout_is_502(flow_config):
    config = replace(flow_config, timeout_ms=40)
    resp = lambda_handler(make_event(body="{}"), None, config=config, transport=SlowTransport(delay=5))

    body = response_json(resp)
    assert resp["statusCode"] == 502
    assert body["detail"] == "Upstream timeout after 40ms"
    assert body["message"] == "Gateway error calling flow"


def test_lambda_remaining_time_caps_budget(flow_config):
    resp = lambda_handler(
        make_event(body="{}"),
        FakeLambdaContext(remaining_ms=560),
        config=flow_config,
        transport=SlowTransport(delay=5),
    )
    assert response_json(resp)["detail"] == "Upstream timeout after 60ms"


def test_unexpected_error_is_500(monkeypatch, flow_config):
    def boom(event):
        raise RuntimeError("normalizer exploded")

    monkeypatch.setattr("services.flow_api.app.normalize_event", boom)

    resp = lambda_handler(make_event(body="{}"), None, config=flow_config)

    assert resp["statusCode"] == 500
    assert response_json(resp)["detail"] == "normalizer exploded"

from __future__ import annotations

import asyncio
import base64
import json

import httpx
import pytest

from services.flow_api import config as config_module
from services.flow_api.config import FlowConfig

FLOW_BASE = "https://flow.test"
WEBHOOK_URL = "https://flow.test/webhook/unit-hook"


class FakeLambdaContext:
    def __init__(self, remaining_ms: int = 30000) -> None:
        self.remaining_ms = remaining_ms

    def get_remaining_time_in_millis(self) -> int:
        return self.remaining_ms


class SlowTransport(httpx.AsyncBaseTransport):
    """Answers only after `delay` seconds; records cancellation and close."""

    def __init__(self, delay: float) -> None:
        self.delay = delay
        self.cancelled = False
        self.closed = False

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return httpx.Response(200, json={"late": True})

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("FLOW_BASE_URL", "FLOW_API_KEY", "FLOW_API_KEY_PARAM", "FLOW_TIMEOUT_MS", "N8N_WEBHOOK_URL"):
        monkeypatch.delenv(name, raising=False)
    config_module._param_cache.clear()
    monkeypatch.setattr(config_module, "_ssm", None)


@pytest.fixture
def flow_config() -> FlowConfig:
    return FlowConfig(
        base_url=FLOW_BASE,
        api_key="",
        timeout_ms=15000,
        webhook_url=WEBHOOK_URL,
        base_url_set=True,
        webhook_url_set=True,
    )


@pytest.fixture
def keyed_config(flow_config) -> FlowConfig:
    return FlowConfig(
        base_url=flow_config.base_url,
        api_key="secret-key",
        timeout_ms=flow_config.timeout_ms,
        webhook_url=flow_config.webhook_url,
        base_url_set=True,
        api_key_set=True,
        webhook_url_set=True,
    )


def make_event(
    method: str = "POST",
    path: str = "/api/auth/login",
    body: str = "",
    content_type: str | None = "application/json",
    base64_body: bool = False,
    query: dict | None = None,
) -> dict:
    headers = {}
    if content_type:
        headers["Content-Type"] = content_type
    if base64_body:
        body = base64.b64encode(body.encode("utf-8")).decode("ascii")
    return {
        "rawPath": path,
        "requestContext": {"http": {"method": method}},
        "headers": headers,
        "queryStringParameters": query,
        "body": body,
        "isBase64Encoded": base64_body,
    }


def response_json(resp: dict):
    return json.loads(resp["body"])

"""
Flow API (Lambda)

Endpoints (behind /api/* or /.netlify/functions/api/*):
  GET  /api/health         -> health + which env values are set (?debug=1 adds detail)
  POST /api/auth/login     -> forwarded to {FLOW_BASE_URL}/webhook/api/auth/login
  POST /api/auth/signup    -> forwarded to {FLOW_BASE_URL}/webhook/api/auth/signup
  OPTIONS *                -> CORS preflight (204)

Notes:
- Bodies are never rejected for their shape. JSON, double-encoded JSON,
  single-quoted JSON and form-urlencoded are decoded; anything else is sent
  upstream as {"rawBody": "..."} with parsedAs/parseError for debugging.
- Upstream failures come back as 502 with ok=false and a meta block that says
  which env values were set (never the values themselves).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from services.flow_api.config import VERSION, FlowConfig, configure_logging
from services.flow_api.core.forwarder import FlowForwarder, effective_timeout_ms
from services.flow_api.core.normalizer import normalize_event
from services.flow_api.core.request import get_header, get_method, get_path, get_query_param
from services.flow_api.core.response import json_response, preflight_response
from services.flow_api.features.auth.routes import match_auth_route

logger = logging.getLogger(__name__)


# ---------------- Handlers ----------------

def _handle_get_health(event: dict, config: FlowConfig) -> dict:
    body = {
        "ok": True,
        "version": VERSION,
        "service": "api",
        "time": datetime.now(timezone.utc).isoformat(),
        "flow_base_set": config.base_url_set,
        "flow_key_set": config.api_key_set,
    }
    if get_query_param(event, "debug") == "1":
        body["debug"] = {
            "flowBase": config.base_url,
            "hasKey": bool(config.api_key),
        }
    return json_response(200, body)


def _handle_post_proxy(
    event: dict,
    context: Any,
    config: FlowConfig,
    flow_route: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    outcome = normalize_event(event)
    forwarder = FlowForwarder(config, transport=transport)
    result = asyncio.run(
        forwarder.forward(
            outcome,
            config.upstream_url(flow_route),
            content_type=get_header(event, "content-type") or None,
            timeout_ms=effective_timeout_ms(config.timeout_ms, context),
        )
    )
    return result.to_response()


# ---------------- Lambda entry ----------------

def lambda_handler(
    event: dict,
    context: Any,
    config: Optional[FlowConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    configure_logging()
    method = get_method(event)
    path = get_path(event)

    # Log minimal routing info (shows in CloudWatch)
    logger.info("REQ method=%s path=%s rawPath=%s", method, path, event.get("rawPath") or event.get("path"))

    if method == "OPTIONS":
        return preflight_response()

    config = config or FlowConfig.from_env()

    try:
        if method == "GET" and path == "/health":
            return _handle_get_health(event, config)

        # Only POST past this point
        if method != "POST":
            return json_response(405, {"ok": False, "version": VERSION, "message": f"Method {method} not allowed"})

        flow_route = match_auth_route(path)
        if flow_route:
            return _handle_post_proxy(event, context, config, flow_route, transport)

        return json_response(404, {"ok": False, "version": VERSION, "message": "Not Found", "path": path, "method": method})
    except Exception as e:
        logger.exception("Unhandled error method=%s path=%s", method, path)
        return json_response(500, {"ok": False, "version": VERSION, "message": "Internal error", "detail": str(e)})


# Netlify / generic entry name
handler = lambda_handler

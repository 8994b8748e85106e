# services/flow_api/features/webhook/handler.py
"""
Single-endpoint webhook proxy: every POST goes to N8N_WEBHOOK_URL.

  GET      -> liveness (?debug=1 shows whether the env URL is set and the chosen URL)
  POST     -> normalized body forwarded as the envelope, upstream status relayed
  OPTIONS  -> CORS preflight
  other    -> 405

Every response carries X-Flow-Proxy-Version.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from services.flow_api.config import FlowConfig, configure_logging
from services.flow_api.core.forwarder import FlowForwarder, effective_timeout_ms
from services.flow_api.core.normalizer import normalize_event
from services.flow_api.core.request import get_header, get_method, get_query_param
from services.flow_api.core.response import json_response, preflight_response

logger = logging.getLogger(__name__)

WEBHOOK_VERSION = "v4-2026-01-29-FIX"
VERSION_HEADER = {"X-Flow-Proxy-Version": WEBHOOK_VERSION}


def _handle_get_info(event: dict, config: FlowConfig) -> dict:
    body = {
        "ok": True,
        "version": WEBHOOK_VERSION,
        "message": "flow-proxy is running. Send POST to forward to n8n.",
    }
    if get_query_param(event, "debug") == "1":
        body["debug"] = {
            "envPresent": config.webhook_url_set,
            "chosenUrl": config.webhook_url,
        }
    return json_response(200, body, VERSION_HEADER)


def _handle_post_forward(
    event: dict,
    context: Any,
    config: FlowConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    outcome = normalize_event(event)
    forwarder = FlowForwarder(config, transport=transport, version=WEBHOOK_VERSION)
    result = asyncio.run(
        forwarder.forward(
            outcome,
            config.webhook_url,
            content_type=get_header(event, "content-type") or None,
            timeout_ms=effective_timeout_ms(config.timeout_ms, context),
        )
    )
    return result.to_response(VERSION_HEADER)


def lambda_handler(
    event: dict,
    context: Any,
    config: Optional[FlowConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    configure_logging()
    method = get_method(event)
    logger.info("REQ flow-proxy method=%s", method)

    if method == "OPTIONS":
        return preflight_response(VERSION_HEADER)

    config = config or FlowConfig.from_env()

    try:
        if method == "GET":
            return _handle_get_info(event, config)

        if method != "POST":
            return json_response(
                405,
                {"ok": False, "version": WEBHOOK_VERSION, "error": f"Method {method} not allowed. Use POST."},
                VERSION_HEADER,
            )

        return _handle_post_forward(event, context, config, transport)
    except Exception as e:
        logger.exception("Unhandled error in flow-proxy method=%s", method)
        return json_response(
            500,
            {"ok": False, "version": WEBHOOK_VERSION, "error": "Internal error", "detail": str(e)},
            VERSION_HEADER,
        )


handler = lambda_handler

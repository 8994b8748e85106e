"""
Upstream forwarder.

Wraps a ParseOutcome in the envelope Flow expects, POSTs it once under a
deadline and turns whatever happens into a ForwardResult:

  upstream answered      -> upstream status, JSON body (or {ok,status,text})
  deadline exceeded      -> 502 "Upstream timeout after Nms"
  network / TLS / DNS    -> 502 with the error text

The whole call (connect, send, read body) runs inside asyncio.wait_for and
the AsyncClient is closed by its context manager on every path, so a
cancelled call never leaves a socket behind.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import httpx

from services.flow_api.config import VERSION, FlowConfig
from services.flow_api.core.normalizer import JsonValue, ParseOutcome, media_type, safe_json_parse
from services.flow_api.core.response import text_response

logger = logging.getLogger(__name__)

SOURCE_TAG = "lambda"
GATEWAY_ERROR_MESSAGE = "Gateway error calling flow"

# leave room to serialize the 502 before the platform kills the invocation
LAMBDA_SAFETY_MARGIN_MS = 500


@dataclass(frozen=True)
class ForwardEnvelope:
    source: str
    version: str
    received_at: str
    content_type: Optional[str]
    parsed_as: str
    payload: JsonValue
    parse_error: Optional[str] = None

    @classmethod
    def from_outcome(
        cls,
        outcome: ParseOutcome,
        content_type: Optional[str] = None,
        source: str = SOURCE_TAG,
        version: str = VERSION,
    ) -> "ForwardEnvelope":
        return cls(
            source=source,
            version=version,
            received_at=datetime.now(timezone.utc).isoformat(),
            content_type=media_type(content_type),
            parsed_as=outcome.parsed_as.value,
            payload=outcome.payload,
            parse_error=outcome.parse_error,
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "source": self.source,
            "version": self.version,
            "receivedAt": self.received_at,
            "contentType": self.content_type,
            "parsedAs": self.parsed_as,
        }
        if self.parse_error:
            out["parseError"] = self.parse_error
        out["payload"] = self.payload
        return out


@dataclass(frozen=True)
class ForwardResult:
    status_code: int
    body: str
    headers: Dict[str, str] = field(default_factory=lambda: {"Content-Type": "application/json"})

    def json(self) -> Any:
        return json.loads(self.body)

    def to_response(self, extra_headers: Optional[dict] = None) -> dict:
        headers = dict(self.headers)
        if extra_headers:
            headers.update(extra_headers)
        return text_response(self.status_code, self.body, headers)


def effective_timeout_ms(configured_ms: int, context: Any = None) -> int:
    """
    Shorter of the configured budget and what the Lambda invocation has left
    (minus a margin). Contexts without get_remaining_time_in_millis are ignored.
    """
    budget = int(configured_ms)
    remaining_fn = getattr(context, "get_remaining_time_in_millis", None)
    if callable(remaining_fn):
        remaining = int(remaining_fn()) - LAMBDA_SAFETY_MARGIN_MS
        budget = min(budget, remaining)
    return max(1, budget)


class FlowForwarder:
    """POSTs normalized payloads to Flow. One instance per invocation is fine."""

    def __init__(
        self,
        config: FlowConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        source: str = SOURCE_TAG,
        version: str = VERSION,
    ) -> None:
        self.config = config
        self._transport = transport
        self.source = source
        self.version = version

    def build_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["X-API-Key"] = self.config.api_key
        if extra:
            headers.update(extra)
        return headers

    async def forward(
        self,
        outcome: ParseOutcome,
        upstream_url: str,
        content_type: Optional[str] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout_ms: Optional[int] = None,
    ) -> ForwardResult:
        budget_ms = int(timeout_ms or self.config.timeout_ms)
        envelope = ForwardEnvelope.from_outcome(outcome, content_type, self.source, self.version)
        body = json.dumps(envelope.to_dict(), default=str, allow_nan=False)

        started = time.monotonic()
        try:
            status, text = await asyncio.wait_for(
                self._post(upstream_url, body, self.build_headers(headers), budget_ms),
                timeout=budget_ms / 1000.0,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            logger.warning("FLOW timeout url=%s budget_ms=%d", upstream_url, budget_ms)
            return self._gateway_error(f"Upstream timeout after {budget_ms}ms", upstream_url, outcome)
        except (httpx.HTTPError, httpx.InvalidURL, OSError) as e:
            logger.warning("FLOW transport error url=%s err=%r", upstream_url, e)
            return self._gateway_error(str(e) or repr(e), upstream_url, outcome)

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "FLOW POST url=%s parsedAs=%s status=%d elapsed_ms=%d",
            upstream_url,
            outcome.parsed_as.value,
            status,
            elapsed_ms,
        )
        return ForwardResult(status, json.dumps(_relay_body(status, text), allow_nan=False))

    async def _post(self, url: str, body: str, headers: Dict[str, str], budget_ms: int) -> Tuple[int, str]:
        # httpx's own timeout bounds each phase; wait_for bounds the total
        async with httpx.AsyncClient(transport=self._transport, timeout=budget_ms / 1000.0) as client:
            resp = await client.post(url, content=body.encode("utf-8"), headers=headers)
            return resp.status_code, resp.text

    def _gateway_error(self, detail: str, upstream_url: str, outcome: ParseOutcome) -> ForwardResult:
        meta: Dict[str, Any] = {"upstreamUrl": upstream_url, "parsedAs": outcome.parsed_as.value}
        if outcome.parse_error:
            meta["parseError"] = outcome.parse_error
        meta.update(self.config.diagnostics())

        return ForwardResult(
            502,
            json.dumps(
                {
                    "ok": False,
                    "version": self.version,
                    "message": GATEWAY_ERROR_MESSAGE,
                    "detail": detail,
                    "meta": meta,
                }
            ),
        )


def _relay_body(status: int, text: str) -> Any:
    parsed = safe_json_parse(text)
    if parsed.ok:
        return parsed.value
    return {"ok": 200 <= status < 300, "status": status, "text": text}

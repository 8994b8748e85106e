"""
Local dev server: runs the Lambda handlers behind a real HTTP port.

  uvicorn services.flow_api.devserver:app --port 8888

  /flow-proxy           -> webhook proxy handler
  everything else       -> API handler (/api/health, /api/auth/login, ...)
"""

from __future__ import annotations

import base64

from fastapi import FastAPI, Request
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from services.flow_api import app as api_app
from services.flow_api.features.webhook import handler as webhook_handler

WEBHOOK_PATH = "/flow-proxy"

app = FastAPI()


def build_event(method: str, path: str, headers: dict, query: dict, body: bytes) -> dict:
    """API Gateway HTTP API (v2) shaped event."""
    return {
        "version": "2.0",
        "rawPath": path,
        "requestContext": {"http": {"method": method.upper(), "path": path}},
        "headers": headers,
        "queryStringParameters": query or None,
        "body": base64.b64encode(body).decode("ascii") if body else "",
        "isBase64Encoded": bool(body),
    }


@app.api_route("/{full_path:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])
async def dispatch(full_path: str, request: Request) -> Response:
    body = await request.body()
    event = build_event(
        request.method,
        request.url.path,
        dict(request.headers),
        dict(request.query_params),
        body,
    )

    if request.url.path.rstrip("/") == WEBHOOK_PATH:
        target = webhook_handler.lambda_handler
    else:
        target = api_app.lambda_handler

    # handlers run their own event loop; keep them off ours
    result = await run_in_threadpool(target, event, None)
    return Response(
        content=result.get("body") or "",
        status_code=int(result["statusCode"]),
        headers=result.get("headers") or {},
    )

from __future__ import annotations

import json
from typing import Any

ALLOWED_HEADERS = "Content-Type, Authorization, X-API-Key"
ALLOWED_METHODS = "GET,POST,OPTIONS"


def cors_headers() -> dict:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
    }


def text_response(status_code: int, body: str, extra_headers: dict | None = None) -> dict:
    headers = cors_headers()
    if extra_headers:
        for k, v in extra_headers.items():
            headers[str(k)] = str(v)

    return {
        "statusCode": int(status_code),
        "headers": headers,
        "body": body,
    }


def json_response(status_code: int, body: Any, extra_headers: dict | None = None) -> dict:
    headers = {"Content-Type": "application/json"}
    if extra_headers:
        headers.update(extra_headers)
    return text_response(status_code, json.dumps(body, default=str), headers)


def preflight_response(extra_headers: dict | None = None) -> dict:
    return text_response(204, "", extra_headers)

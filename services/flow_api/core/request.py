# core/request.py
from __future__ import annotations

from typing import Any, Dict, Optional

NETLIFY_FUNCTION_PREFIX = "/.netlify/functions/api"


def get_method(event: dict) -> str:
    """Return HTTP method for both HTTP API v2 and REST API v1 shapes."""
    return (
        event.get("requestContext", {}).get("http", {}).get("method")
        or event.get("httpMethod")
        or "GET"
    ).upper()


def get_path(event: dict) -> str:
    """
    Return normalized path.

    Both '/api/*' (CloudFront / redirects) and '/.netlify/functions/api/*'
    are stripped, so '/api/auth/login' becomes '/auth/login'.
    """
    path = event.get("rawPath") or event.get("path") or "/"

    if path.startswith(NETLIFY_FUNCTION_PREFIX):
        path = path[len(NETLIFY_FUNCTION_PREFIX):]
    if path.startswith("/api/"):
        path = path[4:]  # remove "/api"
    if path == "/api":
        path = "/"

    if not path.startswith("/"):
        path = "/" + path
    return path


def get_header(event: dict, name: str) -> str:
    """Case-insensitive header lookup; missing header returns ''."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for k, v in headers.items():
        if str(k).lower() == wanted:
            return "" if v is None else str(v)
    return ""


def get_query_param(event: dict, name: str) -> Optional[str]:
    qs: Dict[str, Any] = event.get("queryStringParameters") or {}
    value = qs.get(name)
    return None if value is None else str(value)


def get_raw_body(event: dict) -> str:
    """Body text as delivered by the gateway (may still be base64)."""
    return event.get("body") or ""


def is_base64_encoded(event: dict) -> bool:
    return bool(event.get("isBase64Encoded"))

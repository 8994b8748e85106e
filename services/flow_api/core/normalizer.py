"""
Request body normalization.

Turns whatever a caller sent (JSON, double-encoded JSON, shell-quoted JSON,
form-urlencoded, or garbage) into a JSON-serializable payload that can always
be forwarded upstream. Nothing here raises: every stage returns a
ParseAttempt and the chain falls through to a raw wrapper.

Order:
  1) transport decode (base64 -> utf-8)
  2) sanitize (trim, BOM, one pair of outer single quotes)
  3) empty              -> {}
  4) JSON               -> value, or a second parse when the value is a string
  5) form-urlencoded    -> {key: value}
  6) raw                -> {"rawBody": <decoded text>}
"""

from __future__ import annotations

import base64
import binascii
import json
import math
import urllib.parse
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Union

from services.flow_api.core.request import get_header, get_raw_body, is_base64_encoded

JsonValue = Union[Dict[str, Any], List[Any], str, int, float, bool, None]

BOM = "\ufeff"


class ParsedAs(str, Enum):
    EMPTY = "empty"
    JSON = "json"
    JSON_DOUBLE = "json-double"
    FORM_URLENCODED = "form-urlencoded"
    RAW = "raw"


class ParseAttempt(NamedTuple):
    ok: bool
    value: Any = None
    error: Optional[str] = None


@dataclass(frozen=True)
class ParseOutcome:
    payload: JsonValue
    parsed_as: ParsedAs
    parse_error: Optional[str] = None


# ---------------- Stages ----------------

def decode_transport(body: Optional[str], is_base64: bool) -> str:
    if not body:
        return ""
    if not is_base64:
        return body
    try:
        return base64.b64decode(body, validate=True).decode("utf-8", errors="replace")
    except (binascii.Error, ValueError):
        # gateway flagged it base64 but it isn't; keep what we were given
        return body


def sanitize(raw: str) -> str:
    s = (raw or "").strip()

    if s.startswith(BOM):
        s = s[1:].strip()

    # Windows cmd / some shells deliver '{"a":1}' with the quotes intact
    if len(s) >= 2 and s.startswith("'") and s.endswith("'"):
        s = s[1:-1].strip()

    return s


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Unexpected token {name} in JSON")


def _finite_float(text: str) -> Optional[float]:
    # 1e999 overflows to inf, which has no JSON spelling; null is what JSON.stringify emits
    value = float(text)
    return value if math.isfinite(value) else None


def safe_json_parse(text: str) -> ParseAttempt:
    try:
        return ParseAttempt(True, json.loads(text, parse_float=_finite_float, parse_constant=_reject_constant))
    except (ValueError, RecursionError) as e:
        return ParseAttempt(False, error=f"{type(e).__name__}: {e}")


def parse_form_urlencoded(text: str) -> ParseAttempt:
    """
    Decode 'a=1&b=two+words&c=%40&flag'. The body needs at least one '=' (so
    plain text stays raw); a bare name like 'flag' maps to ''. Names must be
    non-empty and percent escapes must decode as UTF-8. Repeated keys keep the
    last value.
    """
    if "=" not in text:
        return ParseAttempt(False, error=f"no '=' in form body: {text[:40]!r}")

    out: Dict[str, str] = {}
    for field in text.split("&"):
        if not field:
            continue
        name, _, value = field.partition("=")
        try:
            key = urllib.parse.unquote_plus(name, errors="strict")
            out[key] = urllib.parse.unquote_plus(value, errors="strict")
        except UnicodeDecodeError as e:
            return ParseAttempt(False, error=f"UnicodeDecodeError: {e}")
        if not key:
            return ParseAttempt(False, error="form field with empty name")
    return ParseAttempt(True, out)


# ---------------- Public ----------------

def normalize(
    body: Optional[str],
    is_base64: bool = False,
    content_type: Optional[str] = None,
) -> ParseOutcome:
    """
    Classify and decode a request body. content_type is accepted for the
    caller's convenience only; classification is driven by the bytes.
    """
    raw0 = decode_transport(body, is_base64)
    raw = sanitize(raw0)

    if not raw:
        return ParseOutcome({}, ParsedAs.EMPTY)

    j1 = safe_json_parse(raw)
    if j1.ok:
        if isinstance(j1.value, str):
            j2 = safe_json_parse(j1.value)
            if j2.ok:
                return ParseOutcome(_or_empty(j2.value), ParsedAs.JSON_DOUBLE)
            return ParseOutcome({"rawBody": raw0}, ParsedAs.RAW, j2.error)
        return ParseOutcome(_or_empty(j1.value), ParsedAs.JSON)

    form = parse_form_urlencoded(raw)
    if form.ok and form.value:
        return ParseOutcome(form.value, ParsedAs.FORM_URLENCODED)

    return ParseOutcome({"rawBody": raw0}, ParsedAs.RAW, j1.error)


def normalize_event(event: dict) -> ParseOutcome:
    return normalize(
        get_raw_body(event),
        is_base64_encoded(event),
        get_header(event, "content-type") or None,
    )


def media_type(content_type: Optional[str]) -> Optional[str]:
    """'Application/JSON; charset=utf-8' -> 'application/json'."""
    ct = (content_type or "").split(";")[0].strip().lower()
    return ct or None


def _or_empty(value: Any) -> JsonValue:
    return {} if value is None else value

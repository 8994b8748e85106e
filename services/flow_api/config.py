"""
Runtime configuration for the Flow proxy handlers.

Read once per invocation at the handler boundary and passed down explicitly;
nothing below the handlers touches os.environ.

Env:
  FLOW_BASE_URL        upstream host (default https://flow.eraenterprise.id)
  FLOW_API_KEY         sent as X-API-Key when non-empty
  FLOW_API_KEY_PARAM   SSM parameter holding the key (used when FLOW_API_KEY is empty)
  FLOW_TIMEOUT_MS      upstream budget in ms (default 15000)
  N8N_WEBHOOK_URL      target of the single-endpoint webhook proxy
  LOG_LEVEL            root log level (default INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

VERSION = "api-v8-2026-01-30"

DEFAULT_FLOW_BASE_URL = "https://flow.eraenterprise.id"
DEFAULT_N8N_WEBHOOK_URL = "https://flow.eraenterprise.id/webhook/eramed-clara-appsmith"
DEFAULT_TIMEOUT_MS = 15000

# Warm caches / globals
_ssm = None
_param_cache: Dict[str, str] = {}


@dataclass(frozen=True)
class FlowConfig:
    base_url: str = DEFAULT_FLOW_BASE_URL
    api_key: str = ""
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    webhook_url: str = DEFAULT_N8N_WEBHOOK_URL

    # presence flags (diagnostics only, never the values)
    base_url_set: bool = False
    api_key_set: bool = False
    webhook_url_set: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "FlowConfig":
        env = os.environ if environ is None else environ

        base_env = (env.get("FLOW_BASE_URL") or "").strip()
        key_env = (env.get("FLOW_API_KEY") or "").strip()
        key_param = (env.get("FLOW_API_KEY_PARAM") or "").strip()
        webhook_env = (env.get("N8N_WEBHOOK_URL") or "").strip()

        api_key = key_env
        if not api_key and key_param:
            api_key = get_ssm_parameter(key_param)

        return cls(
            base_url=(base_env or DEFAULT_FLOW_BASE_URL).rstrip("/"),
            api_key=api_key,
            timeout_ms=_parse_timeout(env.get("FLOW_TIMEOUT_MS")),
            webhook_url=webhook_env or DEFAULT_N8N_WEBHOOK_URL,
            base_url_set=bool(base_env),
            api_key_set=bool(api_key),
            webhook_url_set=bool(webhook_env),
        )

    def upstream_url(self, route: str) -> str:
        return f"{self.base_url}{route}"

    def diagnostics(self) -> Dict[str, Any]:
        return {
            "flow_base_set": self.base_url_set,
            "flow_key_set": self.api_key_set,
            "webhook_url_set": self.webhook_url_set,
        }


def _parse_timeout(raw: Optional[str]) -> int:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return DEFAULT_TIMEOUT_MS
    return value if value > 0 else DEFAULT_TIMEOUT_MS


# ---------------- SSM ----------------

def _ssm_client():
    global _ssm
    if _ssm is None:
        _ssm = boto3.client("ssm")
    return _ssm


def get_ssm_parameter(name: str) -> str:
    """Decrypted SSM parameter value, cached per warm container. '' on failure."""
    if name in _param_cache:
        return _param_cache[name]

    try:
        resp = _ssm_client().get_parameter(Name=name, WithDecryption=True)
        value = (resp.get("Parameter", {}).get("Value") or "").strip()
    except (BotoCoreError, ClientError) as e:
        logger.warning("SSM lookup failed for %s: %s", name, e)
        return ""

    _param_cache[name] = value
    return value


def configure_logging(environ: Optional[Mapping[str, str]] = None) -> None:
    env = os.environ if environ is None else environ
    level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
    # Lambda pre-installs a handler on the root logger; only adjust the level there
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(format="%(levelname)s %(name)s %(message)s")
    root.setLevel(getattr(logging, level, logging.INFO))

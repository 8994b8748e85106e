# services/flow_api/features/auth/routes.py
from __future__ import annotations

from typing import Dict, Optional

# inbound (normalized) path -> Flow webhook route
AUTH_ROUTES: Dict[str, str] = {
    "/auth/login": "/webhook/api/auth/login",
    "/auth/signup": "/webhook/api/auth/signup",
}


def match_auth_route(path: str) -> Optional[str]:
    """
    path here is ALREADY normalized ("/api" stripped).
    So '/api/auth/login' arrives as '/auth/login'.
    """
    return AUTH_ROUTES.get(path.rstrip("/") or "/")

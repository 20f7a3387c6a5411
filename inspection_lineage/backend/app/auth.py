# backend/app/auth.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from .config import settings
from .domain.errors import NotAuthenticated


@dataclass(frozen=True)
class Principal:
    user_id: int
    email: Optional[str] = None


def _header_int(request: Request, name: str) -> Optional[int]:
    raw = (request.headers.get(name) or "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as e:
        raise NotAuthenticated(f"{name} must be a numeric user id") from e


def current_principal(request: Request) -> Optional[Principal]:
    """
    Identity modes:
      1) gateway: an upstream proxy has authenticated the caller and forwards the user id
      2) dev header spoofing (ONLY if settings.auth_mode == "dev")
    """
    mode = (settings.auth_mode or "").strip().lower()

    if mode == "gateway":
        uid = _header_int(request, settings.gateway_header_user_id)
        return Principal(user_id=uid) if uid is not None else None

    if mode == "dev":
        uid = _header_int(request, settings.dev_header_user_id)
        if uid is None:
            return None
        email = (request.headers.get(settings.dev_header_user_email) or "").strip().lower() or None
        return Principal(user_id=uid, email=email)

    return None


def get_principal(request: Request) -> Principal:
    p = current_principal(request)
    if p is None:
        raise NotAuthenticated()
    request.state.user_id = p.user_id
    return p


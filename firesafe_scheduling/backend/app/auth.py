# backend/app/auth.py
from __future__ import annotations

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from .config import settings


@dataclass(frozen=True)
class Principal:
    user_id: str
    role: str  # admin | inspector | owner


ROLES = ("admin", "inspector", "owner")


def _header_names() -> tuple[str, str]:
    mode = (settings.auth_mode or "dev").strip().lower()
    if mode == "gateway":
        return settings.gateway_header_user_id, settings.gateway_header_user_role
    return settings.dev_header_user_id, settings.dev_header_user_role


def get_principal(request: Request) -> Principal:
    """
    Session management is an external concern. Identity arrives as two headers:
      - dev: set by the caller directly (local/testing only)
      - gateway: set by the auth proxy in front of the service
    """
    id_header, role_header = _header_names()
    user_id = (request.headers.get(id_header) or "").strip()
    role = (request.headers.get(role_header) or "").strip().lower()

    if not user_id:
        raise HTTPException(status_code=401, detail=f"Missing {id_header}")
    if role not in ROLES:
        raise HTTPException(status_code=401, detail=f"Missing or unknown {role_header}")
    return Principal(user_id=user_id, role=role)


def require_admin(p: Principal = Depends(get_principal)) -> Principal:
    if p.role != "admin":
        raise HTTPException(status_code=403, detail="Requires role admin")
    return p


def require_inspector(p: Principal = Depends(get_principal)) -> Principal:
    if p.role not in ("inspector", "admin"):
        raise HTTPException(status_code=403, detail="Requires role inspector")
    return p

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from flowerpots.context import AppContext, get_ctx
from flowerpots.db import connect
from flowerpots.errors import Unauthenticated

from .gate import ensure_admin
from .security import verify_token


ACCOUNT_KINDS = ("anonymous", "email")


@dataclass(frozen=True)
class Principal:
    user_id: str
    account_kind: str  # anonymous|email
    email: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.account_kind == "anonymous"


def extract_bearer(authorization: str | None) -> Optional[str]:
    """Credential from an Authorization header value (`Bearer X` or bare `X`)."""
    raw = (authorization or "").strip()
    if not raw:
        return None
    if raw[:7].lower() == "bearer ":
        raw = raw[7:].strip()
    return raw or None


def resolve_principal(authorization: str | None, secret: str) -> Optional[Principal]:
    """Resolve a request's identity. Never raises: failures mean "no identity"."""
    token = extract_bearer(authorization)
    if not token:
        return None

    try:
        claims = verify_token(token, secret)
    except Exception:
        claims = None
    if not claims:
        return None

    user_id = claims.get("userId")
    kind = claims.get("type")
    if not isinstance(user_id, str) or not user_id or kind not in ACCOUNT_KINDS:
        return None

    email = claims.get("email")
    return Principal(user_id=user_id, account_kind=kind, email=email if isinstance(email, str) else None)


def get_principal(
    authorization: Optional[str] = Header(None),
    ctx: AppContext = Depends(get_ctx),
) -> Optional[Principal]:
    return resolve_principal(authorization, ctx.cfg.AUTH_JWT_SECRET)


def require_principal(principal: Optional[Principal] = Depends(get_principal)) -> Principal:
    if principal is None:
        raise Unauthenticated("Authentication required")
    return principal


def require_admin(
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Principal:
    with connect(ctx.cfg.DB_DSN) as conn:
        ensure_admin(conn, principal.user_id, ctx.cfg.admin_emails)
    return principal

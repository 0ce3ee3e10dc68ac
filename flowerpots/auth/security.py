from __future__ import annotations

import secrets
import string
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

import jwt
from jwt.utils import base64url_decode, base64url_encode
from passlib.context import CryptContext


# scrypt is memory-hard and stores its random salt inside the hash string.
# pbkdf2_sha256 stays verifiable for hashes created before the switch.
_pwd = CryptContext(schemes=["scrypt", "pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"
TOKEN_TTL = timedelta(hours=24)

_TOKEN_ALPHABET = string.ascii_letters + string.digits


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except Exception:
        # Unknown hash formats (e.g. legacy unsalted digests) never verify.
        return False


def password_needs_rehash(password_hash: str) -> bool:
    try:
        return _pwd.needs_update(password_hash)
    except Exception:
        return True


def generate_token(length: int = 32) -> str:
    """Opaque random token for email verification / password reset links."""
    n = max(1, int(length))
    return "".join(secrets.choice(_TOKEN_ALPHABET) for _ in range(n))


def sign_token(claims: Mapping[str, Any], secret: str) -> str:
    """Sign `claims` into a compact HS256 token that expires in 24 hours.

    Caller claims are carried verbatim. `exp` is always set here.
    """
    if not secret:
        raise ValueError("jwt_secret_blank")

    exp = datetime.now(timezone.utc) + TOKEN_TTL
    payload: Dict[str, Any] = dict(claims)
    payload["exp"] = int(exp.timestamp())
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def _canonical_signature(token: str) -> bool:
    # base64url decoders ignore the unused low bits of the last character, so
    # several spellings decode to the same MAC. Only the canonical one is accepted.
    sig = token.rsplit(".", 1)[-1]
    try:
        raw = base64url_decode(sig)
    except Exception:
        return False
    return base64url_encode(raw).decode("ascii") == sig


def verify_token(token: str, secret: str) -> Optional[Dict[str, Any]]:
    """Return the token's claims, or None when it is malformed, forged or expired."""
    if not token or not secret:
        return None
    if token.count(".") != 2:
        return None
    if not _canonical_signature(token):
        return None
    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            options={"require": ["exp"]},
        )
    except jwt.InvalidTokenError:
        return None
    if not isinstance(claims, dict):
        return None
    return claims

"""Authentication / authorization.

- Signed bearer tokens (`security`) carry `userId` and the account kind.
- `deps` resolves the `Authorization` header into a `Principal` (or none).
- `gate` holds ownership, admin and quota checks.
- `crud` manages accounts: anonymous identities, registration, upgrade, resets.

Tokens are accepted as `Authorization: Bearer <token>` or a bare `<token>`.
"""

from .deps import Principal, get_principal, require_admin, require_principal

__all__ = [
    "Principal",
    "get_principal",
    "require_admin",
    "require_principal",
]

import hashlib
import hmac


def client_fingerprint(address: str | None, key: str) -> str:
    """Keyed sha256 of a client address, so raw addresses are never stored."""
    normalized = (address or "unknown").strip().lower() or "unknown"
    return hmac.new(key.encode("utf-8"), normalized.encode("utf-8"), hashlib.sha256).hexdigest()

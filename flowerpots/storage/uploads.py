from __future__ import annotations

import secrets
import time
from typing import Any, Dict, Optional, Tuple

from flowerpots.auth.gate import owned_pot
from flowerpots.config import Config
from flowerpots.errors import Internal, ValidationError
from flowerpots.resources.images import unreferenced_images
from flowerpots.storage.blobs import BlobStore, is_default_image, public_url


ALLOWED_IMAGE_TYPES = {
    "image/jpeg": "jpeg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
}

# Returned when no blob store is configured. The bytes are not kept anywhere.
PLACEHOLDER_IMAGE_URL = "https://via.placeholder.com/400x300/4CAF50/FFFFFF?text=Uploaded+Image"


def _debug(msg: str) -> None:
    print(f"[uploads] {msg}")


def generate_file_name(content_type: str) -> str:
    ext = ALLOWED_IMAGE_TYPES.get(content_type, "bin")
    return f"image_{int(time.time() * 1000)}_{secrets.token_hex(6)}.{ext}"


def storage_path(upload_type: str, user_id: str, pot_id: str | None, file_name: str) -> str:
    """Object key for an upload.

    pots/{user}/{file}, timeline/{user}/{pot}/{file}, care/{user}/{pot}/{file},
    anything else general/{user}/{file}.
    """
    if upload_type == "pot":
        return f"pots/{user_id}/{file_name}"
    if upload_type == "timeline":
        if not pot_id:
            raise ValidationError("potId is required for timeline images")
        return f"timeline/{user_id}/{pot_id}/{file_name}"
    if upload_type == "care":
        if not pot_id:
            raise ValidationError("potId is required for care record images")
        return f"care/{user_id}/{pot_id}/{file_name}"
    return f"general/{user_id}/{file_name}"


def store_image(
    conn: Any,
    cfg: Config,
    blobs: Optional[BlobStore],
    user_id: str,
    *,
    data: bytes,
    content_type: str,
    original_name: str | None,
    upload_type: str | None,
    pot_id: str | None,
) -> Tuple[Dict[str, Any], Optional[str]]:
    """Validate and store one image.

    Returns (upload_info, replaced_image_url). For `uploadType=pot` with a pot the
    caller owns, the pot's image is switched to the new one and the old non-default
    image is returned for cleanup.
    """
    if not data:
        raise ValidationError("No image file provided")
    ctype = (content_type or "").split(";")[0].strip().lower()
    if ctype not in ALLOWED_IMAGE_TYPES:
        raise ValidationError("Invalid image type. Allowed types: JPEG, PNG, GIF, WebP")
    max_mb = cfg.UPLOAD_MAX_BYTES / (1024 * 1024)
    if len(data) > int(cfg.UPLOAD_MAX_BYTES):
        raise ValidationError(f"Image file too large. Maximum size is {max_mb:g}MB")

    kind = (upload_type or "pot").strip().lower() or "pot"
    pid = (pot_id or "").strip() or None

    # Images attached to a pot's journal must go under a pot the caller owns.
    if kind in ("timeline", "care"):
        if pid is None:
            raise ValidationError(f"potId is required for {kind} images")
        owned_pot(conn, pid, user_id)

    file_name = generate_file_name(ctype)
    key = storage_path(kind, user_id, pid, file_name)

    if blobs is None:
        url = PLACEHOLDER_IMAGE_URL
        _debug(f"no blob store, not persisting key={key} size={len(data)}")
    else:
        try:
            blobs.put(key, data, ctype)
        except Exception as e:
            _debug(f"op=upload key={key} status=failed error={e!r}")
            raise Internal("Failed to store image")
        url = public_url(cfg.BLOB_PUBLIC_BASE_URL, key)

    replaced: Optional[str] = None
    if kind == "pot" and pid is not None:
        pot = conn.execute(
            "SELECT id, image_url FROM pots WHERE id=? AND user_id=?",
            (pid, str(user_id)),
        ).fetchone()
        if pot is None:
            _debug(f"pot image not attached: pot_id={pid} not owned by user_id={user_id}")
        else:
            conn.execute("UPDATE pots SET image_url=? WHERE id=? AND user_id=?", (url, pid, str(user_id)))
            old = pot["image_url"]
            if old and old != url and not is_default_image(old) and unreferenced_images(conn, pid, [old]):
                replaced = old

    info = {
        "url": url,
        "imageUrl": url,
        "fileName": file_name,
        "originalName": original_name,
        "size": len(data),
        "type": ctype,
        "uploadType": kind,
        "potId": pid,
    }
    return info, replaced

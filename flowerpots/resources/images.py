"""Image references stored on rows, and their deferred blob cleanup.

Care records and timelines store image URLs as a JSON array in a TEXT column. The
images of one care action are shared by all of its sibling rows and by the timeline
entry synthesized from it, so removal from one row only frees a blob once no other
row of the same pot still references it.
"""

from __future__ import annotations

import json
from typing import Any, Iterable, List, Optional, Set

from fastapi import BackgroundTasks

from flowerpots.storage.blobs import BlobStore, delete_blobs, is_default_image, key_owner, object_key_from_url


def _debug(msg: str) -> None:
    print(f"[images] {msg}")


def parse_image_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value if v]
    s = str(value).strip()
    if not s:
        return []
    try:
        decoded = json.loads(s)
    except ValueError:
        # Older rows hold a single bare URL.
        return [s]
    if isinstance(decoded, list):
        return [str(v) for v in decoded if v]
    if isinstance(decoded, str) and decoded:
        return [decoded]
    return []


def dump_image_list(urls: Optional[Iterable[str]]) -> Optional[str]:
    items = [u for u in (urls or []) if u]
    if not items:
        return None
    return json.dumps(items)


def referenced_images(conn: Any, pot_id: str) -> Set[str]:
    """Every image URL still referenced by the pot itself, its care records and timelines."""
    refs: Set[str] = set()
    pot = conn.execute("SELECT image_url FROM pots WHERE id=?", (pot_id,)).fetchone()
    if pot is not None and pot["image_url"]:
        refs.add(pot["image_url"])
    for r in conn.execute("SELECT image_url FROM care_records WHERE pot_id=?", (pot_id,)).fetchall():
        refs.update(parse_image_list(r["image_url"]))
    for r in conn.execute("SELECT images FROM timelines WHERE pot_id=?", (pot_id,)).fetchall():
        refs.update(parse_image_list(r["images"]))
    return refs


def unreferenced_images(conn: Any, pot_id: str, candidates: Iterable[str]) -> List[str]:
    """Subset of `candidates` no longer used by any row of the pot."""
    refs = referenced_images(conn, pot_id)
    return [u for u in dict.fromkeys(candidates) if u and u not in refs]


def blob_keys(urls: Iterable[str], *, owner_id: str) -> List[str]:
    """Object keys behind `urls` that were uploaded by `owner_id`.

    Rows hold client-supplied URLs, so a URL pointing at another user's upload (or
    outside the upload layout) never yields a deletable key.
    """
    keys: List[str] = []
    for u in urls:
        if not u or is_default_image(u):
            continue
        k = object_key_from_url(u)
        if not k:
            continue
        if key_owner(k) != str(owner_id):
            _debug(f"not deleting foreign key={k} owner_id={owner_id}")
            continue
        keys.append(k)
    return list(dict.fromkeys(keys))


def schedule_blob_cleanup(
    tasks: Optional[BackgroundTasks],
    blobs: Optional[BlobStore],
    urls: Iterable[str],
    *,
    owner_id: str,
    op: str,
) -> List[str]:
    """Queue deletion of the blobs behind `urls` to run after the response is sent.

    Default images and keys not uploaded by `owner_id` are never deleted. Without a
    task handle the deletion runs inline. Returns the object keys scheduled.
    """
    keys = blob_keys(urls, owner_id=owner_id)
    if not keys:
        return keys
    if tasks is None:
        delete_blobs(blobs, keys, op=op)
    else:
        tasks.add_task(delete_blobs, blobs, keys, op=op)
    return keys

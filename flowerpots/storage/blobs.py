"""Blob (object) storage for uploaded images.

Backends:
- `S3BlobStore`: any S3-compatible endpoint (AWS S3, Cloudflare R2, MinIO) via boto3.
- `LocalBlobStore`: a directory on disk, handy for development.

The rest of the app only needs `put`, `get` and `delete`, and tolerates running with
no store at all (`build_blob_store` returns None): uploads are then not persisted and
cleanup becomes a no-op.

Images are referenced from rows by public URL. The object key is the URL path
(`pots/{user}/{file}`, `timeline/{user}/{pot}/{file}`, ...).
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Optional, Protocol, Tuple
from urllib.parse import urlparse

from flowerpots.config import Config


# Shared placeholder images. Never deleted, even when "removed" from a resource.
DEFAULT_IMAGES = ("icons-default-pot.png",)


def _debug(msg: str) -> None:
    print(f"[blobs] {msg}")


class BlobStore(Protocol):
    def put(self, key: str, data: bytes, content_type: str) -> None: ...

    def get(self, key: str) -> Optional[bytes]: ...

    def delete(self, key: str) -> None: ...


class S3BlobStore:
    def __init__(
        self,
        *,
        bucket: str,
        endpoint_url: str | None = None,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ):
        try:
            import boto3  # type: ignore
        except Exception as e:
            raise RuntimeError(
                "S3 blob storage selected but boto3 is not installed. Install boto3 and try again."
            ) from e

        session = boto3.session.Session()
        self._client = session.client(
            service_name="s3",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            endpoint_url=endpoint_url,
        )
        self.bucket = bucket

    def put(self, key: str, data: bytes, content_type: str) -> None:
        self._client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)

    def get(self, key: str) -> Optional[bytes]:
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=key)
        except self._client.exceptions.NoSuchKey:
            return None
        return obj["Body"].read()

    def delete(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=key)


class LocalBlobStore:
    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        p = (self.root / key).resolve()
        if self.root not in p.parents:
            raise ValueError(f"invalid_object_key: {key}")
        return p

    def put(self, key: str, data: bytes, content_type: str) -> None:
        p = self._path(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_bytes(data)

    def get(self, key: str) -> Optional[bytes]:
        p = self._path(key)
        if not p.is_file():
            return None
        return p.read_bytes()

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


def build_blob_store(cfg: Config) -> Optional[BlobStore]:
    backend = (cfg.BLOB_BACKEND or "").strip().lower()
    if backend in ("s3", "r2"):
        return S3BlobStore(
            bucket=cfg.BLOB_BUCKET,
            endpoint_url=cfg.BLOB_ENDPOINT_URL,
            access_key_id=cfg.BLOB_ACCESS_KEY_ID,
            secret_access_key=cfg.BLOB_SECRET_ACCESS_KEY,
        )
    if backend == "local":
        return LocalBlobStore(cfg.BLOB_LOCAL_DIR)
    if backend:
        raise RuntimeError(f"unknown_blob_backend: {backend}")
    return None


def is_default_image(url: str | None) -> bool:
    if not url:
        return False
    return any(name in url for name in DEFAULT_IMAGES)


def object_key_from_url(url: str | None) -> Optional[str]:
    """Object key for an image URL (the URL path without its leading slash).

    Values that are not absolute URLs are treated as keys already.
    """
    s = (url or "").strip()
    if not s:
        return None
    parsed = urlparse(s)
    if parsed.scheme and parsed.netloc:
        key = parsed.path.lstrip("/")
        return key or None
    return s.lstrip("/") or None


# First key segment of every upload. The second segment is the uploader's user id.
UPLOAD_PREFIXES = ("pots", "timeline", "care", "general")


def key_owner(key: str | None) -> Optional[str]:
    """User id an upload key was issued to, or None for keys outside the upload layout."""
    parts = (key or "").split("/")
    if len(parts) < 3 or parts[0] not in UPLOAD_PREFIXES:
        return None
    if any(p in ("", ".", "..") for p in parts):
        return None
    return parts[1]


def public_url(base_url: str, key: str) -> str:
    return f"{base_url.rstrip('/')}/{key}"


def delete_blobs(blobs: Optional[BlobStore], keys: Iterable[str], *, op: str) -> Tuple[int, int]:
    """Best-effort delete. Returns (deleted, failed); never raises.

    Default images are skipped. Failures are logged and counted.
    """
    targets = [k for k in dict.fromkeys(keys) if k and not is_default_image(k)]
    if blobs is None or not targets:
        if targets:
            _debug(f"op={op} skipped={len(targets)} reason=no_blob_store")
        return 0, 0

    deleted = 0
    failed = 0
    for key in targets:
        try:
            blobs.delete(key)
            deleted += 1
        except Exception as e:
            failed += 1
            _debug(f"op={op} key={key} status=failed error={e!r}")
    _debug(f"op={op} deleted={deleted} failed={failed}")
    return deleted, failed

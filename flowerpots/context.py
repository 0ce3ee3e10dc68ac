"""Explicit application context.

One `AppContext` is built per app instance and handed to every handler through the
`get_ctx` dependency. Nothing here is module-level state, so tests can build an app
around a temporary database, an in-memory blob store and a recording mailer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from flowerpots.config import Config
from flowerpots.mail import Mailer
from flowerpots.storage.blobs import BlobStore


@dataclass(frozen=True)
class AppContext:
    cfg: Config
    blobs: Optional[BlobStore]
    mailer: Mailer


def get_ctx(request: Request) -> AppContext:
    ctx = getattr(request.app.state, "ctx", None)
    if ctx is None:
        raise RuntimeError("app_context_missing")
    return ctx

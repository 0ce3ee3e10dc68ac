from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, UploadFile

from flowerpots.auth.deps import Principal, require_principal
from flowerpots.context import AppContext, get_ctx
from flowerpots.db import connect
from flowerpots.errors import ValidationError
from flowerpots.resources.images import schedule_blob_cleanup
from flowerpots.storage.uploads import store_image

from .common import ok


router = APIRouter(prefix="/upload", tags=["uploads"])


@router.post("/image")
def upload_image(
    background: BackgroundTasks,
    image: Optional[UploadFile] = File(None),
    upload_type: Optional[str] = Form(None, alias="uploadType"),
    pot_id: Optional[str] = Form(None, alias="potId"),
    principal: Principal = Depends(require_principal),
    ctx: AppContext = Depends(get_ctx),
) -> Dict[str, Any]:
    if image is None:
        raise ValidationError("No image file provided")

    # Read one byte past the limit so oversized files are rejected without buffering them whole.
    data = image.file.read(int(ctx.cfg.UPLOAD_MAX_BYTES) + 1)

    with connect(ctx.cfg.DB_DSN) as conn:
        info, replaced = store_image(
            conn,
            ctx.cfg,
            ctx.blobs,
            principal.user_id,
            data=data,
            content_type=image.content_type or "",
            original_name=image.filename,
            upload_type=upload_type,
            pot_id=pot_id,
        )
    if replaced:
        schedule_blob_cleanup(background, ctx.blobs, [replaced], owner_id=principal.user_id, op="replace_pot_image")
    return ok(info)

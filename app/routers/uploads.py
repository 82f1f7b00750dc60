"""Image uploads for listings and yard-sale items."""

from __future__ import annotations

import logging
import os
from typing import Annotated
from uuid import uuid4

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel

from ..core.container import ServiceContainer, get_services
from ..security.auth import Actor, require_role
from ..security.validation import InputValidationError, validate_image_upload

router = APIRouter(prefix="/api/uploads", tags=["uploads"])

logger = logging.getLogger(__name__)

SingleUpload = Annotated[UploadFile, File(...)]


class UploadResponse(BaseModel):
    url: str
    size: int
    content_type: str


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_image(
    file: SingleUpload,
    services: Annotated[ServiceContainer, Depends(get_services)],
    actor: Annotated[Actor, Depends(require_role("operator"))],
) -> UploadResponse:
    """Store a JPEG, PNG or WebP image under ``UPLOAD_DIR``.

    The response carries the relative URL to reference from a listing's
    ``images``.
    """

    settings = services.settings
    contents = await file.read()
    try:
        extension = validate_image_upload(file.content_type, len(contents))
    except InputValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if len(contents) > settings.upload_max_size:
        raise HTTPException(status_code=400, detail="File too large")

    os.makedirs(settings.upload_dir, exist_ok=True)
    filename = f"{uuid4().hex}{extension}"
    with open(os.path.join(settings.upload_dir, filename), "wb") as f:
        f.write(contents)
    logger.info("Stored upload %s (%d bytes) for %s", filename, len(contents), actor.user_id)
    return UploadResponse(
        url=f"/uploads/{filename}", size=len(contents), content_type=file.content_type or ""
    )

from __future__ import annotations

import asyncio
import base64
import binascii
import re
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from evaltrack.api.dependencies import Services, get_services
from evaltrack.utils.logging_config import LogFiles, Logger

router = APIRouter()

_SAFE_RUN_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
_ALLOWED_FORMATS = {"png", "jpg", "jpeg", "webp", "gif"}


class ArtifactRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    run_id: Optional[str] = Field(default=None, alias="runId")
    prompt_number: Optional[int] = Field(default=None, alias="promptNumber")
    image_data: Optional[str] = Field(default=None, alias="imageData")
    format: str = "png"


def _decode_image(image_data: str) -> bytes:
    # strip a data-URL prefix such as "data:image/png;base64,"
    payload = image_data.split(",", 1)[1] if "," in image_data else image_data
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail="imageData must be base64") from exc


def _write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


@router.post("/artifact")
async def save_artifact(req: ArtifactRequest, services: Services = Depends(get_services)):
    if not req.run_id or req.prompt_number is None or not req.image_data:
        raise HTTPException(
            status_code=400, detail="runId, promptNumber, and imageData are required"
        )
    if not _SAFE_RUN_ID.match(req.run_id) or ".." in req.run_id:
        raise HTTPException(status_code=400, detail="runId contains unsupported characters")
    if req.prompt_number < 0:
        raise HTTPException(status_code=400, detail="promptNumber must be a non-negative integer")
    ext = (req.format or "png").strip().lower()
    if ext not in _ALLOWED_FORMATS:
        raise HTTPException(
            status_code=400, detail=f"format must be one of: {', '.join(sorted(_ALLOWED_FORMATS))}"
        )

    data = _decode_image(req.image_data)
    filename = f"v{req.prompt_number}.{ext}"
    target = Path(services.settings.artifacts_dir) / req.run_id / filename
    await asyncio.to_thread(_write_bytes, target, data)

    relative = f"artifacts/{req.run_id}/{filename}"
    Logger.info(f"artifact saved {relative} ({len(data)} bytes)", file=LogFiles.API)
    return {"success": True, "path": relative}

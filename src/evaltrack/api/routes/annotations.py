from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from evaltrack.api.dependencies import Services, get_services
from evaltrack.domain.annotation import AnnotationInput

router = APIRouter()


@router.get("/annotations")
async def list_annotations(
    run_id: Optional[str] = Query(default=None, alias="runId"),
    prompt_number: Optional[int] = Query(default=None, alias="promptNumber"),
    planned_fix_id: Optional[str] = Query(default=None, alias="plannedFixId"),
    services: Services = Depends(get_services),
):
    items = await services.annotations.list_annotations(
        run_id=run_id, prompt_number=prompt_number, planned_fix_id=planned_fix_id
    )
    return {"annotations": [a.to_dict() for a in items]}


@router.post("/annotations")
async def save_annotation(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    draft = AnnotationInput.from_dict(payload)
    saved = await services.annotations.save_annotation(draft)
    if saved is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return {"annotation": saved.to_dict()}


@router.delete("/annotations")
async def delete_annotations(
    id: Optional[str] = Query(default=None),
    run_id: Optional[str] = Query(default=None, alias="runId"),
    prompt_number: Optional[int] = Query(default=None, alias="promptNumber"),
    services: Services = Depends(get_services),
):
    if id:
        if not await services.annotations.delete_annotation(id):
            raise HTTPException(status_code=404, detail="Annotation not found")
        return {"success": True, "deleted": 1}

    if not run_id or prompt_number is None:
        raise HTTPException(
            status_code=400, detail="Missing required params: id, or runId and promptNumber"
        )
    deleted = await services.annotations.delete_for_prompt(run_id, prompt_number)
    if not deleted:
        raise HTTPException(status_code=404, detail="Annotation not found")
    return {"success": True, "deleted": deleted}

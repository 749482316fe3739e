from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from evaltrack.api.dependencies import Services, get_services
from evaltrack.domain.planned_fix import PlannedFixInput

router = APIRouter()


@router.get("/planned-fixes")
async def list_planned_fixes(
    id: Optional[str] = Query(default=None),
    with_counts: bool = Query(default=False, alias="withCounts"),
    services: Services = Depends(get_services),
):
    if id:
        fix = await services.fixes.get_fix(id)
        if fix is None:
            raise HTTPException(status_code=404, detail="Planned fix not found")
        return {"plannedFix": fix.to_dict()}

    if with_counts:
        rows = await services.fixes.list_with_counts()
        return {"plannedFixes": [r.to_dict() for r in rows]}

    fixes = await services.fixes.list_fixes()
    return {"plannedFixes": [f.to_dict() for f in fixes]}


@router.get("/planned-fixes/{fix_id}/detail")
async def planned_fix_detail(fix_id: str, services: Services = Depends(get_services)):
    detail = await services.aggregator.fix_detail(fix_id)
    if detail is None:
        raise HTTPException(status_code=404, detail="Planned fix not found")
    return detail.to_dict()


@router.post("/planned-fixes")
async def save_planned_fix(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    draft = PlannedFixInput.from_dict(payload)
    fix = await services.fixes.save_fix(draft)
    return {"plannedFix": fix.to_dict()}


@router.delete("/planned-fixes")
async def delete_planned_fix(
    id: Optional[str] = Query(default=None),
    services: Services = Depends(get_services),
):
    if not id:
        raise HTTPException(status_code=400, detail="Missing required param: id")
    if not await services.fixes.delete_fix(id):
        raise HTTPException(status_code=404, detail="Planned fix not found")
    return {"success": True}

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query

from evaltrack.api.dependencies import Services, get_services
from evaltrack.domain.catalog import all_test_types, category_for_test_type
from evaltrack.domain.run import Run

router = APIRouter()


@router.get("/runs")
async def list_runs(
    format: Optional[str] = Query(default=None),
    test_type: Optional[str] = Query(default=None, alias="testType"),
    services: Services = Depends(get_services),
):
    if test_type:
        runs = await services.runs.list_by_test_type(test_type, fmt=format)
    elif format:
        runs = await services.runs.list_by_format(format)
    else:
        runs = await services.runs.list_runs()
    return {"runs": [r.to_dict() for r in runs]}


@router.get("/runs/pending")
async def pending_runs(services: Services = Depends(get_services)):
    groups = await services.lifecycle.pending()
    return {key: [r.to_dict() for r in runs] for key, runs in groups.items()}


@router.get("/runs/formats")
async def formats_summary(
    test_type: Optional[str] = Query(default=None, alias="testType"),
    services: Services = Depends(get_services),
):
    summary = await services.runs.formats_summary(test_type=test_type)
    return {"formats": {fmt: entry.to_dict() for fmt, entry in summary.items()}}


@router.get("/runs/{run_id}")
async def get_run(run_id: str, services: Services = Depends(get_services)):
    run = await services.runs.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Run not found")
    return {"run": run.to_dict()}


@router.post("/runs")
async def save_run(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    run = Run.from_dict(payload)
    saved = await services.runs.save_run(run)
    return {"success": True, "run": saved.to_dict()}


@router.delete("/runs")
async def delete_run(
    id: Optional[str] = Query(default=None),
    services: Services = Depends(get_services),
):
    if not id:
        raise HTTPException(status_code=400, detail="id is required")
    deleted = await services.runs.delete_run(id)
    if not deleted:
        raise HTTPException(status_code=404, detail="Run not found")
    return {"success": True}


@router.get("/test-types")
async def list_test_types():
    return {
        "testTypes": [
            {
                "id": t.id,
                "name": t.name,
                "shortName": t.short_name,
                "description": t.description,
                "promptStructure": t.prompt_structure,
                "category": category_for_test_type(t.id),
            }
            for t in all_test_types()
        ]
    }

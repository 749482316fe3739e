from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from evaltrack.api.dependencies import Services, get_services
from evaltrack.api.errors import transition_or_404
from evaltrack.application.services.run_lifecycle import ScoreInput

router = APIRouter()


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class CaptureStartRequest(_CamelModel):
    format: Optional[str] = None
    test_type: Optional[str] = Field(default=None, alias="testType")


class CapturePromptRequest(_CamelModel):
    run_id: Optional[str] = Field(default=None, alias="runId")
    number: Optional[int] = None
    title: Optional[str] = None
    text: Optional[str] = None
    artifact: Optional[str] = None
    observation: Optional[str] = None


class CaptureCompleteRequest(_CamelModel):
    run_id: Optional[str] = Field(default=None, alias="runId")


class PromptStatusRequest(_CamelModel):
    run_id: Optional[str] = Field(default=None, alias="runId")
    prompt_number: Optional[int] = Field(default=None, alias="promptNumber")
    status: Optional[str] = None


@router.post("/capture/start")
async def start_capture(req: CaptureStartRequest, services: Services = Depends(get_services)):
    if not (req.format or "").strip():
        raise HTTPException(status_code=400, detail="Format is required")
    run = await services.lifecycle.start_capture(req.format, req.test_type)
    return run.to_dict()


@router.post("/capture/prompt")
async def save_capture_prompt(
    req: CapturePromptRequest, services: Services = Depends(get_services)
):
    if not req.run_id or req.number is None or not req.title or not req.text:
        raise HTTPException(status_code=400, detail="runId, number, title, and text are required")
    result = await services.lifecycle.save_capture_prompt(
        req.run_id,
        req.number,
        req.title,
        req.text,
        artifact=req.artifact,
        observation=req.observation,
    )
    return transition_or_404(result, invalid_state="Run is not in capture state")


@router.post("/capture/complete")
async def complete_capture(
    req: CaptureCompleteRequest, services: Services = Depends(get_services)
):
    if not req.run_id:
        raise HTTPException(status_code=400, detail="runId is required")
    result = await services.lifecycle.complete_capture(req.run_id)
    return transition_or_404(result, invalid_state="Run is not capturing")


@router.post("/score")
async def score_run(
    payload: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    score_input = ScoreInput.from_dict(payload)
    result = await services.lifecycle.score(score_input)
    return transition_or_404(result, invalid_state="Run is not ready for scoring")


@router.patch("/prompt-status")
async def update_prompt_status(
    req: PromptStatusRequest, services: Services = Depends(get_services)
):
    if not req.run_id or req.prompt_number is None or not req.status:
        raise HTTPException(
            status_code=400, detail="runId, promptNumber, and status are required"
        )
    result = await services.lifecycle.update_prompt_status(
        req.run_id, req.prompt_number, req.status
    )
    transition_or_404(
        result, invalid_state="Run is not scored", not_found="Run or prompt not found"
    )
    return {"success": True, "status": req.status.strip().lower()}

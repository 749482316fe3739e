from __future__ import annotations

from fastapi import APIRouter, Depends

from evaltrack.api.dependencies import Services, get_services

router = APIRouter()


@router.get("/issues")
async def list_issues(services: Services = Depends(get_services)):
    return await services.aggregator.issues_report()


@router.get("/issues/themes")
async def issue_themes(services: Services = Depends(get_services)):
    return await services.aggregator.themes_report()

from dataclasses import asdict

from fastapi import APIRouter, Request

from app.catalog import default_catalog
from app.core.rate_limit import rate_limit

router = APIRouter()


@router.get("/templates", summary="Portfolio templates", description="List the templates AI recommendations can pick from.")
@rate_limit()
async def list_templates(request: Request):
    return {"templates": [asdict(template) for template in default_catalog.templates]}


@router.get("/themes", summary="Portfolio themes", description="List the themes AI recommendations can pick from.")
@rate_limit()
async def list_themes(request: Request):
    return {"themes": [asdict(theme) for theme in default_catalog.themes]}

"""Status page and status report endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from servstat.api import render
from servstat.registry.registry import ServiceRegistry

logger = logging.getLogger(__name__)

router = APIRouter(tags=["status"])


def _get_registry(request: Request) -> ServiceRegistry:
    return request.app.state.registry


@router.get("/", response_class=HTMLResponse)
async def status_page(request: Request) -> Response:
    registry = _get_registry(request)
    report = await registry.get_report()
    try:
        page = render.render_status_page(report, title=request.app.state.config.title)
    except Exception as exc:
        logger.exception("Failed to render status page")
        return PlainTextResponse(f"Failed to render template. Error: {exc}", status_code=500)
    return HTMLResponse(page)


@router.get("/api/status")
async def status_json(request: Request) -> Dict[str, Any]:
    registry = _get_registry(request)
    report = await registry.get_report()
    return report.to_dict()


@router.get("/api/status/{name:path}")
async def service_status(request: Request, name: str) -> Dict[str, Any]:
    registry = _get_registry(request)
    if registry.get_entry(name) is None:
        raise HTTPException(status_code=404, detail=f"Unknown service: {name}")
    outcome = await registry.check_one(name)
    return outcome.to_dict()

"""Caller address echo endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse

router = APIRouter(tags=["client"])

FORWARDED_HEADER = "X-Forwarded-For"


def client_address(request: Request) -> str:
    """Address of the caller: first X-Forwarded-For hop, else the transport peer."""
    forwarded = request.headers.get(FORWARDED_HEADER, "")
    first_hop = forwarded.split(",", 1)[0].strip()
    if first_hop:
        return first_hop
    if request.client is not None:
        return request.client.host
    return "unknown"


@router.get("/ip", response_class=PlainTextResponse)
async def echo_ip(request: Request) -> str:
    return client_address(request)

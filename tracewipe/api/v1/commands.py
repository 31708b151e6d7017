"""
HTTP endpoints over the command dispatcher.

Each route builds the matching command message and returns the
dispatcher's response unchanged; ``POST /api/v1/commands`` accepts any
raw message.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from ...service import Service


router = APIRouter(prefix="/api/v1", tags=["commands"])


class PausedIn(BaseModel):
    value: bool


class UrlIn(BaseModel):
    url: Optional[str] = None


def get_service(request: Request) -> Service:
    return request.app.state.service


@router.get("/status")
async def get_status(service: Service = Depends(get_service)) -> dict:
    return await service.handle_message({"type": "GET_STATUS"})


@router.put("/paused")
async def set_paused(payload: PausedIn, service: Service = Depends(get_service)) -> dict:
    return await service.handle_message({"type": "SET_PAUSED", "value": payload.value})


@router.post("/forget")
async def forget_url(payload: UrlIn, service: Service = Depends(get_service)) -> dict:
    return await service.handle_message({"type": "FORGET_URL", "url": payload.url})


@router.get("/action-log")
async def get_action_log(
    limit: int = Query(20, ge=1, le=200),
    service: Service = Depends(get_service),
) -> list:
    return await service.handle_message({"type": "GET_ACTION_LOG", "limit": limit})


@router.delete("/action-log")
async def clear_action_log(service: Service = Depends(get_service)) -> dict:
    return await service.handle_message({"type": "CLEAR_ACTION_LOG"})


@router.post("/test-url")
async def test_url(payload: UrlIn, service: Service = Depends(get_service)) -> dict:
    return await service.handle_message({"type": "TEST_URL", "url": payload.url})


@router.delete("/buffer")
async def clear_buffer(service: Service = Depends(get_service)) -> dict:
    return await service.handle_message({"type": "CLEAR_BUFFER"})


@router.post("/commands")
async def dispatch_command(message: Dict[str, Any], service: Service = Depends(get_service)) -> Any:
    return await service.handle_message(message)

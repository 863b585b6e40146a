"""REST API for blocking strings."""

from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

router = APIRouter(tags=["blockings"])


class BlockingCreate(BaseModel):
    blockStr: str = ""


@router.get("/blockings")
async def list_blockings(request: Request):
    return await request.app.state.control.list_criteria()


@router.post("/blockings")
async def add_blocking(body: BlockingCreate, request: Request):
    if not body.blockStr.strip():
        return JSONResponse(status_code=400, content={"error": "Missing blockStr"})

    added = await request.app.state.control.add_criterion(body.blockStr)
    if not added:
        return JSONResponse(
            status_code=400,
            content={"error": "Blocking string already exists"},
        )
    return {"success": True}


@router.delete("/blockings/{block_str:path}")
async def delete_blocking(block_str: str, request: Request):
    report = await request.app.state.control.remove_criterion(block_str)
    return {
        "success": report.ok,
        "unblocked": report.unblocked,
        "failed": sorted(report.failed),
    }

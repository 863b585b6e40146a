"""REST API for the block rule ledger."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from netwarden.firewall.base import FirewallCommandError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["rules"])


class UnblockRequest(BaseModel):
    ruleName: str = ""


@router.get("/blocklist")
async def list_rules(request: Request):
    rules = await request.app.state.control.list_rules()
    return [rule.to_dict() for rule in rules]


@router.post("/unblock")
async def unblock(body: UnblockRequest, request: Request):
    if not body.ruleName:
        return JSONResponse(status_code=400, content={"error": "Missing ruleName"})

    try:
        found = await request.app.state.control.unblock_by_rule_name(body.ruleName)
    except FirewallCommandError as exc:
        logger.error("Manual unblock of %s failed: %s", body.ruleName, exc)
        return JSONResponse(
            status_code=502,
            content={"error": "Failed to remove firewall rule"},
        )

    if not found:
        return JSONResponse(status_code=404, content={"error": "Rule not found"})
    return {"success": True}

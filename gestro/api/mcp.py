"""
Tool dispatch and chat assistant endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from gestro.api.deps import get_assistant, get_context, get_current_user
from gestro.models import Profile
from gestro.schemas import AssistantRequest, AssistantResponse, ToolRequest
from gestro.services.assistant import AssistantDispatcher, BaseAssistantBackend
from gestro.services.context import ServiceContext
from gestro.services.mcp import USER_SCOPED_TOOLS, ToolDispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/mcp", tags=["Assistant"])


@router.get("")
async def mcp_info(ctx: ServiceContext = Depends(get_context)) -> dict:
    """Service description and the names of the available tools."""
    return {
        "status": "ok",
        "message": f"{ctx.settings.restaurant_name} tool server is running",
        "version": ctx.settings.app_version,
        "tools": ToolDispatcher(ctx).tool_names,
    }


@router.post("/tools")
async def call_tool(
    request: ToolRequest,
    ctx: ServiceContext = Depends(get_context),
    user: Optional[Profile] = Depends(get_current_user),
) -> dict:
    """
    Run a single named tool.

    Answers `{"result": {...}}` on success or `{"error": "..."}` when the
    tool is unknown or crashed; tool-level failures live inside `result`.
    Order and reservation tools always act as the signed-in user.
    """
    params = dict(request.params)
    if request.tool in USER_SCOPED_TOOLS:
        if user is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to use this tool")
        params["userId"] = user.id

    return await ToolDispatcher(ctx).handle_request({"tool": request.tool, "params": params})


@router.post("", response_model=AssistantResponse)
async def chat(
    request: AssistantRequest,
    ctx: ServiceContext = Depends(get_context),
    backend: BaseAssistantBackend = Depends(get_assistant),
    user: Optional[Profile] = Depends(get_current_user),
) -> AssistantResponse:
    """Answer the last user message, placing orders or reservations when asked."""
    reply = await AssistantDispatcher(ctx, backend).process_request(
        [m.model_dump() for m in request.messages],
        context=request.context,
        user_id=user.id if user else None,
    )
    logger.info(f"Assistant reply via {backend.provider_name} (action={reply.action})")
    return AssistantResponse(response=reply.response, action=reply.action, data=reply.data)

"""Session directory REST endpoints"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query, Request

from ..exception import SessionNotFoundError
from ..panel.restore import matches_context
from ..panel.tools import PANEL_TOOLS_METADATA, PanelToolsMetadata
from ..schema import SuccessResponse, TerminalSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Terminal Sessions"])


# ==================== API Endpoints ====================

@router.get("/sessions", response_model=SuccessResponse[List[TerminalSession]])
async def list_sessions(
    req: Request,
    context: Optional[str] = Query(None, description="Only sessions whose context starts with this prefix"),
):
    """List sessions known to the session directory

    Without ``context`` every session is returned.
    """
    sessions = req.app.state.session_directory.list_sessions()
    if context is not None:
        sessions = [s for s in sessions if matches_context(s, context)]
    return SuccessResponse(data=sessions)


@router.delete("/sessions/{session_id}", response_model=SuccessResponse[None])
async def destroy_session(session_id: str, req: Request):
    """Stop a session and remove it from the directory

    Windows showing the session are told through terminal:exit.

    Raises:
        SessionNotFoundError: If the session does not exist
    """
    directory = req.app.state.session_directory
    if session_id not in directory.sessions:
        raise SessionNotFoundError(f"Terminal session not found: session_id={session_id}")

    logger.info(f"Destroying session via API: session_id={session_id}")
    await directory.destroy_session(session_id)
    return SuccessResponse(data=None, message="Session destroyed")


@router.get("/tools", response_model=SuccessResponse[PanelToolsMetadata])
async def list_tools():
    """Describe the tools the panel exposes to agents"""
    return SuccessResponse(data=PANEL_TOOLS_METADATA)

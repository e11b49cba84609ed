# src/huddle_chat/api/v1/endpoints/presence.py
"""Presence endpoints for the chat API."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from huddle_chat.schemas import PresenceRecord

from ..dependencies import ChatClientDep, CurrentUserDep

router = APIRouter(prefix="/presence", tags=["presence"])


@router.get("/{user_id}", response_model=PresenceRecord)
async def get_presence(
    user_id: str,
    current_user: CurrentUserDep,
    client: ChatClientDep,
) -> PresenceRecord:
    """Return whether a user is online and when they were last seen."""
    presence = await client.get_presence(user_id)
    if presence is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No presence recorded for this user",
        )
    return presence

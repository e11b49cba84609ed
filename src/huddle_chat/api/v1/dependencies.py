"""Shared API dependencies for authentication and chat access."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from huddle_chat.core.security import InvalidTokenError, decode_access_token
from huddle_chat.services.chat import ChatClient
from huddle_chat.services.store import ConversationNotFoundError

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()


def get_chat_client(request: Request) -> ChatClient:
    """Return the chat client created at application startup."""
    return request.app.state.chat_client


def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Get the authenticated user id from the bearer token.

    Raises:
        HTTPException: If the token is invalid
    """
    try:
        return decode_access_token(credentials.credentials)
    except InvalidTokenError as err:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        ) from err


async def require_participant(client: ChatClient, conversation_id: str, user_id: str) -> list[str]:
    """Return the conversation's participants, or raise 404/403.

    Raises:
        HTTPException: If the conversation is unknown or the user is not in it
    """
    try:
        participants = await client.participants(conversation_id)
    except ConversationNotFoundError as err:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Conversation not found",
        ) from err

    if user_id not in participants:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a participant of this conversation",
        )
    return participants


# Type aliases for dependencies
ChatClientDep = Annotated[ChatClient, Depends(get_chat_client)]
CurrentUserDep = Annotated[str, Depends(get_current_user_id)]

"""Conversation persistence helpers for the API layer.

Conversations, their messages and their linked videos live in the
`conversations`, `messages` and `_ConversationToVideo` tables. The API only
appends finished chat exchanges and reads conversations back for export.
"""

import asyncio
import uuid
from typing import Any

from supabase import Client

from src.utils.logging import get_logger

logger = get_logger(__name__)

TITLE_MAX_CHARS = 50


def new_id() -> str:
    return uuid.uuid4().hex


def conversation_title(query: str) -> str:
    """Derive a conversation title from its first user message."""
    if len(query) > TITLE_MAX_CHARS:
        return query[:TITLE_MAX_CHARS] + "..."
    return query


async def fetch_conversation(supabase: Client, conversation_id: str) -> dict[str, Any] | None:
    """Fetch a conversation's id, title and creation time."""
    response = await asyncio.to_thread(
        supabase.table("conversations")
        .select("id, title, created_at")
        .eq("id", conversation_id)
        .limit(1)
        .execute
    )
    return response.data[0] if response.data else None


async def fetch_messages(supabase: Client, conversation_id: str) -> list[dict[str, Any]]:
    """Fetch a conversation's messages, oldest first."""
    response = await asyncio.to_thread(
        supabase.table("messages")
        .select("role, content, created_at")
        .eq("conversationId", conversation_id)
        .order("created_at")
        .execute
    )
    return response.data or []


async def fetch_conversation_video_ids(supabase: Client, conversation_id: str) -> list[str]:
    """Fetch the ids of the videos linked to a conversation."""
    response = await asyncio.to_thread(
        supabase.table("_ConversationToVideo").select("B").eq("A", conversation_id).execute
    )
    return [row["B"] for row in response.data or []]


async def save_chat_exchange(
    supabase: Client,
    conversation_id: str,
    user_query: str,
    answer: str,
    new_conversation: bool = False,
    profile_id: str | None = None,
    video_ids: list[str] | None = None,
) -> None:
    """Append one user/assistant exchange to a conversation.

    A new conversation is created first, titled from the user query and
    linked to the scoped videos.

    Args:
        supabase: Supabase client.
        conversation_id: Conversation to append to (or create).
        user_query: The user's message.
        answer: The full assistant answer.
        new_conversation: Whether the conversation row must be created.
        profile_id: Owning profile, required for a new conversation.
        video_ids: Scoped videos to link to a new conversation.
    """
    if new_conversation:
        await asyncio.to_thread(
            supabase.table("conversations")
            .insert(
                {
                    "id": conversation_id,
                    "profileId": profile_id,
                    "title": conversation_title(user_query),
                }
            )
            .execute
        )
        links = [{"A": conversation_id, "B": video_id} for video_id in video_ids or []]
        if links:
            await asyncio.to_thread(supabase.table("_ConversationToVideo").insert(links).execute)
        logger.info(
            "conversation_created",
            conversation_id=conversation_id,
            linked_videos=len(links),
        )

    messages = [
        {
            "id": new_id(),
            "conversationId": conversation_id,
            "role": "user",
            "content": user_query,
        },
        {
            "id": new_id(),
            "conversationId": conversation_id,
            "role": "assistant",
            "content": answer,
        },
    ]
    await asyncio.to_thread(supabase.table("messages").insert(messages).execute)
    logger.info("chat_exchange_saved", conversation_id=conversation_id)

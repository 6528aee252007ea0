"""Streaming text generation through a pydantic-ai agent.

A stream has exactly one consumer. Closing the generator early (client
disconnect, explicit stop) exits the agent's stream context, which closes the
upstream model request.
"""

from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Literal

from pydantic import BaseModel
from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelResponse,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models import Model

from src.utils.errors import GenerationFailure
from src.utils.logging import get_logger

logger = get_logger(__name__)

CompletionCallback = Callable[[str], Awaitable[None]]


class ChatMessage(BaseModel):
    """One turn of a conversation as sent by the client."""

    role: Literal["user", "assistant"]
    content: str


def to_model_history(messages: list[ChatMessage]) -> list[ModelMessage]:
    """Convert client chat turns into pydantic-ai message history."""
    history: list[ModelMessage] = []
    for message in messages:
        if message.role == "user":
            history.append(ModelRequest(parts=[UserPromptPart(content=message.content)]))
        else:
            history.append(ModelResponse(parts=[TextPart(content=message.content)]))
    return history


class GenerationService:
    """Streams model output for a system prompt, user prompt and history."""

    def __init__(self, model: Model):
        self.model = model

    async def stream(
        self,
        system_prompt: str,
        user_prompt: str,
        history: list[ModelMessage] | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> AsyncIterator[str]:
        """Yield text deltas as the model produces them.

        Args:
            system_prompt: Instructions including the assembled context.
            user_prompt: The prompt for this turn.
            history: Earlier turns, oldest first.
            on_complete: Awaited with the full text after the stream finishes
                successfully. Not called on failure or cancellation.

        Yields:
            Text deltas.

        Raises:
            GenerationFailure: If the model call fails.
        """
        agent = Agent(self.model, instructions=system_prompt)
        chunks: list[str] = []

        logger.info("generation_started", history_length=len(history or []))
        try:
            async with agent.run_stream(user_prompt, message_history=history) as result:
                async for delta in result.stream_text(delta=True):
                    chunks.append(delta)
                    yield delta
        except Exception as e:
            logger.exception("generation_failed", error_type=type(e).__name__)
            raise GenerationFailure(f"Generation failed: {e}") from e

        full_text = "".join(chunks)
        logger.info("generation_completed", response_length=len(full_text))

        if on_complete is not None:
            try:
                await on_complete(full_text)
            except Exception:
                logger.exception("completion_callback_failed")

"""Chat and compose flows: retrieve, assemble context, stream generation."""

from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from pydantic_ai.messages import ModelMessage

from src.ingestion.embedding_service import EmbeddingService
from src.ingestion.index_service import IndexService
from src.retrieval.config import RetrievalConfig
from src.retrieval.context import (
    ComposeTemplate,
    assemble_context,
    build_chat_system_prompt,
    build_compose_system_prompt,
    compose_query,
    compose_user_prompt,
)
from src.retrieval.orchestrator import (
    CHAT_BUDGET,
    COMPOSE_BUDGET,
    RetrievalOrchestrator,
    RetrievalResult,
)
from src.utils.logging import get_logger

from .config import get_model
from .deps import ChatDeps
from .generation import ChatMessage, CompletionCallback, GenerationService, to_model_history

logger = get_logger(__name__)


@dataclass
class PreparedGeneration:
    """Everything the model call needs, computed before streaming starts."""

    system_prompt: str
    user_prompt: str
    retrieval: RetrievalResult
    history: list[ModelMessage] = field(default_factory=list)


class ChatService:
    """Builds grounded prompts for chat and compose and streams the answer.

    Preparation (retrieval and context assembly) happens before the first byte
    is streamed, so its failures can be reported as a plain error response.
    """

    def __init__(
        self,
        orchestrator: RetrievalOrchestrator,
        generation: GenerationService,
        config: RetrievalConfig,
    ):
        self.orchestrator = orchestrator
        self.generation = generation
        self.config = config

    async def prepare_chat(
        self, messages: list[ChatMessage], video_ids: list[str]
    ) -> PreparedGeneration:
        """Retrieve passages for the latest user turn and build the chat prompt.

        Args:
            messages: Conversation turns; the last one must be from the user.
            video_ids: Scoped video ids.

        Returns:
            PreparedGeneration for the chat turn.

        Raises:
            ValueError: If the last message is not a non-empty user message,
                or no video is in scope.
            IndexUnavailable: If the index backend is unusable.
        """
        if not messages or messages[-1].role != "user":
            raise ValueError("Last message must be from user")

        query = messages[-1].content.strip()
        if not query:
            raise ValueError("User message is empty")

        retrieval = await self.orchestrator.retrieve(query, video_ids, CHAT_BUDGET)
        context = assemble_context(retrieval.passages, self.config.max_context_chars)
        logger.info("chat_context_assembled", context_length=len(context))

        return PreparedGeneration(
            system_prompt=build_chat_system_prompt(context),
            user_prompt=query,
            retrieval=retrieval,
            history=to_model_history(messages[:-1]),
        )

    async def prepare_compose(
        self,
        template: ComposeTemplate,
        video_ids: list[str],
        custom_prompt: str | None = None,
    ) -> PreparedGeneration:
        """Retrieve passages for a compose template and build its prompt.

        The custom prompt, when given, is both the retrieval query and an
        extra instruction. Composed content carries no citations.

        Raises:
            ValueError: If no video is in scope.
            IndexUnavailable: If the index backend is unusable.
        """
        query = compose_query(template, custom_prompt)
        retrieval = await self.orchestrator.retrieve(query, video_ids, COMPOSE_BUDGET)
        context = assemble_context(retrieval.passages, self.config.max_context_chars)
        logger.info(
            "compose_context_assembled",
            template=template.value,
            context_length=len(context),
        )

        return PreparedGeneration(
            system_prompt=build_compose_system_prompt(template, context, custom_prompt),
            user_prompt=compose_user_prompt(template),
            retrieval=retrieval,
        )

    def stream(
        self,
        prepared: PreparedGeneration,
        on_complete: CompletionCallback | None = None,
    ) -> AsyncIterator[str]:
        """Stream the model's answer for a prepared request."""
        return self.generation.stream(
            prepared.system_prompt,
            prepared.user_prompt,
            history=prepared.history,
            on_complete=on_complete,
        )


def build_chat_service(deps: ChatDeps, model_id: str | None = None) -> ChatService:
    """Wire a request-scoped chat service from shared clients."""
    embedding_service = EmbeddingService(deps.kb_config, client=deps.embedding_client)
    index_service = IndexService(deps.supabase, embedding_service)
    return ChatService(
        orchestrator=RetrievalOrchestrator(index_service, deps.retrieval_config),
        generation=GenerationService(get_model(model_id)),
        config=deps.retrieval_config,
    )

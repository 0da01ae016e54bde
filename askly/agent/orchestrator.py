"""Retrieval orchestrator: answers a question from the user's documents.

Retrieves the closest chunks for the asking user, lays them out as
numbered context blocks, and makes a single language model call.
"""

import logging
from dataclasses import dataclass, field

from askly.agent.runtime import AgentRuntime, ChatMessage, get_runtime
from askly.core.config import get_settings
from askly.core.exceptions import AsklyError, ValidationError
from askly.observability.metrics import QUERIES_TOTAL
from askly.rag.retriever import RetrievedChunk, Retriever, format_context, get_retriever

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful AI assistant that answers questions based on the provided context.

Context from user's documents:
{context}

Instructions:
- Answer questions using ONLY the information from the provided context
- If the context doesn't contain enough information to answer, say so clearly
- Cite the document number (for example "Document 2") when referencing specific information
- Be concise and accurate
- If asked about something not in the context, politely explain you can only answer based on the uploaded documents"""

NO_CONTEXT_ANSWER = (
    "I don't have enough context to answer that. I can only answer questions "
    "based on the documents you have uploaded, and none of them matched your question."
)

CONVERSATION_ROLES = ("user", "assistant")


@dataclass
class Answer:
    """Generated answer plus one source entry per retrieved chunk."""

    text: str
    sources: list[dict] = field(default_factory=list)

    @property
    def document_count(self) -> int:
        return len(self.sources)

    def to_dict(self) -> dict:
        return {
            "response": self.text,
            "sources": self.sources,
            "documentCount": self.document_count,
        }


def trim_history(history: list | None, exchanges: int) -> list[ChatMessage]:
    """Keep the last ``exchanges`` user/assistant pairs of a conversation.

    Accepts ChatMessage objects or ``{"role", "content"}`` dicts; other
    roles (system, tool) and empty messages are dropped.
    """
    messages = []
    for item in history or []:
        if isinstance(item, ChatMessage):
            role, content = item.role, item.content
        else:
            role, content = item.get("role"), item.get("content")
        if role in CONVERSATION_ROLES and content:
            messages.append(ChatMessage(role=role, content=content))

    window = exchanges * 2
    return messages[-window:] if window > 0 else []


class RetrievalOrchestrator:
    """Query path: retrieve, assemble the prompt, call the model once."""

    def __init__(
        self,
        retriever: Retriever,
        runtime: AgentRuntime,
        top_k: int | None = None,
        history_exchanges: int | None = None,
    ):
        settings = get_settings()
        self.retriever = retriever
        self.runtime = runtime
        self.top_k = top_k or settings.retrieval_top_k
        self.history_exchanges = (
            settings.history_window_exchanges if history_exchanges is None else history_exchanges
        )

    def build_messages(
        self,
        query: str,
        chunks: list[RetrievedChunk],
        history: list | None = None,
    ) -> list[ChatMessage]:
        """System prompt with context, trimmed history, then the question."""
        return [
            ChatMessage(role="system", content=SYSTEM_PROMPT.format(context=format_context(chunks))),
            *trim_history(history, self.history_exchanges),
            ChatMessage(role="user", content=query),
        ]

    async def answer(
        self,
        query: str,
        user_id: str,
        document_id: str | None = None,
        history: list | None = None,
    ) -> Answer:
        """Answer ``query`` from ``user_id``'s documents.

        When nothing is retrieved the model is not called; a fixed
        insufficient-context answer with no sources is returned instead.

        Raises:
            ValidationError: Empty question or missing user id
            EmbeddingError: The query could not be embedded
            ModelProviderError: The language model call failed
        """
        query = (query or "").strip()
        if not query:
            raise ValidationError("Message is required")
        if not user_id:
            raise ValidationError("A user id is required to answer questions")

        try:
            chunks = await self.retriever.retrieve(
                query, user_id=user_id, document_id=document_id, limit=self.top_k
            )

            if not chunks:
                logger.info(f"[Orchestrator] No context for user '{user_id}', skipping model call")
                QUERIES_TOTAL.labels(outcome="no_context").inc()
                return Answer(text=NO_CONTEXT_ANSWER, sources=[])

            messages = self.build_messages(query, chunks, history)
            response = await self.runtime.complete(
                messages,
                metadata={"user_id": user_id, "document_id": document_id, "chunks": len(chunks)},
            )
        except AsklyError:
            QUERIES_TOTAL.labels(outcome="error").inc()
            raise

        QUERIES_TOTAL.labels(outcome="answered").inc()
        logger.info(
            f"[Orchestrator] Answered from {len(chunks)} chunks in {response.latency_ms:.0f}ms"
        )
        return Answer(
            text=response.content or "No response generated",
            sources=[chunk.to_source() for chunk in chunks],
        )


# Singleton instance
_orchestrator: RetrievalOrchestrator | None = None


def get_orchestrator() -> RetrievalOrchestrator:
    """Get or create the global RetrievalOrchestrator instance."""
    global _orchestrator

    if _orchestrator is None:
        _orchestrator = RetrievalOrchestrator(get_retriever(), get_runtime())

    return _orchestrator

"""Question answering endpoint."""

from fastapi import APIRouter
from pydantic import BaseModel, ConfigDict, Field

from askly.api.deps import CurrentUserId, Orchestrator

router = APIRouter()


class ChatMessageInput(BaseModel):
    """A single earlier conversation message."""

    role: str = Field(..., description="Message role: user or assistant")
    content: str = Field(..., description="Message content")


class ChatRequest(BaseModel):
    """Chat request."""

    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., description="User question", max_length=32000)
    document_id: str | None = Field(
        None, alias="documentId", description="Restrict retrieval to one document"
    )
    conversation_history: list[ChatMessageInput] = Field(
        default_factory=list, alias="conversationHistory"
    )


class ChatResponse(BaseModel):
    """Answer with one source entry per retrieved chunk."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    response: str
    sources: list[dict]
    document_count: int = Field(..., alias="documentCount")


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, user_id: CurrentUserId, orchestrator: Orchestrator):
    """Answer a question from the calling user's documents."""
    answer = await orchestrator.answer(
        body.message,
        user_id=user_id,
        document_id=body.document_id,
        history=[m.model_dump() for m in body.conversation_history],
    )
    return ChatResponse(**answer.to_dict())

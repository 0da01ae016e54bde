"""Agent runtime for LLM interactions.

Handles chat completions with OpenAI, including:
- Langfuse observability
- Latency metrics
- Provider error mapping
"""

import logging
import time
from dataclasses import dataclass

import httpx
from langfuse import Langfuse
from openai import AsyncOpenAI, OpenAIError

from askly.core.config import get_settings
from askly.core.exceptions import ModelProviderError
from askly.observability.metrics import LLM_LATENCY

logger = logging.getLogger(__name__)


@dataclass
class ChatMessage:
    """A message in a conversation."""

    role: str  # system, user, assistant
    content: str


@dataclass
class ChatResponse:
    """Response from a chat completion."""

    content: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    latency_ms: float
    finish_reason: str | None


class AgentRuntime:
    """Runtime for language model calls.

    One completion per call, no retry loop of its own (the OpenAI client's
    ``max_retries`` covers transient transport errors).
    """

    def __init__(self, client: AsyncOpenAI | None = None, langfuse: Langfuse | None = None):
        self.settings = get_settings()
        self._client = client or self._init_client()
        self._langfuse = langfuse or self._init_langfuse()

    def _init_client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=self.settings.openai_api_key or None,
            base_url=self.settings.openai_base_url,
            timeout=httpx.Timeout(self.settings.openai_timeout, connect=30.0),
            max_retries=self.settings.openai_max_retries,
        )

    def _init_langfuse(self) -> Langfuse | None:
        """Initialize Langfuse for observability."""
        if self.settings.langfuse_enabled:
            return Langfuse(
                public_key=self.settings.langfuse_public_key,
                secret_key=self.settings.langfuse_secret_key,
                host=self.settings.langfuse_host,
            )
        return None

    def _start_generation(self, model: str, api_messages: list[dict], metadata: dict | None):
        if not self._langfuse:
            return None
        try:
            return self._langfuse.start_generation(
                name="llm-call",
                model=model,
                input=api_messages,
                metadata=metadata or {},
            )
        except Exception as e:
            # Tracing errors shouldn't break the chat flow
            logger.warning(f"[Runtime] Langfuse generation start failed: {e}")
            return None

    async def complete(
        self,
        messages: list[ChatMessage],
        model: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        metadata: dict | None = None,
    ) -> ChatResponse:
        """Send a chat completion request.

        Args:
            messages: Full prompt, system message first
            model: Model to use (defaults to CHAT_MODEL)
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response
            metadata: Extra fields recorded on the trace

        Returns:
            ChatResponse with content and usage info

        Raises:
            ModelProviderError: The provider rejected or failed the request
        """
        model = model or self.settings.chat_model
        temperature = self.settings.chat_temperature if temperature is None else temperature
        max_tokens = max_tokens or self.settings.chat_max_tokens

        api_messages = [{"role": m.role, "content": m.content} for m in messages]
        generation = self._start_generation(model, api_messages, metadata)

        start_time = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=api_messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            if generation:
                generation.update(level="ERROR", status_message=str(e))
                generation.end()
            logger.error(f"[Runtime] Chat completion failed for model '{model}': {e}")
            raise ModelProviderError("Language model request failed.", detail=str(e)) from e

        latency = time.perf_counter() - start_time
        LLM_LATENCY.labels(model=model).observe(latency)

        choice = response.choices[0]
        usage = response.usage
        result = ChatResponse(
            content=choice.message.content or "",
            model=response.model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            total_tokens=usage.total_tokens if usage else 0,
            latency_ms=latency * 1000,
            finish_reason=choice.finish_reason,
        )

        if generation:
            generation.update(
                output=result.content,
                usage_details={
                    "input": result.prompt_tokens,
                    "output": result.completion_tokens,
                    "total": result.total_tokens,
                },
                metadata={"finish_reason": result.finish_reason, "latency_ms": result.latency_ms},
            )
            generation.end()

        return result

    async def shutdown(self) -> None:
        """Cleanup resources."""
        if self._langfuse:
            self._langfuse.flush()
        await self._client.close()


# Global runtime instance
_runtime: AgentRuntime | None = None


def get_runtime() -> AgentRuntime:
    """Get or create the global agent runtime."""
    global _runtime
    if _runtime is None:
        _runtime = AgentRuntime()
    return _runtime


async def shutdown_runtime() -> None:
    """Shutdown the global runtime."""
    global _runtime
    if _runtime:
        await _runtime.shutdown()
        _runtime = None

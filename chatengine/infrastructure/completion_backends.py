"""Completion Backends — the real Anthropic backend and the settings-driven factory.

Invariants:
    - Requests arrive OpenAI-shaped ({model, messages, stream}); responses leave
      in the same shape regardless of backend
    - System messages are lifted into the Anthropic `system` parameter
    - Empty-content turns are dropped (the Messages API rejects them)

Design Decisions:
    - The Anthropic backend always uses its configured model; request.model
      names the logical model of the chat client
    - No local streaming from the SDK: the full reply is fetched, then the
      streaming writer delivers it progressively
"""

import logging
import random
import time

from chatengine.config import Settings
from chatengine.core.completion_models import (
    ChatCompletionResponse, ChoiceMessage, CompletionChoice,
    CompletionRequest, CompletionResult, UsageMetrics,
)
from chatengine.core.domain_types import FinishReason, Role
from chatengine.core.repository_protocols import CompletionBackend
from chatengine.infrastructure.anthropic_client import ResilientAnthropicClient
from chatengine.infrastructure.mock_completion import MockCompletionBackend

logger = logging.getLogger(__name__)


class AnthropicCompletionBackend:
    """Completion capability backed by the Anthropic Messages API."""

    stream_error_rate = 0.0

    def __init__(
        self, client: ResilientAnthropicClient, model: str, max_tokens: int = 4096,
    ):
        self._client = client
        self.model = model
        self.max_tokens = max_tokens

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        system = "\n\n".join(
            m.content for m in request.messages
            if m.role == Role.SYSTEM and m.content
        )
        messages = [
            {"role": m.role.value, "content": m.content}
            for m in request.messages
            if m.role != Role.SYSTEM and m.content.strip()
        ]
        response = await self._client.create_message(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=messages,
            system=system or None,
        )
        return CompletionResult(response=self._to_completion(response))

    def _to_completion(self, response) -> ChatCompletionResponse:
        text = "".join(
            block.text for block in response.content
            if getattr(block, "type", None) == "text"
        )
        finish = (
            FinishReason.LENGTH if response.stop_reason == "max_tokens"
            else FinishReason.STOP
        )
        usage = response.usage
        return ChatCompletionResponse(
            id=response.id,
            created=int(time.time()),
            model=response.model,
            choices=[CompletionChoice(
                index=0, message=ChoiceMessage(content=text), finish_reason=finish,
            )],
            usage=UsageMetrics(
                prompt_tokens=usage.input_tokens,
                completion_tokens=usage.output_tokens,
                total_tokens=usage.input_tokens + usage.output_tokens,
            ),
        )


def build_completion_backend(
    settings: Settings, rng: random.Random | None = None,
) -> CompletionBackend:
    """Pick the completion backend named in settings."""
    if settings.completion_backend == "anthropic":
        client = ResilientAnthropicClient(
            api_key=settings.anthropic_api_key,
            max_retries=settings.anthropic_max_retries,
            base_delay_ms=settings.anthropic_base_delay_ms,
            max_delay_ms=settings.anthropic_max_delay_ms,
            timeout_seconds=settings.anthropic_timeout_seconds,
        )
        logger.info("Using Anthropic completion backend")
        return AnthropicCompletionBackend(
            client, settings.anthropic_model, settings.anthropic_max_tokens,
        )
    logger.info("Using mock completion backend")
    return MockCompletionBackend(
        error_rate=settings.mock_error_rate,
        delay_ms=(settings.mock_delay_min_ms, settings.mock_delay_max_ms),
        rng=rng,
    )

"""Mock Completion Backend — canned replies, optional cards, simulated latency and failures.

Invariants:
    - error_rate is always within [0.0, 1.0]; the same rate drives mid-stream failures
    - A prompt containing a card keyword always gets a card; otherwise cards
      appear with probability card_rate
    - usage.total_tokens == prompt_tokens + completion_tokens

Design Decisions:
    - Injectable random.Random: seeded instances make tests deterministic
    - Failure raised before the simulated latency, like a refused request
"""

import asyncio
import logging
import random
import time
import uuid

from chatengine.core.chat_models import AssistantCard
from chatengine.core.completion_models import (
    ChatCompletionResponse, ChoiceMessage, CompletionChoice,
    CompletionRequest, CompletionResult, UsageMetrics,
)
from chatengine.core.domain_types import CardType
from chatengine.core.errors import TransportError

logger = logging.getLogger(__name__)

REPLY_TEMPLATES = (
    "Thanks for the message! Here is a short answer to get you started, "
    "and I can go deeper on any part of it.",
    "Good question. The short version: break the problem into smaller steps, "
    "check each one, then put them back together.",
    "Here is how I would approach it:\n\n1. Clarify the goal\n"
    "2. List the constraints\n3. Try the simplest option first",
    "I looked at this from a few angles. The most practical path is usually "
    "the one you can verify quickly, so start there.",
)

CARD_CATALOG = (
    AssistantCard(
        card_type=CardType.CONTACT,
        title="Talk to a specialist",
        description="Book a 20 minute call with someone who has solved this before.",
        action_text="Book a call",
        action_url="https://example.com/contact",
    ),
    AssistantCard(
        card_type=CardType.ARTICLE,
        title="Further reading",
        description="A step-by-step guide that expands on this answer.",
        action_text="Read the article",
        action_url="https://example.com/articles/guide",
    ),
)

CARD_KEYWORDS = ("contact", "recommend", "article", "friend", "resource")


class MockCompletionBackend:
    """Offline stand-in for a chat-completions endpoint."""

    def __init__(
        self,
        error_rate: float = 0.0,
        delay_ms: tuple[int, int] = (300, 900),
        card_rate: float = 0.3,
        rng: random.Random | None = None,
    ):
        self.delay_ms = delay_ms
        self.card_rate = card_rate
        self._rng = rng or random.Random()
        self.error_rate = 0.0
        self.set_error_rate(error_rate)

    @property
    def stream_error_rate(self) -> float:
        return self.error_rate

    def set_error_rate(self, rate: float) -> None:
        """Change the simulated failure probability at runtime (clamped to [0, 1])."""
        try:
            value = float(rate)
        except (TypeError, ValueError):
            value = 0.0
        self.error_rate = max(0.0, min(1.0, value))

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        if self._rng.random() < self.error_rate:
            raise TransportError(
                f"Mock API error (simulated) rate={self.error_rate}", "simulated",
            )

        low, high = self.delay_ms
        await asyncio.sleep(self._rng.randint(low, high) / 1000 if high > 0 else 0)

        prompt = request.messages[-1].content if request.messages else ""
        prompt_tokens = self._rng.randint(10, 80)
        completion_tokens = self._rng.randint(40, 180)
        response = ChatCompletionResponse(
            id=f"mock-{uuid.uuid4().hex[:10]}",
            created=int(time.time()),
            model=request.model,
            choices=[CompletionChoice(
                index=0,
                message=ChoiceMessage(content=self._build_content(prompt)),
            )],
            usage=UsageMetrics(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            ),
        )
        return CompletionResult(response=response, card=self._maybe_pick_card(prompt))

    def _build_content(self, prompt: str) -> str:
        if not prompt:
            return REPLY_TEMPLATES[0]
        return self._rng.choice(REPLY_TEMPLATES)

    def _maybe_pick_card(self, prompt: str) -> AssistantCard | None:
        lowered = prompt.lower()
        keyword_hit = any(key in lowered for key in CARD_KEYWORDS)
        if not keyword_hit and self._rng.random() >= self.card_rate:
            return None
        return self._rng.choice(CARD_CATALOG).model_copy()

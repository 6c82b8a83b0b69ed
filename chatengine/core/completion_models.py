"""Completion Models — request/response shapes exchanged with the completion backend.

Invariants:
    - Request: {model, messages: [{role, content}], stream}
    - Response: {response: {id, created, model, choices, usage}, card?}
    - usage.total_tokens == prompt_tokens + completion_tokens for generated usage

Design Decisions:
    - Snake_case field names match the OpenAI-style wire format directly;
      only the card payload uses camelCase (shared with the snapshot format)
"""

from pydantic import BaseModel, Field

from chatengine.core.chat_models import AssistantCard
from chatengine.core.domain_types import FinishReason, Role


class CompletionMessage(BaseModel):
    role: Role
    content: str


class CompletionRequest(BaseModel):
    model: str
    messages: list[CompletionMessage]
    stream: bool = True


class ChoiceMessage(BaseModel):
    role: Role = Role.ASSISTANT
    content: str = ""


class CompletionChoice(BaseModel):
    index: int = 0
    message: ChoiceMessage
    finish_reason: FinishReason = FinishReason.STOP


class UsageMetrics(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatCompletionResponse(BaseModel):
    id: str
    created: int
    model: str
    choices: list[CompletionChoice] = Field(default_factory=list)
    usage: UsageMetrics = Field(default_factory=UsageMetrics)

    @property
    def first_content(self) -> str:
        """Content of the first choice, or "" when the backend returned none."""
        if not self.choices:
            return ""
        return self.choices[0].message.content


class CompletionResult(BaseModel):
    response: ChatCompletionResponse
    card: AssistantCard | None = None

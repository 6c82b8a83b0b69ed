"""Regeneration Policy — re-run one assistant turn in place.

Invariants:
    - Only assistant text messages in the active session can be regenerated
    - Messages before the target are never touched (prefix unchanged)
    - The trailing card run of the target is trimmed before the new request,
      and a new card, if any, is placed directly after the target
    - The request carries exactly one user message: the nearest preceding prompt
    - Failures and cancellations end as target status=error; never re-raised,
      except a cancelled caller task, which is persisted first

Design Decisions:
    - The target is claimed before it is reset: claiming cancels a run that may
      still own the same message, and the reset must come after that cancellation
"""

import asyncio
import logging
from collections.abc import Sequence

from chatengine.core.chat_models import ChatMessage, is_card_of
from chatengine.core.completion_models import CompletionMessage
from chatengine.core.domain_types import MessageStatus, MessageType, Role
from chatengine.core.errors import ChatEngineError
from chatengine.core.message_store import MessageStore
from chatengine.core.session_registry import SessionRegistry
from chatengine.services.persistence_gateway import PersistenceGateway
from chatengine.services.streaming_coordinator import StreamingCoordinator

logger = logging.getLogger(__name__)


def find_prompt(messages: Sequence[ChatMessage], index: int) -> ChatMessage | None:
    """Nearest user message before position `index`."""
    for msg in reversed(messages[:index]):
        if msg.role == Role.USER:
            return msg
    return None


def count_trailing_cards(messages: Sequence[ChatMessage], index: int) -> int:
    count = 0
    for msg in messages[index + 1:]:
        if not is_card_of(msg):
            break
        count += 1
    return count


class RegenerationPolicy:
    def __init__(
        self,
        registry: SessionRegistry,
        store: MessageStore,
        streaming: StreamingCoordinator,
        persistence: PersistenceGateway,
    ):
        self._registry = registry
        self._store = store
        self._streaming = streaming
        self._persistence = persistence

    def _locate(self, session_id: str, message_id: str) -> tuple[int, list[ChatMessage]]:
        items = self._store.messages(session_id)
        return self._store.index_of(session_id, message_id), items

    async def regenerate(self, message_id: str) -> ChatMessage | None:
        """Regenerate an assistant reply. Returns the target, or None on a no-op."""
        session_id = self._registry.active_session_id
        if session_id is None:
            return None

        index, items = self._locate(session_id, message_id)
        if index == -1:
            return None
        target = items[index]
        if target.role != Role.ASSISTANT or target.type != MessageType.TEXT:
            logger.debug("Regeneration ignored for non-reply message",
                extra={"session_id": session_id, "message_id": message_id})
            return None

        prompt = find_prompt(items, index)
        if prompt is None:
            return None

        trailing = count_trailing_cards(items, index)
        if trailing:
            self._store.remove_range(session_id, index + 1, trailing)
            await self._persistence.persist()
            # the message may have vanished while persisting
            if self._store.find(session_id, message_id) is None:
                return None

        token = self._streaming.claim(session_id, message_id)

        def _reset(msg: ChatMessage) -> None:
            msg.status = MessageStatus.STREAMING
            msg.content = ""

        self._store.update(session_id, message_id, _reset)
        request = [CompletionMessage(role=Role.USER, content=prompt.content)]
        logger.info("Regenerating reply",
            extra={"session_id": session_id, "message_id": message_id})

        try:
            await self._streaming.run(session_id, message_id, request, token)
        except ChatEngineError as e:
            # target already marked error by the coordinator
            logger.debug("Regeneration ended without a reply (%s)", e.kind.value,
                extra={"session_id": session_id, "message_id": message_id})
        except asyncio.CancelledError:
            self._streaming.abandon(token, session_id, message_id)
            await self._persistence.persist()
            raise
        await self._persistence.persist()
        return target

"""Message Store — ordered lists, registry mirroring, safe updates.

Invariants:
    - append mirrors the id into the session's messageIds
    - update/set_status on a missing message is a no-op returning False
    - insert_after keeps cards next to their reply and re-mirrors ids
    - remove_range trims a contiguous run and re-mirrors ids
"""

from chatengine.core.chat_models import (
    new_card_message, new_placeholder, new_text_message,
)
from chatengine.core.domain_types import MessageStatus, Role
from chatengine.core.message_store import MessageStore
from chatengine.core.session_registry import SessionRegistry
from tests.services.fake_backend import make_card


def _setup():
    registry = SessionRegistry()
    store = MessageStore(registry)
    session = registry.create()
    return registry, store, session


def _user(sid, text="hi"):
    return new_text_message(sid, Role.USER, text, MessageStatus.SENT)


def test_append_mirrors_ids_in_order():
    _, store, session = _setup()
    a, b = _user(session.id, "a"), _user(session.id, "b")
    store.append(session.id, a)
    store.append(session.id, b)
    assert [m.id for m in store.messages(session.id)] == [a.id, b.id]
    assert session.message_ids == [a.id, b.id]


def test_messages_returns_copy():
    _, store, session = _setup()
    store.append(session.id, _user(session.id))
    store.messages(session.id).clear()
    assert len(store.messages(session.id)) == 1


def test_update_missing_is_noop():
    _, store, session = _setup()
    assert store.update(session.id, "missing", lambda m: None) is False
    assert store.set_status("no-session", "missing", MessageStatus.ERROR) is False


def test_update_mutates_in_place():
    _, store, session = _setup()
    placeholder = new_placeholder(session.id)
    store.append(session.id, placeholder)

    def _grow(msg):
        msg.content += "chunk"

    assert store.update(session.id, placeholder.id, _grow) is True
    assert store.find(session.id, placeholder.id).content == "chunk"


def test_insert_after_places_card_next_to_reply():
    _, store, session = _setup()
    reply = new_placeholder(session.id)
    later = _user(session.id, "later")
    store.append(session.id, reply)
    store.append(session.id, later)

    card = new_card_message(session.id, make_card())
    store.insert_after(session.id, reply.id, card)

    assert [m.id for m in store.messages(session.id)] == [reply.id, card.id, later.id]
    assert session.message_ids == [reply.id, card.id, later.id]


def test_insert_after_last_appends():
    _, store, session = _setup()
    reply = new_placeholder(session.id)
    store.append(session.id, reply)
    card = new_card_message(session.id, make_card())
    store.insert_after(session.id, reply.id, card)
    assert session.message_ids == [reply.id, card.id]


def test_remove_range_trims_and_remirrors():
    _, store, session = _setup()
    msgs = [_user(session.id, str(i)) for i in range(4)]
    for m in msgs:
        store.append(session.id, m)
    removed = store.remove_range(session.id, 1, 2)
    assert [m.id for m in removed] == [msgs[1].id, msgs[2].id]
    assert session.message_ids == [msgs[0].id, msgs[3].id]


def test_remove_range_zero_count_is_noop():
    _, store, session = _setup()
    store.append(session.id, _user(session.id))
    assert store.remove_range(session.id, 0, 0) == []
    assert len(store.messages(session.id)) == 1


def test_locate_searches_all_sessions():
    registry, store, first = _setup()
    second = registry.create()
    msg = _user(first.id)
    store.append(first.id, msg)
    store.append(second.id, _user(second.id))
    assert store.locate(msg.id) is msg
    assert store.locate("missing") is None


def test_drop_removes_session_messages():
    _, store, session = _setup()
    store.append(session.id, _user(session.id))
    dropped = store.drop(session.id)
    assert len(dropped) == 1
    assert store.messages(session.id) == []


def test_streaming_messages_lists_all_sessions():
    registry, store, first = _setup()
    second = registry.create()
    p1 = new_placeholder(first.id)
    store.append(first.id, p1)
    store.append(second.id, _user(second.id))
    assert store.streaming_messages() == [p1]

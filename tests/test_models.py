from concurrent.futures import ThreadPoolExecutor

import pytest

from lanchat.models import (
    MAX_MESSAGE_HISTORY,
    ChatState,
    Message,
    User,
)


def test_user_ids_are_sequential_from_one():
    state = ChatState()
    assert [state.next_user_id() for _ in range(3)] == ["user_1", "user_2", "user_3"]


def test_user_ids_unique_across_threads():
    state = ChatState()
    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(state.next_user_id) for _ in range(800)]
        ids = [future.result() for future in futures]

    assert len(ids) == 800
    assert set(ids) == {f"user_{n}" for n in range(1, 801)}
    assert state.next_user_id() == "user_801"


def test_add_message_keeps_order():
    state = ChatState()
    first = Message("alice", "hello", "10:00:00")
    second = Message("bob", "hi", "10:00:01")
    state.add_message(first)
    state.add_message(second)
    assert list(state.messages) == [first, second]


def test_history_is_capped_and_drops_oldest():
    state = ChatState()
    for i in range(MAX_MESSAGE_HISTORY + 5):
        state.add_message(Message("alice", str(i), "10:00:00"))
    texts = [m.text for m in state.messages]
    assert len(texts) == MAX_MESSAGE_HISTORY
    assert texts[0] == "5"
    assert texts[-1] == str(MAX_MESSAGE_HISTORY + 4)


def test_custom_history_size():
    state = ChatState(max_history=2)
    for text in ("a", "b", "c"):
        state.add_message(Message("u", text, "t"))
    assert [m.text for m in state.messages] == ["b", "c"]
    assert state.max_history == 2


def test_invalid_history_size_rejected():
    with pytest.raises(ValueError):
        ChatState(max_history=0)


def test_add_message_while_holding_lock():
    state = ChatState()
    with state.lock:
        state.add_message(Message("alice", "nested", "t"))
    assert state.messages[-1].text == "nested"


def test_user_stored_by_id():
    state = ChatState()
    uid = state.next_user_id()
    state.users[uid] = User(uid, "alice", "10:00:00", last_seen=100.0)
    assert state.users[uid].username == "alice"
    assert state.users[uid].last_seen == 100.0
"""Chat data model and the shared, thread-safe server state."""

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field

MAX_MESSAGE_HISTORY = 200
HEARTBEAT_TIMEOUT_SECONDS = 10
MAX_CONNECTIONS = 200


@dataclass
class User:
    """A connected chat participant."""

    id: str
    username: str
    joined_at: str
    last_seen: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Message:
    """A single chat message as stored in the history."""

    username: str
    text: str
    timestamp: str


class ChatState:
    """Connected users, message history and the lock guarding them.

    ``lock`` is re-entrant, so callers may hold it while calling
    :meth:`add_message`.
    """

    def __init__(self, max_history: int = MAX_MESSAGE_HISTORY) -> None:
        if max_history < 1:
            raise ValueError("max_history must be at least 1")
        self.users: dict[str, User] = {}
        self.messages: deque[Message] = deque(maxlen=max_history)
        self.lock = threading.RLock()
        self._counter = 0
        self._counter_lock = threading.Lock()

    @property
    def max_history(self) -> int:
        """The number of messages kept before the oldest is dropped."""
        return self.messages.maxlen or 0

    def next_user_id(self) -> str:
        """Return a fresh identifier of the form ``user_<n>``, starting at 1."""
        with self._counter_lock:
            self._counter += 1
            return f"user_{self._counter}"

    def add_message(self, message: Message) -> None:
        """Append a message, dropping the oldest once the history is full."""
        with self.lock:
            self.messages.append(message)
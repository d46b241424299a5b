"""Conversation and message value types plus the per-conversation message cache."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, Iterable, Iterator, List, Optional, Set

CURSOR_UNFETCHED = "unfetched"
CURSOR_PARTIAL = "partial"
CURSOR_EXHAUSTED = "exhausted"


@dataclass(frozen=True)
class Message:
    """One chat message.

    ``msg_id`` is scoped to its conversation and grows monotonically with time,
    so it doubles as the ordering key of the cache.
    """

    msg_id: int
    sender: str
    text: str
    ts: float
    outgoing: bool = False
    edited: bool = False


@dataclass(frozen=True)
class ConversationInfo:
    """What the remote service reports about a conversation during listing."""

    conv_id: str
    name: str
    preview: str = ""


@dataclass(frozen=True)
class PageCursor:
    status: str = CURSOR_UNFETCHED
    before_id: Optional[int] = None

    @property
    def exhausted(self) -> bool:
        return self.status == CURSOR_EXHAUSTED

    def advance(self, received: int, oldest_id: Optional[int], limit: int) -> "PageCursor":
        """Return the cursor after a completed page of ``received`` items."""

        if received < limit or oldest_id is None:
            return PageCursor(status=CURSOR_EXHAUSTED, before_id=self.before_id)
        if self.before_id is not None:
            oldest_id = min(oldest_id, self.before_id)
        return PageCursor(status=CURSOR_PARTIAL, before_id=oldest_id)


class MessageCache:
    """Chronological (oldest-first) message sequence with unique ids.

    Live messages land at the new end and history pages at the old end, both in
    constant time. Out-of-order arrivals fall back to a positional insert.
    """

    def __init__(self, messages: Iterable[Message] = ()) -> None:
        self._messages: Deque[Message] = deque()
        self._ids: Set[int] = set()
        for message in messages:
            self.insert(message)

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(self._messages)

    def __contains__(self, msg_id: object) -> bool:
        return msg_id in self._ids

    @property
    def newest(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    @property
    def oldest(self) -> Optional[Message]:
        return self._messages[0] if self._messages else None

    def insert(self, message: Message) -> bool:
        """Insert ``message`` in id order; return ``False`` for a duplicate id."""

        if message.msg_id in self._ids:
            return False
        self._ids.add(message.msg_id)
        if not self._messages or message.msg_id > self._messages[-1].msg_id:
            self._messages.append(message)
        elif message.msg_id < self._messages[0].msg_id:
            self._messages.appendleft(message)
        else:
            index = len(self._messages) - 1
            while self._messages[index].msg_id > message.msg_id:
                index -= 1
            self._messages.insert(index + 1, message)
        return True

    def replace(self, message: Message) -> bool:
        """Swap in a new version of a cached message, keeping its position."""

        if message.msg_id not in self._ids:
            return False
        for index in range(len(self._messages) - 1, -1, -1):
            if self._messages[index].msg_id == message.msg_id:
                self._messages[index] = replace(message, edited=True)
                return True
        return False

    def remove(self, msg_ids: Iterable[int]) -> int:
        doomed = self._ids.intersection(msg_ids)
        if not doomed:
            return 0
        self._messages = deque(m for m in self._messages if m.msg_id not in doomed)
        self._ids.difference_update(doomed)
        return len(doomed)

    def to_list(self) -> List[Message]:
        return list(self._messages)

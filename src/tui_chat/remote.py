"""Abstract contract of the remote messaging service plus an in-memory implementation."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from typing import AsyncIterator, Dict, List, Optional, Protocol, Tuple, Union

from tui_chat.models import ConversationInfo, Message


class RemoteError(Exception):
    """A call against the remote service failed."""


@dataclass(frozen=True)
class NewMessage:
    conv_id: str
    message: Message
    conv_name: str = ""


@dataclass(frozen=True)
class MessageEdited:
    conv_id: str
    message: Message


@dataclass(frozen=True)
class MessageDeleted:
    conv_id: str
    msg_ids: Tuple[int, ...]


LiveUpdate = Union[NewMessage, MessageEdited, MessageDeleted]


class RemoteClient(Protocol):
    """What the core needs from an authenticated, shareable service handle.

    ``list_conversations`` and ``list_messages`` are single-pass async
    iterators. ``list_messages`` yields at most ``limit`` messages older than
    ``before_id`` (all of them when ``None``) in whatever order the service
    uses. ``next_live_update`` suspends until an update arrives and returns
    ``None`` at end of stream.
    """

    def list_conversations(self) -> AsyncIterator[ConversationInfo]:
        ...

    def list_messages(
        self, conv_id: str, limit: int, before_id: Optional[int] = None
    ) -> AsyncIterator[Message]:
        ...

    async def next_live_update(self) -> Optional[LiveUpdate]:
        ...

    async def close(self) -> None:
        ...


_END_OF_STREAM = object()


class InMemoryRemoteClient:
    """Remote service held in process memory.

    Pages are served newest-first, matching the common chat API shape. Live
    updates pushed with :meth:`push_update` are also applied to the stored
    history so later page loads see them. ``latency_s`` delays every item to
    mimic network I/O.
    """

    def __init__(self, latency_s: float = 0.0) -> None:
        self.latency_s = latency_s
        self._conversations: Dict[str, ConversationInfo] = {}
        self._messages: Dict[str, List[Message]] = {}
        self._updates: asyncio.Queue[object] = asyncio.Queue()
        self._failures: Dict[str, str] = {}
        self.calls: List[Tuple[str, ...]] = []

    def add_conversation(self, conv_id: str, name: str, messages: List[Message] | None = None) -> None:
        history = sorted(messages or [], key=lambda m: m.msg_id)
        preview = history[-1].text if history else ""
        self._conversations[conv_id] = ConversationInfo(conv_id=conv_id, name=name, preview=preview)
        self._messages[conv_id] = history

    def fail(self, operation: str, reason: str = "unavailable") -> None:
        """Make every later call of ``operation`` raise :class:`RemoteError`."""

        self._failures[operation] = reason

    def recover(self, operation: str) -> None:
        self._failures.pop(operation, None)

    def push_update(self, update: LiveUpdate) -> None:
        self._apply(update)
        self._updates.put_nowait(update)

    def end_stream(self) -> None:
        self._updates.put_nowait(_END_OF_STREAM)

    def _check(self, operation: str) -> None:
        reason = self._failures.get(operation)
        if reason is not None:
            raise RemoteError(reason)

    async def _pause(self) -> None:
        if self.latency_s > 0:
            await asyncio.sleep(self.latency_s)

    async def list_conversations(self) -> AsyncIterator[ConversationInfo]:
        self.calls.append(("list_conversations",))
        self._check("list_conversations")
        for info in list(self._conversations.values()):
            await self._pause()
            yield info

    async def list_messages(
        self, conv_id: str, limit: int, before_id: Optional[int] = None
    ) -> AsyncIterator[Message]:
        self.calls.append(("list_messages", conv_id))
        self._check("list_messages")
        if conv_id not in self._messages:
            raise RemoteError(f"unknown conversation {conv_id}")
        history = self._messages[conv_id]
        if before_id is not None:
            history = [m for m in history if m.msg_id < before_id]
        for message in reversed(history[-limit:] if limit > 0 else []):
            await self._pause()
            yield message

    async def next_live_update(self) -> Optional[LiveUpdate]:
        self._check("next_live_update")
        update = await self._updates.get()
        if update is _END_OF_STREAM:
            return None
        return update  # type: ignore[return-value]

    async def close(self) -> None:
        return None

    def _apply(self, update: LiveUpdate) -> None:
        history = self._messages.setdefault(update.conv_id, [])
        if isinstance(update, NewMessage):
            if update.conv_id not in self._conversations:
                self._conversations[update.conv_id] = ConversationInfo(
                    conv_id=update.conv_id, name=update.conv_name or update.conv_id
                )
            history.append(update.message)
            history.sort(key=lambda m: m.msg_id)
        elif isinstance(update, MessageEdited):
            for index, message in enumerate(history):
                if message.msg_id == update.message.msg_id:
                    history[index] = replace(update.message, edited=True)
        elif isinstance(update, MessageDeleted):
            doomed = set(update.msg_ids)
            history[:] = [m for m in history if m.msg_id not in doomed]

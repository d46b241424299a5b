"""Application state owned by the reducer loop, and the snapshot handed to the renderer."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Tuple

from tui_chat.events import DEFAULT_PAGE_SIZE, Job, LoadMessagePage
from tui_chat.models import ConversationInfo, Message, MessageCache, PageCursor

logger = logging.getLogger(__name__)

MAX_RECENT_FAILURES = 20


@dataclass
class Conversation:
    conv_id: str
    name: str
    preview: str = ""
    cache: MessageCache = field(default_factory=MessageCache)
    cursor: PageCursor = field(default_factory=PageCursor)
    loading: bool = False
    error: Optional[str] = None
    stale: bool = False
    placeholder: bool = False
    unread: int = 0

    def refresh_preview(self) -> None:
        newest = self.cache.newest
        self.preview = newest.text if newest is not None else ""


@dataclass(frozen=True)
class ConversationView:
    conv_id: str
    name: str
    preview: str
    loading: bool
    error: Optional[str]
    unread: int
    placeholder: bool


@dataclass(frozen=True)
class RenderState:
    conversations: Tuple[ConversationView, ...]
    selected: Optional[int]
    messages: Tuple[Message, ...]
    history_exhausted: bool
    disconnected: bool
    disconnect_reason: Optional[str]
    last_error: Optional[str]
    width: int
    height: int
    has_focus: bool


class AppState:
    """Conversations in discovery order plus selection, pending jobs and status.

    Only the reducer mutates an instance. Lookups go through ``_index`` which
    maps a conversation id to its position in ``conversations``; entries are
    never removed during a session so positions stay valid.
    """

    def __init__(self, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.page_size = page_size
        self.conversations: List[Conversation] = []
        self._index: Dict[str, int] = {}
        self.selected: Optional[int] = None
        self.pending: Dict[Tuple[str, str], Job] = {}
        self.shutting_down = False
        self.suspend_requested = False
        self.fatal_error: Optional[str] = None
        self.disconnected = False
        self.disconnect_reason: Optional[str] = None
        self.anomalies = 0
        self.failures: Deque[str] = deque(maxlen=MAX_RECENT_FAILURES)
        self.width = 0
        self.height = 0
        self.has_focus = True

    def find(self, conv_id: str) -> Optional[Conversation]:
        index = self._index.get(conv_id)
        if index is None:
            return None
        return self.conversations[index]

    def index_of(self, conv_id: str) -> Optional[int]:
        return self._index.get(conv_id)

    def add_conversation(self, info: ConversationInfo) -> bool:
        """Append a discovered conversation; return ``False`` when already known.

        A placeholder synthesized from a live message is upgraded in place with
        the listed name and preview instead of being duplicated.
        """

        existing = self.find(info.conv_id)
        if existing is not None:
            if existing.placeholder:
                existing.name = info.name or existing.name
                if not existing.preview:
                    existing.preview = info.preview
                existing.placeholder = False
            return False
        self._append(Conversation(conv_id=info.conv_id, name=info.name, preview=info.preview))
        return True

    def ensure_conversation(self, conv_id: str, name: str = "") -> Conversation:
        existing = self.find(conv_id)
        if existing is not None:
            return existing
        logger.info("synthesizing placeholder for unknown conversation %s", conv_id)
        conversation = Conversation(conv_id=conv_id, name=name or conv_id, placeholder=True)
        self._append(conversation)
        return conversation

    def _append(self, conversation: Conversation) -> None:
        self._index[conversation.conv_id] = len(self.conversations)
        self.conversations.append(conversation)

    def selected_conversation(self) -> Optional[Conversation]:
        if self.selected is None:
            return None
        return self.conversations[self.selected]

    def select(self, index: int) -> Optional[Conversation]:
        if not self.conversations:
            self.selected = None
            return None
        self.selected = max(0, min(index, len(self.conversations) - 1))
        conversation = self.conversations[self.selected]
        conversation.unread = 0
        return conversation

    def move_selection(self, delta: int) -> Optional[Conversation]:
        if self.selected is None:
            return self.select(0)
        return self.select(self.selected + delta)

    def is_pending(self, job: Job) -> bool:
        return job.key in self.pending

    def begin_job(self, job: Job) -> bool:
        """Admit ``job`` unless one with the same target is already in flight."""

        if job.key in self.pending:
            return False
        self.pending[job.key] = job
        if isinstance(job, LoadMessagePage):
            conversation = self.find(job.conv_id)
            if conversation is not None:
                conversation.loading = True
        return True

    def finish_job(self, job: Job) -> None:
        self.pending.pop(job.key, None)
        if isinstance(job, LoadMessagePage):
            conversation = self.find(job.conv_id)
            if conversation is not None:
                conversation.loading = False

    def record_failure(self, text: str) -> None:
        self.failures.append(text)

    def record_anomaly(self, text: str) -> None:
        self.anomalies += 1
        logger.warning("anomaly #%d: %s", self.anomalies, text)

    @property
    def last_error(self) -> Optional[str]:
        return self.failures[-1] if self.failures else None

    def render(self) -> RenderState:
        selected = self.selected_conversation()
        return RenderState(
            conversations=tuple(
                ConversationView(
                    conv_id=conv.conv_id,
                    name=conv.name,
                    preview=conv.preview,
                    loading=conv.loading,
                    error=conv.error,
                    unread=conv.unread,
                    placeholder=conv.placeholder,
                )
                for conv in self.conversations
            ),
            selected=self.selected,
            messages=tuple(selected.cache) if selected is not None else (),
            history_exhausted=selected.cursor.exhausted if selected is not None else False,
            disconnected=self.disconnected,
            disconnect_reason=self.disconnect_reason,
            last_error=self.last_error,
            width=self.width,
            height=self.height,
            has_focus=self.has_focus,
        )

"""State transitions: one event in, state mutated, jobs out."""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple

from tui_chat.events import (
    ConversationDiscovered,
    Event,
    FocusGained,
    FocusLost,
    InputClosed,
    InputFailed,
    Job,
    JobFailed,
    KeyPressed,
    ListingCompleted,
    LiveMessageDeleted,
    LiveMessageEdited,
    LiveMessageNew,
    LoadConversations,
    LoadMessagePage,
    MessagePageItem,
    MouseInput,
    PageCompleted,
    Pasted,
    RenderTick,
    Resized,
    StreamEnded,
    Tick,
)
from tui_chat.models import CURSOR_PARTIAL, CURSOR_UNFETCHED
from tui_chat.state import AppState, Conversation

logger = logging.getLogger(__name__)

ACTION_DOWN = "down"
ACTION_UP = "up"
ACTION_FIRST = "first"
ACTION_LAST = "last"
ACTION_OLDER = "older"
ACTION_RETRY = "retry"
ACTION_RELIST = "relist"
ACTION_QUIT = "quit"
ACTION_SUSPEND = "suspend"

KEYMAP: Dict[Tuple[str, Optional[str]], str] = {
    ("DOWN", None): ACTION_DOWN,
    ("CHAR", "j"): ACTION_DOWN,
    ("UP", None): ACTION_UP,
    ("CHAR", "k"): ACTION_UP,
    ("HOME", None): ACTION_FIRST,
    ("END", None): ACTION_LAST,
    ("PAGE_UP", None): ACTION_OLDER,
    ("CHAR", "K"): ACTION_OLDER,
    ("CHAR", "r"): ACTION_RETRY,
    ("CHAR", "L"): ACTION_RELIST,
    ("CHAR", "q"): ACTION_QUIT,
    ("CTRL_C", None): ACTION_QUIT,
    ("CTRL_Z", None): ACTION_SUSPEND,
}


def action_for_key(key: str, char: Optional[str] = None) -> Optional[str]:
    return KEYMAP.get((key, char if key == "CHAR" else None))


def startup_jobs(state: AppState) -> List[Job]:
    """Jobs issued once when the session starts: the conversation listing."""

    return _submit(state, LoadConversations())


def take_suspend_request(state: AppState) -> bool:
    requested = state.suspend_requested
    state.suspend_requested = False
    return requested


def step(state: AppState, event: Event) -> List[Job]:
    """Apply one event to ``state`` and return the jobs it requests.

    Never raises and never blocks. Remote faults stay local to the affected
    conversation; only quit and fatal input faults end the session.
    """

    if isinstance(event, KeyPressed):
        return _on_key(state, event)
    if isinstance(event, (RenderTick, Tick, MouseInput, Pasted)):
        return []
    if isinstance(event, Resized):
        state.width, state.height = event.width, event.height
        return []
    if isinstance(event, FocusGained):
        state.has_focus = True
        return []
    if isinstance(event, FocusLost):
        state.has_focus = False
        return []
    if isinstance(event, InputFailed):
        logger.error("terminal input failed: %s", event.reason)
        state.fatal_error = event.reason
        state.shutting_down = True
        return []
    if isinstance(event, InputClosed):
        state.shutting_down = True
        return []

    if isinstance(event, ConversationDiscovered):
        state.add_conversation(event.conversation)
        return []
    if isinstance(event, ListingCompleted):
        state.finish_job(event.job)
        return []
    if isinstance(event, MessagePageItem):
        _on_page_item(state, event)
        return []
    if isinstance(event, PageCompleted):
        _on_page_completed(state, event)
        return []
    if isinstance(event, LiveMessageNew):
        _on_live_new(state, event)
        return []
    if isinstance(event, LiveMessageEdited):
        _on_live_edited(state, event)
        return []
    if isinstance(event, LiveMessageDeleted):
        _on_live_deleted(state, event)
        return []
    if isinstance(event, JobFailed):
        _on_job_failed(state, event)
        return []
    if isinstance(event, StreamEnded):
        _on_stream_ended(state, event)
        return []

    state.record_anomaly(f"unrecognised event {event!r}")
    return []


def _on_key(state: AppState, event: KeyPressed) -> List[Job]:
    action = action_for_key(event.key, event.char)
    if action is None:
        return []
    if action == ACTION_QUIT:
        state.shutting_down = True
        return []
    if action == ACTION_SUSPEND:
        state.suspend_requested = True
        return []
    if action == ACTION_DOWN:
        return _lazy_load(state, state.move_selection(1))
    if action == ACTION_UP:
        return _lazy_load(state, state.move_selection(-1))
    if action == ACTION_FIRST:
        return _lazy_load(state, state.select(0))
    if action == ACTION_LAST:
        return _lazy_load(state, state.select(len(state.conversations) - 1))
    if action == ACTION_OLDER:
        return _load_older(state, state.selected_conversation())
    if action == ACTION_RETRY:
        return _retry(state, state.selected_conversation())
    if action == ACTION_RELIST:
        if state.disconnected:
            return []
        return _submit(state, LoadConversations())
    return []


def _submit(state: AppState, job: Job) -> List[Job]:
    if not state.begin_job(job):
        logger.debug("job already in flight, ignoring %r", job)
        return []
    logger.debug("submitting %r", job)
    return [job]


def _page_job(state: AppState, conversation: Conversation) -> List[Job]:
    if state.disconnected:
        return []
    job = LoadMessagePage(
        conv_id=conversation.conv_id,
        before_id=conversation.cursor.before_id,
        limit=state.page_size,
    )
    return _submit(state, job)


def _lazy_load(state: AppState, conversation: Optional[Conversation]) -> List[Job]:
    # History is fetched only for the conversation the user lands on.
    if conversation is None or conversation.cursor.status != CURSOR_UNFETCHED:
        return []
    return _page_job(state, conversation)


def _load_older(state: AppState, conversation: Optional[Conversation]) -> List[Job]:
    if conversation is None:
        return []
    if conversation.cursor.status == CURSOR_UNFETCHED:
        return _lazy_load(state, conversation)
    if conversation.cursor.status != CURSOR_PARTIAL:
        return []
    return _page_job(state, conversation)


def _retry(state: AppState, conversation: Optional[Conversation]) -> List[Job]:
    if conversation is None or state.disconnected:
        return []
    conversation.error = None
    if conversation.cursor.exhausted:
        return []
    return _page_job(state, conversation)


def _on_page_item(state: AppState, event: MessagePageItem) -> None:
    conversation = state.find(event.conv_id)
    if conversation is None:
        state.record_anomaly(f"page item for unknown conversation {event.conv_id}")
        return
    if conversation.cache.insert(event.message) and conversation.cache.newest == event.message:
        conversation.preview = event.message.text


def _on_page_completed(state: AppState, event: PageCompleted) -> None:
    state.finish_job(event.job)
    conversation = state.find(event.job.conv_id)
    if conversation is None:
        state.record_anomaly(f"page completed for unknown conversation {event.job.conv_id}")
        return
    conversation.cursor = conversation.cursor.advance(event.received, event.oldest_id, event.job.limit)
    conversation.error = None
    conversation.stale = False


def _on_live_new(state: AppState, event: LiveMessageNew) -> None:
    conversation = state.ensure_conversation(event.conv_id, event.conv_name)
    if not conversation.cache.insert(event.message):
        return
    if conversation.cache.newest == event.message:
        conversation.preview = event.message.text
    if state.selected_conversation() is not conversation:
        conversation.unread += 1


def _on_live_edited(state: AppState, event: LiveMessageEdited) -> None:
    conversation = state.find(event.conv_id)
    if conversation is None:
        state.record_anomaly(f"edit for unknown conversation {event.conv_id}")
        return
    if not conversation.cache.replace(event.message):
        # Edits of messages outside the cached window are expected.
        logger.debug("edit of uncached message %s in %s", event.message.msg_id, event.conv_id)
        return
    newest = conversation.cache.newest
    if newest is not None and newest.msg_id == event.message.msg_id:
        conversation.preview = newest.text


def _on_live_deleted(state: AppState, event: LiveMessageDeleted) -> None:
    conversation = state.find(event.conv_id)
    if conversation is None:
        state.record_anomaly(f"deletion for unknown conversation {event.conv_id}")
        return
    if conversation.cache.remove(event.msg_ids):
        conversation.refresh_preview()


def _on_job_failed(state: AppState, event: JobFailed) -> None:
    state.finish_job(event.job)
    logger.warning("job %r failed: %s", event.job, event.reason)
    if isinstance(event.job, LoadMessagePage):
        conversation = state.find(event.job.conv_id)
        if conversation is not None:
            conversation.error = event.reason
            conversation.stale = True
            state.record_failure(f"{conversation.name}: {event.reason}")
            return
    state.record_failure(event.reason)


def _on_stream_ended(state: AppState, event: StreamEnded) -> None:
    state.disconnected = True
    state.disconnect_reason = event.reason
    logger.warning("live updates ended: %s", event.reason or "end of stream")
    state.record_failure(f"disconnected: {event.reason}" if event.reason else "disconnected")

"""Background fetch jobs and the live-update pump.

Both run as asyncio tasks that talk to the reducer only through the shared
remote-event queue; neither touches application state.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from tui_chat.events import (
    ConversationDiscovered,
    Job,
    JobFailed,
    ListingCompleted,
    LiveMessageDeleted,
    LiveMessageEdited,
    LiveMessageNew,
    LoadConversations,
    LoadMessagePage,
    MessagePageItem,
    PageCompleted,
    RemoteEvent,
    StreamEnded,
)
from tui_chat.remote import MessageDeleted, MessageEdited, NewMessage, RemoteClient

logger = logging.getLogger(__name__)


class JobDispatcher:
    """Runs each accepted job as its own task against the remote client.

    At most one job per target (the conversation list, or one conversation's
    message history) is active at a time; a duplicate submission is refused.
    A page is consumed sequentially so items reach the queue in fetch order.
    """

    def __init__(self, client: RemoteClient, results: "asyncio.Queue[RemoteEvent]") -> None:
        self._client = client
        self._results = results
        self._active: Dict[Tuple[str, str], Tuple[Job, asyncio.Task[None]]] = {}

    @property
    def active_jobs(self) -> List[Job]:
        return [job for job, _ in self._active.values()]

    def is_active(self, job: Job) -> bool:
        return job.key in self._active

    def submit(self, job: Job) -> bool:
        """Start ``job`` without waiting for it; return ``False`` if refused."""

        if job.key in self._active:
            logger.debug("refusing duplicate job %r", job)
            return False
        task = asyncio.get_running_loop().create_task(self._run(job), name=f"job-{job.key[0]}-{job.key[1]}")
        self._active[job.key] = (job, task)
        return True

    async def _run(self, job: Job) -> None:
        try:
            if isinstance(job, LoadConversations):
                await self._load_conversations(job)
            else:
                await self._load_page(job)
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.warning("job %r failed: %s", job, reason)
            self._emit(JobFailed(job=job, reason=reason))
        finally:
            # Released before the task yields again, so a resubmission made
            # while handling the completion event is admitted.
            entry = self._active.get(job.key)
            if entry is not None and entry[1] is asyncio.current_task():
                del self._active[job.key]

    async def _load_conversations(self, job: LoadConversations) -> None:
        async for info in self._client.list_conversations():
            self._emit(ConversationDiscovered(conversation=info))
        self._emit(ListingCompleted(job=job))

    async def _load_page(self, job: LoadMessagePage) -> None:
        received = 0
        oldest_id: Optional[int] = None
        async for message in self._client.list_messages(job.conv_id, job.limit, job.before_id):
            received += 1
            if oldest_id is None or message.msg_id < oldest_id:
                oldest_id = message.msg_id
            self._emit(MessagePageItem(conv_id=job.conv_id, message=message))
        self._emit(PageCompleted(job=job, received=received, oldest_id=oldest_id))

    def _emit(self, event: RemoteEvent) -> None:
        self._results.put_nowait(event)

    async def wait_idle(self) -> None:
        while self._active:
            await asyncio.gather(*[task for _, task in self._active.values()], return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel whatever is still running; in-flight results are discarded."""

        tasks = [task for _, task in self._active.values()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._active.clear()


def _to_event(update: object) -> Optional[RemoteEvent]:
    if isinstance(update, NewMessage):
        return LiveMessageNew(conv_id=update.conv_id, message=update.message, conv_name=update.conv_name)
    if isinstance(update, MessageEdited):
        return LiveMessageEdited(conv_id=update.conv_id, message=update.message)
    if isinstance(update, MessageDeleted):
        return LiveMessageDeleted(conv_id=update.conv_id, msg_ids=tuple(update.msg_ids))
    return None


async def pump_live_updates(client: RemoteClient, results: "asyncio.Queue[RemoteEvent]") -> None:
    """Forward live updates in service order until the stream ends or fails."""

    while True:
        try:
            update = await client.next_live_update()
        except Exception as exc:
            reason = str(exc) or exc.__class__.__name__
            logger.warning("live update stream failed: %s", reason)
            results.put_nowait(StreamEnded(reason=reason))
            return
        if update is None:
            results.put_nowait(StreamEnded())
            return
        event = _to_event(update)
        if event is None:
            logger.debug("ignoring live update %r", update)
            continue
        results.put_nowait(event)

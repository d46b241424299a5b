"""The event loop: merge input and remote events, step the state, draw on render ticks."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Callable, Deque, Optional, Protocol

from tui_chat.dispatcher import JobDispatcher, pump_live_updates
from tui_chat.events import DEFAULT_PAGE_SIZE, Event, InputEvent, Job, RemoteEvent, RenderTick
from tui_chat.reducer import startup_jobs, step, take_suspend_request
from tui_chat.remote import RemoteClient
from tui_chat.state import AppState, RenderState

logger = logging.getLogger(__name__)


class InputSource(Protocol):
    def start(self, queue: "asyncio.Queue[InputEvent]") -> None:
        ...

    async def stop(self) -> None:
        ...


class Renderer(Protocol):
    def draw(self, render: RenderState) -> None:
        ...


class ChatApp:
    """Single consumer of the input and remote queues and sole mutator of state.

    Each source keeps at most one outstanding ``get`` so its events are taken
    in FIFO order; the two sources interleave in whatever order they become
    ready. The loop never awaits inside :func:`step`.
    """

    def __init__(
        self,
        client: RemoteClient,
        input_source: InputSource,
        renderer: Renderer,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        on_suspend: Optional[Callable[[], None]] = None,
    ) -> None:
        self.client = client
        self.input_source = input_source
        self.renderer = renderer
        self.on_suspend = on_suspend
        self.state = AppState(page_size=page_size)
        self.input_events: asyncio.Queue[InputEvent] = asyncio.Queue()
        self.remote_events: asyncio.Queue[RemoteEvent] = asyncio.Queue()
        self.dispatcher = JobDispatcher(client, self.remote_events)
        self._ready: Deque[Event] = deque()
        self._input_get: Optional[asyncio.Task[InputEvent]] = None
        self._remote_get: Optional[asyncio.Task[RemoteEvent]] = None

    async def next_event(self) -> Event:
        while not self._ready:
            if self._input_get is None:
                self._input_get = asyncio.ensure_future(self.input_events.get())
            if self._remote_get is None:
                self._remote_get = asyncio.ensure_future(self.remote_events.get())
            done, _ = await asyncio.wait(
                {self._input_get, self._remote_get},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if self._input_get in done:
                self._ready.append(self._input_get.result())
                self._input_get = None
            if self._remote_get in done:
                self._ready.append(self._remote_get.result())
                self._remote_get = None
        return self._ready.popleft()

    def handle(self, event: Event) -> None:
        for job in step(self.state, event):
            self._submit(job)
        if isinstance(event, RenderTick):
            self.renderer.draw(self.state.render())
        if take_suspend_request(self.state) and self.on_suspend is not None:
            self.on_suspend()

    def _submit(self, job: Job) -> None:
        if not self.dispatcher.submit(job):
            logger.warning("dispatcher refused %r admitted by state", job)
            self.state.finish_job(job)

    async def run(self) -> int:
        """Run until quit or a fatal input fault; return the process exit status."""

        self.input_source.start(self.input_events)
        live_task = asyncio.ensure_future(pump_live_updates(self.client, self.remote_events))
        try:
            for job in startup_jobs(self.state):
                self._submit(job)
            while not self.state.shutting_down:
                self.handle(await self.next_event())
        finally:
            await self._shutdown(live_task)
        if self.state.fatal_error is not None:
            logger.error("exiting after fatal input error: %s", self.state.fatal_error)
            return 1
        return 0

    async def _shutdown(self, live_task: "asyncio.Future[None]") -> None:
        pending = [task for task in (self._input_get, self._remote_get) if task is not None]
        pending.append(live_task)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._input_get = None
        self._remote_get = None
        await self.dispatcher.shutdown()
        await self.input_source.stop()

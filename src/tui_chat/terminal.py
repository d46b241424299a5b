"""Curses terminal mode, key decoding and the terminal input source."""

from __future__ import annotations

import asyncio
import curses
import logging
import os
import re
import shutil
import signal
import sys
from typing import Callable, List, Optional, Tuple

from tui_chat.events import (
    FocusGained,
    FocusLost,
    InputClosed,
    InputEvent,
    InputFailed,
    KeyPressed,
    MouseInput,
    Pasted,
    RenderTick,
    Resized,
    Tick,
)

logger = logging.getLogger(__name__)

PASTE_ON = "\x1b[?2004h"
PASTE_OFF = "\x1b[?2004l"
FOCUS_ON = "\x1b[?1004h"
FOCUS_OFF = "\x1b[?1004l"
PASTE_START = "[200~"
PASTE_END = "\x1b[201~"

EOF_EMPTY_WAKEUPS = 3

_RE_BRACKETED_PASTE = re.compile(r"\x1b\[(?:\?2004[hl]|200~|201~)")


def normalize_key(key: int) -> Tuple[str, Optional[str]]:
    if key in (curses.KEY_UP,):
        return "UP", None
    if key in (curses.KEY_DOWN,):
        return "DOWN", None
    if key in (curses.KEY_LEFT,):
        return "LEFT", None
    if key in (curses.KEY_RIGHT,):
        return "RIGHT", None
    if key in (curses.KEY_HOME,):
        return "HOME", None
    if key in (curses.KEY_END,):
        return "END", None
    if key in (curses.KEY_PPAGE,):
        return "PAGE_UP", None
    if key in (curses.KEY_NPAGE,):
        return "PAGE_DOWN", None
    if key in (curses.KEY_BTAB, 353):  # shift-tab variations
        return "SHIFT_TAB", None
    if key == 9:
        return "TAB", None
    if key in (curses.KEY_ENTER, 10, 13):
        return "ENTER", None
    if key in (curses.KEY_BACKSPACE, 127, 8):
        return "BACKSPACE", None
    if key == 3:  # ctrl-c arrives as a key in raw mode
        return "CTRL_C", None
    if key == 26:  # ctrl-z
        return "CTRL_Z", None
    if key == 27:
        return "ESC", None
    if 32 <= key <= 126:
        return "CHAR", chr(key)
    return "UNKNOWN", None


def sanitize_paste(raw: str) -> str:
    """Strip bracketed-paste markers and carriage returns from pasted text."""

    if not raw:
        return ""
    raw = raw.replace("\x1b[200~", "").replace("\x1b[201~", "")
    raw = _RE_BRACKETED_PASTE.sub("", raw)
    return raw.replace("\r", "")


def _keys(text: str) -> List[InputEvent]:
    events: List[InputEvent] = []
    for index, ch in enumerate(text):
        if ch == "\x1b":
            return events + decode_escape([ord(c) for c in text[index + 1 :]])
        name, char = normalize_key(ord(ch))
        if name != "UNKNOWN":
            events.append(KeyPressed(key=name, char=char))
    return events


def decode_escape(pending: List[int]) -> List[InputEvent]:
    """Decode the bytes read right after an ESC.

    Recognises focus reports and bracketed paste; anything else is a plain ESC
    followed by the remaining keys.
    """

    text = "".join(chr(code) for code in pending if 0 <= code < 256)
    if not text:
        return [KeyPressed(key="ESC")]
    if text.startswith("[I"):
        return [FocusGained()] + _keys(text[2:])
    if text.startswith("[O"):
        return [FocusLost()] + _keys(text[2:])
    if text.startswith(PASTE_START):
        body, _, rest = text[len(PASTE_START) :].partition(PASTE_END)
        return [Pasted(text=sanitize_paste(body))] + _keys(rest)
    return [KeyPressed(key="ESC")] + _keys(text)


def _drain_pending_input(stdscr: "curses.window", limit: int = 8192) -> List[int]:
    """Read any immediately-available pending input codes (window is in nodelay mode)."""

    pending: List[int] = []
    while len(pending) < limit:
        nxt = stdscr.getch()
        if nxt == -1:
            break
        pending.append(nxt)
    return pending


def _init_default_colors() -> None:
    """Let -1 mean the terminal's own foreground/background colours."""

    if not curses.has_colors():
        return
    try:
        curses.start_color()
        curses.use_default_colors()
    except curses.error:
        pass


class TerminalSession:
    """Scoped curses terminal mode.

    Entering switches to raw mode on the alternate screen with optional mouse
    capture, bracketed paste and focus reporting; leaving undoes all of it.
    Use as a context manager so every exit path restores the terminal.
    """

    def __init__(self, *, mouse: bool = True, paste: bool = True) -> None:
        self.mouse = mouse
        self.paste = paste
        self.stdscr: Optional["curses.window"] = None
        self._active = False

    def __enter__(self) -> "TerminalSession":
        self.enter()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.exit()

    @property
    def active(self) -> bool:
        return self._active

    def _write(self, sequence: str) -> None:
        stream = sys.__stdout__
        if stream is None:
            return
        stream.write(sequence)
        stream.flush()

    def enter(self) -> "curses.window":
        if self.stdscr is None:
            self.stdscr = curses.initscr()
        self._active = True
        try:
            self._apply_modes()
            _init_default_colors()
        except BaseException:
            self.exit()
            raise
        return self.stdscr

    def _apply_modes(self) -> None:
        if self.stdscr is None:
            raise RuntimeError("terminal session is not active")
        curses.noecho()
        curses.raw()
        self.stdscr.keypad(True)
        self.stdscr.nodelay(True)
        try:
            curses.curs_set(0)
        except curses.error:
            pass
        if self.mouse:
            curses.mousemask(curses.ALL_MOUSE_EVENTS | curses.REPORT_MOUSE_POSITION)
        if self.paste:
            self._write(PASTE_ON + FOCUS_ON)
        self.stdscr.refresh()

    def exit(self) -> None:
        if not self._active or self.stdscr is None:
            return
        self._active = False
        try:
            if self.paste:
                self._write(FOCUS_OFF + PASTE_OFF)
            if self.mouse:
                curses.mousemask(0)
            self.stdscr.keypad(False)
            curses.noraw()
            curses.echo()
            try:
                curses.curs_set(1)
            except curses.error:
                pass
        finally:
            curses.endwin()

    def suspend(self) -> None:
        """Restore the terminal, stop the process, and resume once continued."""

        self.exit()
        os.kill(os.getpid(), signal.SIGTSTP)
        self._active = True
        self._apply_modes()

    def size(self) -> Tuple[int, int]:
        if self.stdscr is None:
            return 0, 0
        height, width = self.stdscr.getmaxyx()
        return width, height


async def _ticker(queue: "asyncio.Queue[InputEvent]", interval_s: float, factory: Callable[[], InputEvent]) -> None:
    while True:
        await asyncio.sleep(interval_s)
        queue.put_nowait(factory())


class TerminalInput:
    """Turns terminal activity into input events on one queue.

    Keys are read on the event-loop thread whenever stdin becomes readable,
    so curses is never touched from two threads. Window size changes arrive
    via SIGWINCH; housekeeping and render ticks come from two fixed-rate timers.
    """

    def __init__(self, session: TerminalSession, *, tick_s: float = 1.0, render_hz: float = 20.0) -> None:
        self.session = session
        self.tick_s = tick_s
        self.render_interval_s = 1.0 / render_hz
        self._queue: Optional["asyncio.Queue[InputEvent]"] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._timers: List["asyncio.Task[None]"] = []
        self._fd: Optional[int] = None
        self._failed = False
        self._closed = False
        self._empty_wakeups = 0

    def start(self, queue: "asyncio.Queue[InputEvent]") -> None:
        self._queue = queue
        self._loop = asyncio.get_running_loop()
        self._fd = sys.stdin.fileno()
        self._loop.add_reader(self._fd, self._on_readable)
        self._loop.add_signal_handler(signal.SIGWINCH, self._on_resize)
        self._loop.add_signal_handler(signal.SIGTERM, self._post, InputClosed())
        self._loop.add_signal_handler(signal.SIGHUP, self._post, InputClosed())
        self._timers = [
            self._loop.create_task(_ticker(queue, self.tick_s, Tick), name="tick"),
            self._loop.create_task(_ticker(queue, self.render_interval_s, RenderTick), name="render-tick"),
        ]
        width, height = self.session.size()
        queue.put_nowait(Resized(width=width, height=height))

    async def stop(self) -> None:
        if self._loop is not None:
            if self._fd is not None:
                self._loop.remove_reader(self._fd)
            for sig in (signal.SIGWINCH, signal.SIGTERM, signal.SIGHUP):
                self._loop.remove_signal_handler(sig)
        for timer in self._timers:
            timer.cancel()
        if self._timers:
            await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers = []

    def _post(self, event: InputEvent) -> None:
        if self._queue is not None:
            self._queue.put_nowait(event)

    def _fail(self, reason: str) -> None:
        if self._failed:
            return
        self._failed = True
        logger.error("terminal read failed: %s", reason)
        if self._loop is not None and self._fd is not None:
            self._loop.remove_reader(self._fd)
        self._post(InputFailed(reason=reason))

    def _on_resize(self) -> None:
        size = shutil.get_terminal_size()
        try:
            curses.resizeterm(size.lines, size.columns)
        except curses.error as exc:
            logger.debug("resizeterm failed: %s", exc)
        self._post(Resized(width=size.columns, height=size.lines))

    def _on_readable(self) -> None:
        stdscr = self.session.stdscr
        if stdscr is None or not self.session.active or self._closed:
            return
        read = 0
        try:
            while True:
                code = stdscr.getch()
                if code == -1:
                    break
                read += 1
                for event in self._decode(stdscr, code):
                    self._post(event)
        except (curses.error, OSError) as exc:
            self._fail(str(exc) or exc.__class__.__name__)
            return
        # At end of file stdin stays readable while getch() keeps returning -1.
        if read:
            self._empty_wakeups = 0
            return
        self._empty_wakeups += 1
        if self._empty_wakeups >= EOF_EMPTY_WAKEUPS:
            self._close()

    def _close(self) -> None:
        self._closed = True
        logger.info("terminal input reached end of file")
        if self._loop is not None and self._fd is not None:
            self._loop.remove_reader(self._fd)
        self._post(InputClosed())

    def _decode(self, stdscr: "curses.window", code: int) -> List[InputEvent]:
        if code == curses.KEY_RESIZE:
            height, width = stdscr.getmaxyx()
            return [Resized(width=width, height=height)]
        if code == curses.KEY_MOUSE:
            try:
                _, x, y, _, buttons = curses.getmouse()
            except curses.error:
                return []
            return [MouseInput(x=x, y=y, buttons=buttons)]
        if code == 27:
            return decode_escape(_drain_pending_input(stdscr))
        name, char = normalize_key(code)
        if name == "UNKNOWN":
            return []
        return [KeyPressed(key=name, char=char)]

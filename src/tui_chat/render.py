"""Curses renderer for the conversation list, the active conversation and a status bar."""

from __future__ import annotations

import curses
import time
from typing import Iterable, List, Sequence

from tui_chat import __version__
from tui_chat.models import Message
from tui_chat.state import ConversationView, RenderState

PRODUCT_NAME = "tui-chat"


def _render_text(window: curses.window, y: int, x: int, text: str, attr: int = 0) -> None:
    max_y, max_x = window.getmaxyx()
    if 0 <= y < max_y and x < max_x - 1:
        window.addnstr(y, x, text, max_x - x - 1, attr)


def format_conversation(view: ConversationView, selected: bool) -> str:
    marker = "*" if selected else " "
    flags = ""
    if view.loading:
        flags += " …"
    if view.error:
        flags += " !"
    if view.unread:
        flags += f" ({view.unread})"
    preview = view.preview.replace("\n", " ")
    return f"{marker}[{view.name}]{flags}: {preview}"


def format_message(message: Message) -> str:
    stamp = time.strftime("%H:%M", time.localtime(message.ts)) if message.ts else "--:--"
    sender = "me" if message.outgoing else message.sender
    suffix = " (edited)" if message.edited else ""
    text = message.text.replace("\n", " ")
    return f"{stamp} {sender}: {text}{suffix}"


def visible_messages(messages: Sequence[Message], height: int) -> List[Message]:
    """Newest messages that fit, oldest-first, so the list reads bottom-up."""

    if height <= 0:
        return []
    return list(messages[-height:])


def status_line(render: RenderState) -> str:
    parts = [f"{PRODUCT_NAME} v{__version__}"]
    if render.disconnected:
        reason = f" ({render.disconnect_reason})" if render.disconnect_reason else ""
        parts.append(f"disconnected{reason}")
    else:
        parts.append("connected")
    if render.selected is not None and render.history_exhausted:
        parts.append("start of history")
    if render.last_error:
        parts.append(f"error: {render.last_error}")
    parts.append("j/k: select  K: older  r: retry  L: relist  q: quit")
    return " | ".join(parts)


def _conversation_window(views: Sequence[ConversationView], selected: int | None, height: int) -> Iterable[int]:
    if height <= 0 or not views:
        return range(0)
    anchor = selected or 0
    start = max(0, min(anchor - height // 2, len(views) - height))
    return range(start, min(len(views), start + height))


class CursesRenderer:
    """Draws a :class:`RenderState` onto a curses window. Never mutates state."""

    def __init__(self, window: curses.window) -> None:
        self.window = window

    def draw(self, render: RenderState) -> None:
        window = self.window
        window.erase()
        max_y, max_x = window.getmaxyx()
        if max_y < 3 or max_x < 10:
            window.refresh()
            return
        left_width = min(40, max(16, max_x // 3), max_x - 2)
        body_height = max_y - 2
        separator = getattr(curses, "ACS_VLINE", ord("|"))
        window.vline(0, left_width, separator, body_height)
        window.hline(body_height, 0, getattr(curses, "ACS_HLINE", ord("-")), max_x)

        for row, index in enumerate(_conversation_window(render.conversations, render.selected, body_height)):
            is_selected = index == render.selected
            attr = curses.A_REVERSE if is_selected else 0
            text = format_conversation(render.conversations[index], is_selected)
            _render_text(window, row, 0, text[:left_width - 1], attr)

        right_x = left_width + 2
        lines = visible_messages(render.messages, body_height)
        first_row = body_height - len(lines)
        for offset, message in enumerate(lines):
            _render_text(window, first_row + offset, right_x, format_message(message))
        if render.selected is None and not render.conversations:
            _render_text(window, 0, right_x, "Loading conversations…")

        _render_text(window, max_y - 1, 0, status_line(render), curses.A_BOLD)
        window.refresh()

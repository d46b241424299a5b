from __future__ import annotations

from tui_chat.models import Message


def msg(msg_id: int, text: str = "", sender: str = "alice", ts: float | None = None) -> Message:
    return Message(
        msg_id=msg_id,
        sender=sender,
        text=text or f"m{msg_id}",
        ts=float(msg_id) if ts is None else ts,
    )

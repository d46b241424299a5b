"""Offline demo: an in-memory service with a few seeded conversations and live chatter."""

from __future__ import annotations

import asyncio
import itertools
import random
import time
from typing import Dict, List

from tui_chat.models import Message
from tui_chat.remote import InMemoryRemoteClient, MessageEdited, NewMessage

DEMO_CONVERSATIONS = {
    "c-alice": "Alice",
    "c-bob": "Bob",
    "c-team": "Team chat",
    "c-news": "Release notes",
}

_LINES = [
    "morning!",
    "did the build go green?",
    "pushed a fix for the flaky test",
    "lunch?",
    "reviewing now",
    "looks good to me",
    "can you take another look at the migration",
    "shipping it",
]


def build_demo_client(history: int = 75, latency_s: float = 0.02, seed: int = 1337) -> InMemoryRemoteClient:
    rng = random.Random(seed)
    client = InMemoryRemoteClient(latency_s=latency_s)
    now = time.time()
    for conv_id, name in DEMO_CONVERSATIONS.items():
        messages: List[Message] = []
        for msg_id in range(1, history + 1):
            outgoing = rng.random() < 0.4
            messages.append(
                Message(
                    msg_id=msg_id,
                    sender="me" if outgoing else name,
                    text=f"{rng.choice(_LINES)} (#{msg_id})",
                    ts=now - (history - msg_id) * 90,
                    outgoing=outgoing,
                )
            )
        client.add_conversation(conv_id, name, messages)
    return client


async def run_chatter(client: InMemoryRemoteClient, interval_s: float = 3.0, seed: int = 7) -> None:
    """Push a live message (and now and then an edit) every ``interval_s`` seconds."""

    rng = random.Random(seed)
    next_ids: Dict[str, itertools.count] = {}
    conv_ids = list(DEMO_CONVERSATIONS) + ["c-stranger"]
    while True:
        await asyncio.sleep(interval_s)
        conv_id = rng.choice(conv_ids)
        counter = next_ids.setdefault(conv_id, itertools.count(10_000))
        msg_id = next(counter)
        name = DEMO_CONVERSATIONS.get(conv_id, "Unknown sender")
        message = Message(msg_id=msg_id, sender=name, text=rng.choice(_LINES), ts=time.time())
        client.push_update(NewMessage(conv_id=conv_id, message=message, conv_name=name))
        if rng.random() < 0.2:
            await asyncio.sleep(interval_s / 3)
            fixed = Message(msg_id=msg_id, sender=name, text=f"{message.text} (fixed typo)", ts=message.ts)
            client.push_update(MessageEdited(conv_id=conv_id, message=fixed))

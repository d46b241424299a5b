"""Jobs and the two closed event families consumed by the reducer.

Input events come from the terminal; remote events come from the job
dispatcher and the live-update pump. Every variant is a frozen dataclass so
events can cross thread and task boundaries without copying.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from tui_chat.models import ConversationInfo, Message

DEFAULT_PAGE_SIZE = 30


# Jobs


@dataclass(frozen=True)
class LoadConversations:
    @property
    def conv_id(self) -> Optional[str]:
        return None

    @property
    def key(self) -> Tuple[str, str]:
        return ("conversations", "")


@dataclass(frozen=True)
class LoadMessagePage:
    conv_id: str
    before_id: Optional[int] = None
    limit: int = DEFAULT_PAGE_SIZE

    @property
    def key(self) -> Tuple[str, str]:
        return ("messages", self.conv_id)


Job = Union[LoadConversations, LoadMessagePage]


# Input events


@dataclass(frozen=True)
class KeyPressed:
    key: str
    char: Optional[str] = None


@dataclass(frozen=True)
class MouseInput:
    x: int
    y: int
    buttons: int


@dataclass(frozen=True)
class Resized:
    width: int
    height: int


@dataclass(frozen=True)
class FocusGained:
    pass


@dataclass(frozen=True)
class FocusLost:
    pass


@dataclass(frozen=True)
class Pasted:
    text: str


@dataclass(frozen=True)
class Tick:
    pass


@dataclass(frozen=True)
class RenderTick:
    pass


@dataclass(frozen=True)
class InputFailed:
    """The terminal could not be read; the loop shuts down."""

    reason: str


@dataclass(frozen=True)
class InputClosed:
    pass


InputEvent = Union[
    KeyPressed,
    MouseInput,
    Resized,
    FocusGained,
    FocusLost,
    Pasted,
    Tick,
    RenderTick,
    InputFailed,
    InputClosed,
]


# Remote events


@dataclass(frozen=True)
class ConversationDiscovered:
    conversation: ConversationInfo


@dataclass(frozen=True)
class ListingCompleted:
    job: LoadConversations


@dataclass(frozen=True)
class MessagePageItem:
    conv_id: str
    message: Message


@dataclass(frozen=True)
class PageCompleted:
    job: LoadMessagePage
    received: int
    oldest_id: Optional[int]


@dataclass(frozen=True)
class LiveMessageNew:
    conv_id: str
    message: Message
    conv_name: str = ""


@dataclass(frozen=True)
class LiveMessageEdited:
    conv_id: str
    message: Message


@dataclass(frozen=True)
class LiveMessageDeleted:
    conv_id: str
    msg_ids: Tuple[int, ...]


@dataclass(frozen=True)
class JobFailed:
    job: Job
    reason: str


@dataclass(frozen=True)
class StreamEnded:
    """The live-update subscription finished; ``reason`` is set when it failed."""

    reason: Optional[str] = None


RemoteEvent = Union[
    ConversationDiscovered,
    ListingCompleted,
    MessagePageItem,
    PageCompleted,
    LiveMessageNew,
    LiveMessageEdited,
    LiveMessageDeleted,
    JobFailed,
    StreamEnded,
]

Event = Union[InputEvent, RemoteEvent]

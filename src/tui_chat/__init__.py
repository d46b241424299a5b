"""Terminal chat client: event-merge loop, background fetch jobs and per-conversation caches."""

__version__ = "0.1.0"

from .events import LoadConversations, LoadMessagePage
from .models import ConversationInfo, Message, MessageCache, PageCursor
from .reducer import startup_jobs, step
from .state import AppState, Conversation, RenderState

__all__ = [
    "__version__",
    "AppState",
    "Conversation",
    "ConversationInfo",
    "LoadConversations",
    "LoadMessagePage",
    "Message",
    "MessageCache",
    "PageCursor",
    "RenderState",
    "startup_jobs",
    "step",
]

"""Presentation boundary used by the chat client and session controller."""

import html
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional, Protocol, Sequence

from ..domain.models import Conversation, Role

Renderer = Callable[[str], str]


class Presenter(Protocol):
    """What the core needs from a view."""

    def clear(self) -> None: ...

    def show_message(self, role: Role, markup: str) -> None: ...

    def show_pending(self) -> None: ...

    def hide_pending(self) -> None: ...

    def open_assistant(self) -> None: ...

    def replace_assistant(self, markup: str) -> None: ...

    def scroll_to_bottom(self) -> None: ...

    def set_input_enabled(self, enabled: bool) -> None: ...

    def show_conversations(self, items: Sequence["ConversationItem"], active_id: Optional[str]) -> None: ...


@dataclass
class ConversationItem:
    """Sidebar entry for one conversation."""

    id: str
    title: str
    relative_time: str


def default_render(text: str) -> str:
    """Plain renderer that only escapes markup."""
    return html.escape(text)


def format_user_content(text: str) -> str:
    """User input is escaped and its newlines turned into ``<br>``."""
    return html.escape(text).replace("\n", "<br>")


def _ago(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'} ago"


def relative_time(created_at: datetime, now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    seconds = int((now - created_at).total_seconds())
    minutes, hours, days = seconds // 60, seconds // 3600, seconds // 86400
    if days > 0:
        return _ago(days, "day")
    if hours > 0:
        return _ago(hours, "hour")
    if minutes > 0:
        return _ago(minutes, "minute")
    return "just now"


def conversation_items(
    conversations: List[Conversation], now: Optional[datetime] = None
) -> List[ConversationItem]:
    return [
        ConversationItem(c.id, c.title, relative_time(c.created_at, now))
        for c in conversations
    ]

"""Domain models for the chat client."""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

SENTINEL_TITLE = "New chat"
GREETING = "Welcome! Type your question below to get started."
TITLE_LIMIT = 30
SCHEMA_VERSION = 1


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Opaque identifier for conversations and requests."""
    return uuid4().hex


class Role(str, Enum):
    """Message author. ``system`` is shown but never persisted."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Message(BaseModel):
    """Message model."""

    role: Role
    content: str


class Conversation(BaseModel):
    """Conversation model, serialized with the camelCase ``createdAt`` key."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_id)
    title: str = SENTINEL_TITLE
    messages: List[Message] = []
    created_at: datetime = Field(default_factory=_now, alias="createdAt")

    @field_validator("created_at")
    @classmethod
    def assume_utc(cls, value: datetime) -> datetime:
        """Naive timestamps are read as UTC."""
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def first_user_message(self) -> Optional[Message]:
        return next((m for m in self.messages if m.role == Role.USER), None)

    def user_message_count(self) -> int:
        return sum(1 for m in self.messages if m.role == Role.USER)


class LedgerDocument(BaseModel):
    """Versioned envelope stored under the ``conversations`` key."""

    schema_version: int = SCHEMA_VERSION
    conversations: Dict[str, Conversation] = {}


def derive_title(content: str) -> str:
    """First TITLE_LIMIT characters, with an ellipsis if anything was cut."""
    title = content[:TITLE_LIMIT]
    if len(content) > TITLE_LIMIT:
        title += "..."
    return title

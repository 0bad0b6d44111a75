"""Conversation ledger backed by a key/value storage."""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

import structlog
from pydantic import ValidationError

from ..domain.models import (
    SCHEMA_VERSION,
    SENTINEL_TITLE,
    Conversation,
    LedgerDocument,
    Message,
    Role,
    derive_title,
)
from ..metrics import PERSIST_FAILURES
from ..repositories.base import Storage, StorageError

logger = structlog.get_logger()

CONVERSATIONS_KEY = "conversations"
ACTIVE_KEY = "lastActiveConversation"


class ConversationNotFound(ValueError):
    """Raised when an operation targets an unknown conversation."""


@dataclass
class PersistOutcome:
    """Result of flushing the ledger to storage."""

    ok: bool
    error: Optional[str] = None


@dataclass
class LoadOutcome:
    """Result of restoring the ledger at startup.

    ``status`` is one of ``empty``, ``loaded``, ``migrated``, ``corrupt``,
    ``unsupported_version`` or ``unreadable``.
    """

    status: str
    conversations: int = 0
    error: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationLedger:
    """Single source of truth for conversations and the active pointer.

    Every mutation rewrites the whole serialized ledger. Write failures are
    logged and counted, never raised, and the in-memory state is kept.
    """

    def __init__(
        self,
        storage: Storage,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.storage = storage
        self._clock = clock
        self._conversations: Dict[str, Conversation] = {}
        self.active_id: Optional[str] = None
        self.persist_failures = 0
        self.last_persist: Optional[PersistOutcome] = None
        self.load_outcome = self._restore()
        logger.info(
            "ledger_loaded",
            status=self.load_outcome.status,
            conversations=self.load_outcome.conversations,
        )

    # Persistence

    def _restore(self) -> LoadOutcome:
        try:
            raw = self.storage.get_item(CONVERSATIONS_KEY)
            active = self.storage.get_item(ACTIVE_KEY)
        except StorageError as e:
            logger.error("ledger_storage_unreadable", error=str(e))
            return LoadOutcome(status="unreadable", error=str(e))

        if not raw:
            return LoadOutcome(status="empty")
        if not isinstance(raw, str):
            logger.error("ledger_corrupt", error="conversations is not a string")
            return LoadOutcome(status="corrupt", error="conversations is not a string")
        if active is not None and not isinstance(active, str):
            logger.warning("ledger_active_ignored", active=repr(active))
            active = None

        try:
            data = json.loads(raw)
        except ValueError as e:
            logger.error("ledger_corrupt", error=str(e))
            return LoadOutcome(status="corrupt", error=str(e))
        if not isinstance(data, dict):
            logger.error("ledger_corrupt", error="not an object")
            return LoadOutcome(status="corrupt", error="not an object")

        status = "loaded"
        version = data.get("schema_version")
        if version is None:
            # Legacy layout: a bare mapping of id to conversation
            data = {"schema_version": SCHEMA_VERSION, "conversations": data}
            status = "migrated"
        elif not isinstance(version, int) or version > SCHEMA_VERSION:
            logger.error("ledger_unsupported_version", schema_version=version)
            return LoadOutcome(status="unsupported_version", error=f"schema_version={version}")

        try:
            document = LedgerDocument.model_validate(data)
        except ValidationError as e:
            logger.error("ledger_corrupt", error=str(e))
            return LoadOutcome(status="corrupt", error=str(e))

        self._conversations = {c.id: c for c in document.conversations.values()}
        if active in self._conversations:
            self.active_id = active
        if status == "migrated":
            logger.info("ledger_migrated", to_version=SCHEMA_VERSION)
        return LoadOutcome(status=status, conversations=len(self._conversations))

    def serialize(self) -> Dict[str, str]:
        """The storage items that represent the current ledger."""
        document = LedgerDocument(conversations=self._conversations)
        items = {CONVERSATIONS_KEY: document.model_dump_json(by_alias=True)}
        if self.active_id is not None:
            items[ACTIVE_KEY] = self.active_id
        return items

    def _persist(self) -> PersistOutcome:
        try:
            self.storage.set_items(self.serialize())
            outcome = PersistOutcome(ok=True)
        except (StorageError, OSError) as e:
            self.persist_failures += 1
            PERSIST_FAILURES.inc()
            logger.error("ledger_persist_failed", error=str(e))
            outcome = PersistOutcome(ok=False, error=str(e))
        self.last_persist = outcome
        return outcome

    # Queries

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    def __len__(self) -> int:
        return len(self._conversations)

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self._conversations.get(conversation_id)

    @property
    def active(self) -> Optional[Conversation]:
        if self.active_id is None:
            return None
        return self._conversations.get(self.active_id)

    def list_ordered_by_recency(self) -> List[Conversation]:
        """Newest first; on equal timestamps the later-inserted one leads."""
        ranked = sorted(
            enumerate(self._conversations.values()),
            key=lambda item: (item[1].created_at, item[0]),
            reverse=True,
        )
        return [conversation for _, conversation in ranked]

    def _require(self, conversation_id: str) -> Conversation:
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            raise ConversationNotFound(f"Conversation {conversation_id} not found")
        return conversation

    # Mutations

    def initialize(self) -> Conversation:
        """Pick the startup conversation, creating one if the ledger is empty."""
        active = self.active
        if active is not None:
            return active
        ordered = self.list_ordered_by_recency()
        if not ordered:
            return self.create()
        self.active_id = ordered[0].id
        self._persist()
        return ordered[0]

    def create(self) -> Conversation:
        """Start a new conversation and make it active."""
        conversation = Conversation(title=SENTINEL_TITLE, created_at=self._clock())
        self._conversations[conversation.id] = conversation
        self.active_id = conversation.id
        self._persist()
        logger.info("conversation_created", conversation_id=conversation.id)
        return conversation

    def load(self, conversation_id: str) -> Optional[Conversation]:
        """Make a conversation active; unknown ids leave everything unchanged."""
        conversation = self._conversations.get(conversation_id)
        if conversation is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            return None
        self.active_id = conversation_id
        self._persist()
        return conversation

    def append(self, conversation_id: str, message: Message) -> PersistOutcome:
        """Append a message; the first user message also sets the title."""
        if message.role == Role.SYSTEM:
            raise ValueError("System messages are not persisted")
        conversation = self._require(conversation_id)
        conversation.messages.append(message)
        if message.role == Role.USER and conversation.user_message_count() == 1:
            conversation.title = derive_title(message.content)
            logger.info("conversation_titled", conversation_id=conversation_id, title=conversation.title)
        logger.debug(
            "message_appended",
            conversation_id=conversation_id,
            message_role=message.role.value,
        )
        return self._persist()

    def ensure_title(self, conversation_id: str) -> PersistOutcome:
        """Derive the title from the first user message if it is still the sentinel."""
        conversation = self._require(conversation_id)
        first = conversation.first_user_message()
        if conversation.title != SENTINEL_TITLE or first is None:
            return PersistOutcome(ok=True)
        return self.rename(conversation_id, derive_title(first.content))

    def rename(self, conversation_id: str, title: str) -> PersistOutcome:
        conversation = self._require(conversation_id)
        conversation.title = title
        return self._persist()

    def delete(self, conversation_id: str) -> Optional[Conversation]:
        """Remove a conversation.

        Returns the conversation that became active when the deleted one was
        active, either the most recently created survivor or a fresh one.
        """
        if self._conversations.pop(conversation_id, None) is None:
            logger.warning("conversation_not_found", conversation_id=conversation_id)
            return None
        logger.info("conversation_deleted", conversation_id=conversation_id)

        if conversation_id != self.active_id:
            self._persist()
            return None

        remaining = self.list_ordered_by_recency()
        if not remaining:
            return self.create()
        self.active_id = remaining[0].id
        self._persist()
        return remaining[0]

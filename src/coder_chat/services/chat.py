"""Chat client facade: the user-facing flows on top of the ledger."""

from typing import Callable, Optional

import structlog

from ..domain.models import GREETING, Conversation, Role
from .ledger import ConversationLedger
from .presenter import Presenter, Renderer, conversation_items, default_render, format_user_content
from .session import SessionController, SessionOutcome

logger = structlog.get_logger()


class ChatClient:
    """Connects user actions to the ledger, the controller and the view."""

    def __init__(
        self,
        ledger: ConversationLedger,
        controller: SessionController,
        presenter: Presenter,
        render: Renderer = default_render,
    ) -> None:
        self.ledger = ledger
        self.controller = controller
        self.presenter = presenter
        self.render = render

    def start(self) -> Conversation:
        """Restore or create the active conversation and draw everything."""
        conversation = self.ledger.initialize()
        self._show(conversation)
        self.refresh_sidebar()
        return conversation

    def refresh_sidebar(self) -> None:
        items = conversation_items(self.ledger.list_ordered_by_recency())
        self.presenter.show_conversations(items, self.ledger.active_id)

    def _show(self, conversation: Conversation) -> None:
        self.presenter.clear()
        if not conversation.messages:
            self.presenter.show_message(Role.SYSTEM, self.render(GREETING))
        for message in conversation.messages:
            if message.role == Role.USER:
                self.presenter.show_message(message.role, format_user_content(message.content))
            else:
                self.presenter.show_message(message.role, self.render(message.content))
        self.presenter.scroll_to_bottom()

    def new_conversation(self) -> Conversation:
        self.controller.detach()
        conversation = self.ledger.create()
        self._show(conversation)
        self.refresh_sidebar()
        return conversation

    def open(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self.ledger.load(conversation_id)
        if conversation is None:
            return None
        self.controller.detach()
        self._show(conversation)
        self.refresh_sidebar()
        return conversation

    def rename(self, conversation_id: str, title: str) -> None:
        self.ledger.rename(conversation_id, title)
        self.refresh_sidebar()

    def delete(self, conversation_id: str, confirm: Callable[[], bool]) -> bool:
        """Delete after ``confirm()`` agrees; returns whether anything was removed."""
        if conversation_id not in self.ledger:
            return False
        if not confirm():
            logger.info("conversation_delete_declined", conversation_id=conversation_id)
            return False

        was_active = conversation_id == self.ledger.active_id
        if was_active:
            self.controller.detach()
        replacement = self.ledger.delete(conversation_id)
        if replacement is not None:
            self._show(replacement)
        self.refresh_sidebar()
        return True

    async def submit(self, text: str) -> Optional[SessionOutcome]:
        """Send trimmed input; blank input is ignored."""
        message = text.strip()
        if not message:
            return None
        outcome = await self.controller.send(message)
        self.refresh_sidebar()
        return outcome

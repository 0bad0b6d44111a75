"""CLI interface for coder-chat."""

import asyncio
import html
from typing import List, Optional, Sequence

import click

from .config import configure_logging, get_settings
from .domain.models import Role
from .repositories.file import JsonFileStorage
from .services.chat import ChatClient
from .services.ledger import ConversationLedger
from .services.presenter import ConversationItem, conversation_items
from .services.session import SessionController
from .services.transport import CompletionTransport

VERSION = "0.1.0"

ROLE_PREFIX = {
    Role.USER: "you> ",
    Role.ASSISTANT: "assistant> ",
    Role.SYSTEM: "* ",
}


def console_render(text: str) -> str:
    """Terminal output is shown as the raw markdown source."""
    return text


class ConsolePresenter:
    """Presenter that writes a running transcript to the terminal."""

    def __init__(self, echo=click.echo) -> None:
        self.echo = echo
        self.items: List[ConversationItem] = []
        self.active_id: Optional[str] = None
        self._shown: Optional[str] = None

    def clear(self) -> None:
        self.echo("")

    def show_message(self, role: Role, markup: str) -> None:
        if role == Role.USER:
            markup = html.unescape(markup.replace("<br>", "\n"))
        self.echo(ROLE_PREFIX[role] + markup)

    def show_pending(self) -> None:
        self.echo("... thinking")

    def hide_pending(self) -> None:
        pass

    def open_assistant(self) -> None:
        self.echo(ROLE_PREFIX[Role.ASSISTANT], nl=False)
        self._shown = ""

    def replace_assistant(self, markup: str) -> None:
        # Only the new suffix is printed while the reply keeps growing.
        if self._shown is not None and markup.startswith(self._shown):
            self.echo(markup[len(self._shown):], nl=False)
        else:
            self.echo("\n" + ROLE_PREFIX[Role.ASSISTANT] + markup, nl=False)
        self._shown = markup

    def scroll_to_bottom(self) -> None:
        pass

    def set_input_enabled(self, enabled: bool) -> None:
        if enabled and self._shown is not None:
            self.echo("")
            self._shown = None

    def show_conversations(self, items: Sequence[ConversationItem], active_id: Optional[str]) -> None:
        self.items = list(items)
        self.active_id = active_id

    def print_conversations(self) -> None:
        for item in self.items:
            marker = "*" if item.id == self.active_id else " "
            self.echo(f"{marker} {item.id}  {item.title}  ({item.relative_time})")


def _open_ledger() -> ConversationLedger:
    return ConversationLedger(JsonFileStorage(get_settings().storage_path))


@click.group()
@click.version_option(version=VERSION, prog_name="coder-chat")
def cli():
    """coder-chat: stream answers from a completion service into a local chat history."""
    configure_logging(get_settings().log_level)


@cli.command("chat")
def chat_cmd():
    """Start an interactive chat.

    Commands: /new, /list, /open <id>, /rename <title>, /delete, /quit.
    Anything else is sent to the completion service.
    """
    asyncio.run(_repl())


async def _repl() -> None:
    settings = get_settings()
    ledger = _open_ledger()
    presenter = ConsolePresenter()
    transport = CompletionTransport.from_settings(settings)
    controller = SessionController(
        ledger,
        transport,
        presenter,
        render=console_render,
        history_window=settings.history_window,
    )
    client = ChatClient(ledger, controller, presenter, render=console_render)
    client.start()

    try:
        while True:
            line = await asyncio.to_thread(click.prompt, "", prompt_suffix="", default="", show_default=False)
            command, _, argument = line.strip().partition(" ")
            if command == "/quit":
                break
            elif command == "/new":
                client.new_conversation()
            elif command == "/list":
                presenter.print_conversations()
            elif command == "/open":
                if client.open(argument.strip()) is None:
                    click.echo(f"No conversation {argument.strip()!r}")
            elif command == "/rename":
                client.rename(ledger.active_id, argument.strip())
            elif command == "/delete":
                client.delete(ledger.active_id, confirm=lambda: click.confirm("Delete this conversation?"))
            else:
                await client.submit(line)
    finally:
        await transport.aclose()


@cli.command("list")
def list_cmd():
    """List conversations, newest first."""
    ledger = _open_ledger()
    for item in conversation_items(ledger.list_ordered_by_recency()):
        marker = "*" if item.id == ledger.active_id else " "
        click.echo(f"{marker} {item.id}  {item.title}  ({item.relative_time})")


@cli.command("show")
@click.argument("conversation_id")
def show_cmd(conversation_id: str):
    """Print the messages of one conversation."""
    conversation = _open_ledger().get(conversation_id)
    if conversation is None:
        raise click.ClickException(f"No conversation {conversation_id!r}")
    click.echo(conversation.title)
    for message in conversation.messages:
        click.echo(ROLE_PREFIX[message.role] + message.content)


@cli.command("rename")
@click.argument("conversation_id")
@click.argument("title")
def rename_cmd(conversation_id: str, title: str):
    """Rename a conversation."""
    ledger = _open_ledger()
    if conversation_id not in ledger:
        raise click.ClickException(f"No conversation {conversation_id!r}")
    ledger.rename(conversation_id, title)


@cli.command("delete")
@click.argument("conversation_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
def delete_cmd(conversation_id: str, yes: bool):
    """Delete a conversation."""
    ledger = _open_ledger()
    if conversation_id not in ledger:
        raise click.ClickException(f"No conversation {conversation_id!r}")
    if not yes and not click.confirm("Delete this conversation? This cannot be undone."):
        return
    ledger.delete(conversation_id)
    click.echo(f"Deleted {conversation_id}")


if __name__ == "__main__":
    cli()

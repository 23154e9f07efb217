"""CLI interface for ahichat."""

from __future__ import annotations

import asyncio
import logging
import random
import sqlite3
import sys
from datetime import datetime
from pathlib import Path

import click

from . import __version__
from .config import BACKEND_URL, DATA_DIR, SQLITE_PATH
from .models import Conversation, Message, Sender, now_ms

HELP_TEXT = """Commands
/help            Show this help
/select N        Long-press message N (start or toggle selection)
/tap N           Tap message N while selecting
/delete          Delete the selected messages
/cancel          Leave selection mode
/new             Start a new session
/quit            Leave the chat
"""


def _format_time(ts: int) -> str:
    return datetime.fromtimestamp(ts / 1000).strftime("%H:%M")


def _format_message(message: Message, index: int | None = None) -> str:
    who = "You" if message.sender is Sender.USER else "ahi"
    prefix = f"{index:>3} " if index is not None else ""
    return f"{prefix}[{_format_time(message.timestamp)}] {who}: {message.text}"


def _preview(conv: Conversation, width: int = 60) -> str:
    first = next((m.text for m in conv.messages if m.sender is Sender.USER), "")
    first = " ".join(first.split())
    return first if len(first) <= width else first[: width - 3] + "..."


def _open_store():
    from .storage import ConversationStore

    return ConversationStore(SQLITE_PATH)


@click.group()
@click.version_option(version=__version__, prog_name="ahichat")
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr")
def cli(verbose: bool):
    """Chat with ahi from the terminal and browse your history."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.option("--seed", type=int, default=None, help="Seed the typing-delay randomness")
@click.option("--new", "fresh", is_flag=True, help="Start a new session instead of rejoining")
def chat(seed: int | None, fresh: bool):
    """Start an interactive chat.

    Sending a new line while a reply is still arriving cancels the rest of
    that reply. Type /help for commands.
    """
    asyncio.run(_chat_loop(seed, fresh))


def _read_line() -> str | None:
    try:
        return click.prompt("You", default="", show_default=False, prompt_suffix="> ")
    except click.Abort:
        return None


def _echo_typing(typing: bool):
    if typing:
        click.echo(click.style("  ahi is typing…", dim=True))


def _echo_message(message: Message):
    if message.sender is Sender.ASSISTANT:
        click.echo(_format_message(message))


def _message_at(messages: list[Message], arg: str) -> Message | None:
    try:
        index = int(arg)
    except ValueError:
        return None
    if 1 <= index <= len(messages):
        return messages[index - 1]
    return None


def _run_command(session, line: str) -> bool:
    """Handle a slash command. Returns False when the chat should end."""
    command, _, arg = line.strip().partition(" ")
    command = command.lower()

    if command in ("/quit", "/exit"):
        return False
    if command == "/help":
        click.echo(HELP_TEXT)
    elif command in ("/select", "/tap"):
        message = _message_at(session.messages, arg.strip())
        if message is None:
            click.echo(f"No message {arg.strip() or '?'}. Message numbers start at 1.")
            return True
        state = session.long_press(message.id) if command == "/select" else session.tap(message.id)
        click.echo(f"Selected: {len(state.selected_ids)}")
    elif command == "/cancel":
        session.cancel_selection()
        click.echo("Selection cleared.")
    elif command == "/delete":
        before = len(session.messages)
        remaining = session.delete_selected()
        click.echo(f"Deleted {before - len(remaining)} messages.")
        for index, message in enumerate(remaining, start=1):
            click.echo(_format_message(message, index))
    elif command == "/new":
        session.scheduler.cancel()
        session.persist()
        session.identity.new_session()
        session.scheduler.replace_messages([])
        click.echo("Started a new session.")
    else:
        click.echo(f"Unknown command {command}. Type /help.")
    return True


async def _chat_loop(seed: int | None, fresh: bool):
    from .client import BackendClient
    from .conversation import ChatSession

    store = _open_store()
    session = ChatSession(
        BackendClient(),
        store,
        rng=random.Random(seed),
        on_message=_echo_message,
        on_typing=_echo_typing,
    )
    if fresh:
        session.identity.new_session()
    for index, message in enumerate(session.start(), start=1):
        click.echo(_format_message(message, index))

    loop = asyncio.get_running_loop()
    tasks: set[asyncio.Task] = set()
    try:
        while True:
            line = await loop.run_in_executor(None, _read_line)
            if line is None:
                break
            if line.startswith("/"):
                if not _run_command(session, line):
                    break
                continue
            task = asyncio.create_task(session.send(line))
            tasks.add(task)
            task.add_done_callback(tasks.discard)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await session.close()
        store.close()


@cli.command()
def history():
    """List saved conversations grouped into today, yesterday and earlier."""
    from .storage import bucket_conversations

    store = _open_store()
    buckets = bucket_conversations(store.load(), now_ms())
    store.close()

    click.echo()
    click.echo(click.style("Today", bold=True))
    if not buckets.today:
        click.echo("  (none)")
    for conv in buckets.today:
        click.echo(
            f"  {conv.id}  {_format_time(conv.last_updated_at)}  "
            f"{len(conv.messages):>3} msgs  {_preview(conv)}"
        )
    click.echo(f"{click.style('Yesterday', bold=True)} ({len(buckets.yesterday)})")
    click.echo(f"{click.style('Earlier', bold=True)} ({len(buckets.earlier)})")
    click.echo()


@cli.command()
@click.argument("target")
def show(target: str):
    """Print a conversation by ID, or the merged 'yesterday' / 'earlier' thread."""
    from .config import EARLIER_MERGED_ID, YESTERDAY_MERGED_ID
    from .storage import bucket_conversations, merge_for_view

    store = _open_store()
    conversations = store.load()
    store.close()

    if target in ("yesterday", "earlier"):
        buckets = bucket_conversations(conversations, now_ms())
        synthetic_id = YESTERDAY_MERGED_ID if target == "yesterday" else EARLIER_MERGED_ID
        conv = merge_for_view(getattr(buckets, target), synthetic_id)
        if conv is None:
            click.echo(f"No conversations from {target}.")
            return
    else:
        conv = next((c for c in conversations if c.id == target), None)
        if conv is None:
            raise click.ClickException(f"Conversation not found: {target}")

    for index, message in enumerate(conv.sorted_messages(), start=1):
        click.echo(_format_message(message, index))


@cli.command()
@click.argument("conversation_id", required=False)
@click.option(
    "--bucket",
    type=click.Choice(["today", "yesterday", "earlier"]),
    help="Delete every conversation in a history bucket",
)
def delete(conversation_id: str | None, bucket: str | None):
    """Delete one conversation, or a whole history bucket."""
    from .storage import bucket_conversations

    if bool(conversation_id) == bool(bucket):
        raise click.UsageError("Give either a CONVERSATION_ID or --bucket.")

    store = _open_store()
    try:
        if bucket:
            buckets = bucket_conversations(store.load(), now_ms())
            removed = store.delete_many(getattr(buckets, bucket))
        else:
            removed = store.delete_by_id(conversation_id)
    except sqlite3.Error as e:
        raise click.ClickException(f"Could not delete: {e}") from e
    finally:
        store.close()

    click.echo(f"Deleted {removed} conversation{'s' if removed != 1 else ''}.")


@cli.command()
@click.argument("path", required=False, type=click.Path(dir_okay=False, path_type=Path))
def export(path: Path | None):
    """Export all conversations as JSON to PATH (or stdout)."""
    store = _open_store()
    payload = store.export_json()
    store.close()

    if path is None:
        click.echo(payload)
        return
    path.write_text(payload, encoding="utf-8")
    click.echo(f"Exported to {path}")


@cli.command()
def config():
    """Print the effective configuration."""
    click.echo(f"Data directory: {DATA_DIR}")
    click.echo(f"History:        {SQLITE_PATH}")
    click.echo(f"Backend:        {BACKEND_URL}")


@cli.command()
@click.confirmation_option(prompt="This will delete all saved conversations. Are you sure?")
def reset():
    """Delete all saved conversations."""
    store = _open_store()
    store.clear()
    store.close()
    click.echo("History cleared.")

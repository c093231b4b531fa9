"""CLI entry point for chatsync."""

import asyncio

import click
import uvicorn

from .backends import get_gateway
from .engine import SyncEngine
from .export import chat_to_json, chat_to_markdown
from .replies import get_reply_generator
from .store import partition_by_category

CATEGORY_HEADINGS = {"automated": "AI Assistants", "contact": "Contacts"}


def _open_engine() -> SyncEngine:
    return asyncio.run(SyncEngine.open(get_gateway(), get_reply_generator()))


@click.group()
def main():
    """Keep chat threads with contacts and automated responders."""
    pass


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the HTTP API."""
    click.echo(f"Starting chatsync on http://{host}:{port}")
    uvicorn.run("chatsync.server:app", host=host, port=port, reload=False)


@main.command()
@click.option("--search", default="", help="Only chats whose name contains this text.")
def chats(search: str):
    """List chats grouped by category."""
    engine = _open_engine()
    groups = partition_by_category(engine.search(search))

    if not any(groups.values()):
        click.echo("No chats found")
        return

    for category, members in groups.items():
        if not members:
            continue
        click.echo(CATEGORY_HEADINGS.get(category, category))
        for chat in members:
            last = chat.last_message.text if chat.last_message else "No messages yet"
            unread = f" [{chat.unread_count}]" if chat.unread_count else ""
            click.echo(f"  {chat.id:>14}  {chat.name}{unread}: {last}")


@main.command()
@click.argument("chat_id")
@click.argument("text")
def send(chat_id: str, text: str):
    """Send TEXT to CHAT_ID and print the automated reply, if any."""

    async def run():
        engine = await SyncEngine.open(get_gateway(), get_reply_generator())
        errors = []
        engine.subscribe_errors(errors.append)
        result = await engine.send(chat_id, text)
        if result.ok and engine.is_composing(chat_id):
            click.echo("typing...")
            await engine.wait_idle()
        return engine, result, errors

    engine, result, errors = asyncio.run(run())
    if not result.ok:
        raise click.ClickException(str(result.error))
    for error in errors:
        click.echo(f"Reply failed: {error}", err=True)

    chat = engine.get_chat(chat_id)
    last = chat.last_message
    if last is not None and last.id != result.value.id:
        click.echo(f"{chat.name}: {last.text}")


@main.command()
@click.argument("chat_id")
@click.option("--format", "fmt", type=click.Choice(["md", "json"]), default="md", help="Export format.")
def export(chat_id: str, fmt: str):
    """Print a chat as Markdown or JSON."""
    engine = _open_engine()
    try:
        chat = engine.get_chat(chat_id)
    except LookupError as e:
        raise click.ClickException(str(e))
    click.echo(chat_to_json(chat) if fmt == "json" else chat_to_markdown(chat))

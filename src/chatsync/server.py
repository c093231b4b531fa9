"""FastAPI web server for chatsync."""

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response
from pydantic import BaseModel

from . import __version__
from .backends import get_gateway
from .core import Chat
from .engine import Result, SyncEngine
from .errors import ChatNotFound, ChatSyncError, InvalidRequest, StorageUnavailable
from .export import chat_to_json, chat_to_markdown
from .replies import get_reply_generator
from .serialization import message_to_dict

logger = logging.getLogger(__name__)

# Engine cache (populated on first request)
_engine: SyncEngine | None = None
_engine_lock: asyncio.Lock | None = None


async def _get_engine() -> SyncEngine:
    """Lazily open and cache the engine.

    Opening awaits the gateway, so concurrent first requests wait on one
    lock and all get the same engine.
    """
    global _engine, _engine_lock
    if _engine is not None:
        return _engine
    if _engine_lock is None:
        _engine_lock = asyncio.Lock()
    async with _engine_lock:
        if _engine is None:
            _engine = await SyncEngine.open(get_gateway(), get_reply_generator())
            logger.info("Opened chat engine with %d chats", len(_engine.get_snapshot()))
    return _engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Cancel pending replies when the server stops."""
    global _engine, _engine_lock
    yield
    if _engine is not None:
        await _engine.aclose()
        _engine = None
    _engine_lock = None


app = FastAPI(title="chatsync", version=__version__, lifespan=lifespan)


class NewChat(BaseModel):
    kind: str
    name: str = ""


class OutgoingMessage(BaseModel):
    text: str


def _chat_summary(chat: Chat, engine: SyncEngine) -> dict:
    """Sidebar view of a chat: everything but the full message list."""
    last = chat.last_message
    return {
        "id": chat.id,
        "name": chat.name,
        "category": chat.category,
        "online": chat.online,
        "unread_count": chat.unread_count,
        "message_count": len(chat.messages),
        "last_message": message_to_dict(last) if last else None,
        "composing": engine.is_composing(chat.id),
    }


def _chat_to_dict(chat: Chat, engine: SyncEngine) -> dict:
    data = _chat_summary(chat, engine)
    data["messages"] = [message_to_dict(m) for m in chat.messages]
    return data


def _raise_for(error: ChatSyncError):
    """Translate an engine error into an HTTP error."""
    if isinstance(error, ChatNotFound):
        raise HTTPException(status_code=404, detail=str(error))
    if isinstance(error, InvalidRequest):
        raise HTTPException(status_code=422, detail=str(error))
    if isinstance(error, StorageUnavailable):
        raise HTTPException(status_code=503, detail="Chat storage unavailable")
    raise HTTPException(status_code=500, detail=str(error))


def _unwrap(result: Result):
    if not result.ok:
        _raise_for(result.error)
    return result.value


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/chats")
async def get_chats(
    search: str | None = Query(None, description="Filter by chat name"),
    category: str | None = Query(None, description="Filter by category: automated or contact"),
):
    """Return all chats in display order."""
    engine = await _get_engine()
    chats = engine.search(search) if search else engine.get_snapshot()

    if category:
        chats = tuple(c for c in chats if c.category == category)

    return {
        "total": len(chats),
        "selected": engine.selected_chat_id,
        "chats": [_chat_summary(c, engine) for c in chats],
    }


@app.get("/api/chats/{chat_id}")
async def get_chat(chat_id: str):
    """Return one chat with all of its messages."""
    engine = await _get_engine()
    try:
        chat = engine.get_chat(chat_id)
    except ChatNotFound as e:
        _raise_for(e)
    return _chat_to_dict(chat, engine)


@app.post("/api/chats", status_code=201)
async def create_chat(body: NewChat):
    """Create an empty chat at the top of the list."""
    engine = await _get_engine()
    chat_id = _unwrap(await engine.create_chat(body.kind, body.name))
    return _chat_to_dict(engine.get_chat(chat_id), engine)


@app.post("/api/chats/{chat_id}/messages", status_code=201)
async def send_message(chat_id: str, body: OutgoingMessage):
    """Send a message. Returns once it is saved; any reply comes later."""
    engine = await _get_engine()
    message = _unwrap(await engine.send(chat_id, body.text))
    return {
        "chat_id": chat_id,
        "message": message_to_dict(message),
        "composing": engine.is_composing(chat_id),
    }


@app.post("/api/chats/{chat_id}/read")
async def mark_read(chat_id: str, select: bool = Query(False, description="Also open the chat")):
    """Mark a chat read, optionally making it the selected chat."""
    engine = await _get_engine()
    if select:
        chat = _unwrap(await engine.select_chat(chat_id))
    else:
        chat = _unwrap(await engine.mark_read(chat_id))
    return _chat_summary(chat, engine)


@app.get("/api/composing")
async def get_composing():
    """Return the ids of chats with a reply in progress."""
    engine = await _get_engine()
    return sorted(engine.composing_chats())


@app.get("/api/export/{chat_id}")
async def export_chat(
    chat_id: str,
    format: str = Query("md", description="Export format: md or json"),
):
    """Export a chat as Markdown or JSON."""
    engine = await _get_engine()
    try:
        chat = engine.get_chat(chat_id)
    except ChatNotFound as e:
        _raise_for(e)

    safe_name = "".join(c if c.isalnum() or c in "-_ " else "" for c in chat.name)[:50]

    if format == "json":
        return Response(
            content=chat_to_json(chat),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{safe_name}.json"'},
        )
    else:
        return Response(
            content=chat_to_markdown(chat),
            media_type="text/markdown",
            headers={"Content-Disposition": f'attachment; filename="{safe_name}.md"'},
        )

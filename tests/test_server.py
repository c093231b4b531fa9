"""Tests for the FastAPI server."""

import asyncio
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

import chatsync.server as srv
from chatsync.backends.memory import MemoryGateway
from chatsync.replies import CannedReplyGenerator
from chatsync.serialization import deserialize
from chatsync.server import app


@pytest.fixture(autouse=True)
def reset_engine_cache():
    """Reset the engine cache before each test."""
    srv._engine = None
    srv._engine_lock = None
    yield
    srv._engine = None
    srv._engine_lock = None


@pytest.fixture
def patched_engine_deps():
    """Point the server at an in-memory store and instant canned replies."""
    gateway = MemoryGateway()
    with (
        patch("chatsync.server.get_gateway", return_value=gateway),
        patch("chatsync.server.get_reply_generator", return_value=CannedReplyGenerator(delay=(0, 0))),
    ):
        yield gateway


def _client():
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.mark.asyncio
async def test_list_chats(patched_engine_deps):
    async with _client() as client:
        resp = await client.get("/api/chats")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 4
        assert data["selected"] is None
        for chat in data["chats"]:
            assert "id" in chat
            assert "name" in chat
            assert "unread_count" in chat
            assert "messages" not in chat
        assert data["chats"][2]["last_message"]["text"] == "Hey, how are you doing?"


@pytest.mark.asyncio
async def test_list_chats_with_search_and_category(patched_engine_deps):
    async with _client() as client:
        resp = await client.get("/api/chats?search=JANE")
        assert [c["name"] for c in resp.json()["chats"]] == ["Jane Smith"]

        resp = await client.get("/api/chats?category=automated")
        assert [c["id"] for c in resp.json()["chats"]] == ["1", "2"]


@pytest.mark.asyncio
async def test_get_chat(patched_engine_deps):
    async with _client() as client:
        resp = await client.get("/api/chats/2")
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "ChatGPT"
        assert len(data["messages"]) == 2


@pytest.mark.asyncio
async def test_get_chat_not_found(patched_engine_deps):
    async with _client() as client:
        resp = await client.get("/api/chats/nonexistent")
        assert resp.status_code == 404


@pytest.mark.asyncio
async def test_send_to_automated_chat_gets_reply(replies):
    with (
        patch("chatsync.server.get_gateway", return_value=MemoryGateway()),
        patch("chatsync.server.get_reply_generator", return_value=replies),
    ):
        async with _client() as client:
            resp = await client.post("/api/chats/1/messages", json={"text": "hi"})
            assert resp.status_code == 201
            data = resp.json()
            assert data["message"]["text"] == "hi"
            assert data["message"]["origin"] == "local-user"
            assert data["composing"] is True

            resp = await client.get("/api/composing")
            assert resp.json() == ["1"]

            await replies.wait_for_calls(1)
            replies.resolve(0, "R")
            await srv._engine.wait_idle()

            resp = await client.get("/api/chats/1")
            messages = resp.json()["messages"]
            assert len(messages) == 3
            assert messages[-1]["origin"] == "automated"
            assert messages[-1]["text"] == "R"

            resp = await client.get("/api/composing")
            assert resp.json() == []


@pytest.mark.asyncio
async def test_send_is_persisted(patched_engine_deps):
    async with _client() as client:
        await client.post("/api/chats/3/messages", json={"text": "hello"})
    assert "hello" in patched_engine_deps.blob


@pytest.mark.asyncio
async def test_send_errors(patched_engine_deps):
    async with _client() as client:
        resp = await client.post("/api/chats/nope/messages", json={"text": "hi"})
        assert resp.status_code == 404

        resp = await client.post("/api/chats/3/messages", json={"text": "  "})
        assert resp.status_code == 422

        resp = await client.post("/api/chats/3/messages", json={})
        assert resp.status_code == 422


@pytest.mark.asyncio
async def test_create_chat(patched_engine_deps):
    async with _client() as client:
        resp = await client.post("/api/chats", json={"kind": "contact", "name": "X"})
        assert resp.status_code == 201
        created = resp.json()
        assert created["name"] == "X"
        assert created["messages"] == []

        resp = await client.get("/api/chats")
        assert resp.json()["chats"][0]["id"] == created["id"]

        resp = await client.post("/api/chats", json={"kind": "robot"})
        assert resp.status_code == 422


@pytest.mark.asyncio
async def test_mark_read_and_select(patched_engine_deps):
    async with _client() as client:
        resp = await client.post("/api/chats/2/read")
        assert resp.status_code == 200
        assert resp.json()["unread_count"] == 0

        resp = await client.post("/api/chats/3/read?select=true")
        assert resp.json()["unread_count"] == 0
        resp = await client.get("/api/chats")
        assert resp.json()["selected"] == "3"

        resp = await client.post("/api/chats/missing/read")
        assert resp.status_code == 404


@pytest.mark.asyncio
async def test_storage_failure_is_503(gateway):
    gateway.fail_saves = True
    with (
        patch("chatsync.server.get_gateway", return_value=gateway),
        patch("chatsync.server.get_reply_generator", return_value=CannedReplyGenerator(delay=(0, 0))),
    ):
        async with _client() as client:
            resp = await client.post("/api/chats", json={"kind": "contact", "name": "X"})
            assert resp.status_code == 503
            resp = await client.get("/api/chats")
            assert resp.json()["total"] == 4


@pytest.mark.asyncio
async def test_concurrent_first_requests_share_one_engine(make_gateway):
    gateway = make_gateway(load_delay=0.01)
    with (
        patch("chatsync.server.get_gateway", return_value=gateway),
        patch("chatsync.server.get_reply_generator", return_value=CannedReplyGenerator(delay=(0, 0))),
    ):
        async with _client() as client:
            first, second = await asyncio.gather(
                client.post("/api/chats/3/messages", json={"text": "A"}),
                client.post("/api/chats/4/messages", json={"text": "B"}),
            )
            assert first.status_code == 201
            assert second.status_code == 201

    assert gateway.loads == 1
    stored = {c.id: [m.text for m in c.messages] for c in deserialize(gateway.blob)}
    assert "A" in stored["3"]
    assert "B" in stored["4"]

"""Shared fixtures: in-memory database, fake clock and fake HTTP backends.

Provides:
- ``db``: fresh in-memory aiosqlite connection with the schema applied
- ``clock``: settable clock, starts on Wednesday 2025-03-12 09:00
- ``stroke_server`` / ``ai_server``: local aiohttp servers standing in for
  the stroke-data CDN and the three AI backends
- ``generator``: TaskGenerator wired to all of the above
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta

import aiohttp
import aiosqlite
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from wordisland.ai_gateway import AIConfig, AIGateway
from wordisland.database import LedgerStore, ProfileStore, TaskStore, init_schema
from wordisland.fallback import FallbackContentProvider
from wordisland.ledger import WeeklyLedgerService
from wordisland.profiles import ProfileService
from wordisland.strokes import StrokeLookup
from wordisland.task_generator import TaskGenerator


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeStrokeData:
    """Serves ``/<char>.json`` in hanzi-writer-data shape for known characters."""

    def __init__(self) -> None:
        self.counts: dict[str, int] = {}
        self.hits: list[str] = []

    async def handle(self, request: web.Request) -> web.Response:
        char = request.match_info["char"]
        self.hits.append(char)
        if char not in self.counts:
            return web.Response(status=404, text="Not Found")
        return web.json_response({"strokes": ["M 0 0"] * self.counts[char], "medians": []})


class FakeAIBackend:
    """Replies from a queue of (status, body); records every request payload."""

    def __init__(self) -> None:
        self.replies: list[tuple[int, object]] = []
        self.requests: list[tuple[str, dict]] = []

    def reply(self, status: int, body: object) -> None:
        self.replies.append((status, body))

    async def handle(self, request: web.Request) -> web.Response:
        self.requests.append((request.match_info["backend"], await request.json()))
        status, body = self.replies.pop(0) if self.replies else (500, {"error": "no reply"})
        if isinstance(body, str):
            return web.Response(status=status, text=body)
        return web.json_response(body, status=status)


def gemini_body(tasks: list[dict], prefix: str = "") -> dict:
    text = prefix + json.dumps({"tasks": tasks}, ensure_ascii=False)
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def task_item(content: str, type_: str, reward: int = 5, **details) -> dict:
    return {"content": content, "type": type_, "details": details, "reward": reward}


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 12, 9, 0))


@pytest_asyncio.fixture
async def db():
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await init_schema(conn)
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def http():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest_asyncio.fixture
async def stroke_server():
    data = FakeStrokeData()
    app = web.Application()
    app.router.add_get("/{char}.json", data.handle)
    server = TestServer(app)
    await server.start_server()
    data.base_url = str(server.make_url("/")).rstrip("/")
    yield data
    await server.close()


@pytest_asyncio.fixture
async def ai_server():
    backend = FakeAIBackend()
    app = web.Application()
    app.router.add_post("/{backend}", backend.handle)
    server = TestServer(app)
    await server.start_server()
    backend.base_url = str(server.make_url("/")).rstrip("/")
    yield backend
    await server.close()


@pytest.fixture
def strokes(stroke_server, http) -> StrokeLookup:
    return StrokeLookup(base_url=stroke_server.base_url, session=http)


@pytest.fixture
def gateway(ai_server, strokes, http) -> AIGateway:
    return AIGateway(
        strokes=strokes,
        session=http,
        gemini_url=f"{ai_server.base_url}/gemini",
        openai_url=f"{ai_server.base_url}/openai",
        claude_url=f"{ai_server.base_url}/claude",
    )


@pytest.fixture
def ai_config() -> AIConfig:
    return AIConfig(backend="gemini", api_key="test-key")


@pytest.fixture
def ledger(db, clock) -> WeeklyLedgerService:
    return WeeklyLedgerService(LedgerStore(db), clock=clock)


@pytest.fixture
def profiles(db) -> ProfileService:
    return ProfileService(ProfileStore(db))


@pytest.fixture
def task_store(db) -> TaskStore:
    return TaskStore(db)


@pytest.fixture
def generator(db, task_store, ledger, gateway, strokes, clock) -> TaskGenerator:
    return TaskGenerator(
        profiles=ProfileStore(db),
        tasks=task_store,
        ledger=ledger,
        gateway=gateway,
        fallback=FallbackContentProvider(strokes),
        clock=clock,
    )

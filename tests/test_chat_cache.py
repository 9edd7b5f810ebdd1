"""Tests for the SQL chat cache (sqlite via aiosqlite)."""

import pytest

from sentencify.db.chat_cache import SqlChatCache
from sentencify.db.models import Base
from sentencify.db.session import create_session_factory
from sentencify.llm import retry
from sentencify.llm.request_builder import TextBlock
from sentencify.schemas.chat import ChatMessage


@pytest.fixture
async def cache(tmp_path):
    engine, factory = create_session_factory(f"sqlite+aiosqlite:///{tmp_path / 'chats.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield SqlChatCache(factory)
    await engine.dispose()


def conversation():
    return [
        ChatMessage(role="user", content="p1",
                    content_for_api=[TextBlock(text="DOCS", cache=True), TextBlock(text="p1")]),
        ChatMessage(role="assistant", content="r1"),
    ]


async def test_missing_conversation_is_empty(cache):
    assert await cache.get_chat("nada") == []


async def test_save_and_get(cache):
    await cache.save_chat("topic-1", conversation())
    loaded = await cache.get_chat("topic-1")

    assert [m.content for m in loaded] == ["p1", "r1"]
    assert [b.text for b in loaded[0].content_for_api] == ["DOCS", "p1"]
    assert loaded[1].content_for_api is None


async def test_save_replaces(cache):
    await cache.save_chat("topic-1", conversation())
    await cache.save_chat("topic-1", [ChatMessage(role="user", content="novo")])
    loaded = await cache.get_chat("topic-1")
    assert [m.content for m in loaded] == ["novo"]


async def test_delete(cache):
    await cache.save_chat("topic-1", conversation())
    await cache.save_chat("topic-2", conversation())
    await cache.delete_chat("topic-1")
    assert await cache.get_chat("topic-1") == []
    assert len(await cache.get_chat("topic-2")) == 2


async def test_export_uses_wire_names(cache):
    await cache.save_chat("topic-1", conversation())
    exported = await cache.export_all()
    first = exported["topic-1"][0]
    assert "contentForApi" in first
    assert "error" not in first


async def test_import_and_clear(cache):
    count = await cache.import_all({
        "a": [{"role": "user", "content": "x"}],
        "b": conversation(),
    })
    assert count == 2
    assert sorted((await cache.export_all()).keys()) == ["a", "b"]

    await cache.clear_all()
    assert await cache.export_all() == {}


async def test_storage_errors_retried_then_reraised(monkeypatch):
    monkeypatch.setattr(retry, "STORAGE_RETRY_POLICY",
                        retry.STORAGE_RETRY_POLICY.with_updates(initial_delay=0.0))
    attempts = []

    def broken_factory():
        attempts.append(1)
        raise OSError("disk I/O error")

    with pytest.raises(OSError, match="disk I/O error"):
        await SqlChatCache(broken_factory).get_chat("x")
    assert len(attempts) == 3

"""Tests for the HTTP surface (health, AI calls, metrics, ordering, chat)."""

import json

import pytest
from conftest import FAST_RETRY, FakeTransport, MemoryChatCache, overloaded, unauthorized
from httpx import ASGITransport, AsyncClient

from sentencify.api.app import create_app
from sentencify.config import AISettings, DoubleCheckSettings
from sentencify.llm.invoker import LLMInvoker


@pytest.fixture
def cache():
    return MemoryChatCache()


@pytest.fixture
async def api(cache):
    """Factory: api(*script, settings=None) -> (client, transport)."""
    clients = []

    async def _make(*script, settings=None):
        transport = FakeTransport(*script)
        invoker = LLMInvoker(
            settings or AISettings(),
            transports={"claude": transport},
            retry_policy=FAST_RETRY,
        )
        app = create_app(invoker=invoker, chat_cache=cache)
        client = AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
        clients.append(client)
        return client, transport

    yield _make
    for client in clients:
        await client.aclose()


class TestHealth:

    async def test_health(self, api):
        client, _ = await api("ok")
        resp = await client.get("/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["provider"] == "claude"
        assert data["ai_available"] is True
        assert "version" in data

    async def test_root(self, api):
        client, _ = await api("ok")
        resp = await client.get("/")
        assert resp.status_code == 200
        assert resp.json()["service"] == "sentencify"


class TestCall:

    async def test_call(self, api):
        client, transport = await api("  Resposta  ")
        resp = await client.post("/ai/call", json={
            "messages": [{"role": "user", "content": "Olá"}],
            "max_tokens": 500,
            "temperature": 0.2,
        })
        assert resp.status_code == 200
        assert resp.json() == {"text": "Resposta"}
        assert transport.payloads[0].max_tokens == 500
        assert transport.payloads[0].temperature == 0.2

    async def test_empty_messages_rejected(self, api):
        client, transport = await api("ok")
        resp = await client.post("/ai/call", json={"messages": []})
        assert resp.status_code == 422
        assert transport.calls == 0

    async def test_exhausted_maps_to_502(self, api):
        client, transport = await api(overloaded())
        resp = await client.post("/ai/call", json={"messages": [{"role": "user", "content": "x"}]})
        assert resp.status_code == 502
        assert "after 3 attempts" in resp.json()["detail"]
        assert transport.calls == 3

    async def test_rejected_maps_to_400(self, api):
        client, _ = await api(unauthorized())
        resp = await client.post("/ai/call", json={"messages": [{"role": "user", "content": "x"}]})
        assert resp.status_code == 400
        assert "Traceback" not in resp.text

    async def test_unconfigured_provider_maps_to_503(self, api):
        client, _ = await api("ok")
        resp = await client.post("/ai/call", json={
            "messages": [{"role": "user", "content": "x"}],
            "provider": "openai",
        })
        assert resp.status_code == 503


class TestMetrics:

    async def test_metrics_accumulate_and_reset(self, api):
        client, _ = await api("ok")
        body = {"messages": [{"role": "user", "content": "x"}]}
        await client.post("/ai/call", json=body)
        await client.post("/ai/call", json=body)

        metrics = (await client.get("/ai/metrics")).json()
        assert metrics["request_count"] == 2
        assert metrics["total_input"] == 20
        assert metrics["total_output"] == 10

        reset = (await client.delete("/ai/metrics")).json()
        assert reset["request_count"] == 0


class TestTopicOrder:

    async def test_order(self, api):
        client, _ = await api('{"order": [2, 1]}')
        resp = await client.post("/ai/topics/order", json={"topics": [
            {"title": "HORAS EXTRAS", "category": "MÉRITO"},
            {"title": "PRESCRIÇÃO", "category": "PREJUDICIAL"},
        ]})
        assert resp.status_code == 200
        assert [t["title"] for t in resp.json()["topics"]] == ["PRESCRIÇÃO", "HORAS EXTRAS"]

    async def test_order_falls_back_on_error(self, api):
        client, _ = await api(unauthorized())
        resp = await client.post("/ai/topics/order", json={"topics": [
            {"title": "A", "category": "MÉRITO"},
            {"title": "B", "category": "MÉRITO"},
        ]})
        assert resp.status_code == 200
        assert [t["title"] for t in resp.json()["topics"]] == ["A", "B"]


class TestDoubleCheck:

    async def test_unknown_kind(self, api):
        client, _ = await api("{}")
        resp = await client.post("/ai/double-check", json={"kind": "poesia", "primary_output": "x"})
        assert resp.status_code == 400

    async def test_skipped_when_disabled(self, api):
        client, transport = await api("{}")
        resp = await client.post("/ai/double-check", json={"kind": "dispositivo", "primary_output": "x"})
        assert resp.status_code == 200
        assert resp.json()["skipped"] is True
        assert transport.calls == 0

    async def test_audit(self, api):
        settings = AISettings(double_check=DoubleCheckSettings(
            enabled=True, operations=frozenset({"dispositivo"}),
        ))
        answer = json.dumps({"corrections": [], "confidence": 0.9, "verifiedDispositivo": "y"})
        client, _ = await api(answer, settings=settings)
        resp = await client.post("/ai/double-check", json={"kind": "dispositivo", "primary_output": "x"})
        data = resp.json()
        assert data["verified"] == "y"
        assert data["confidence"] == 0.9
        assert data["failed"] is False


class TestChat:

    async def test_send_and_history(self, api, cache):
        client, transport = await api("Resposta 1")
        resp = await client.post("/chat/topic-1/messages",
                                 json={"message": "Pergunta", "context": "DOCUMENTOS"})
        assert resp.json() == {"success": True, "response": "Resposta 1", "error": None}
        first_block = transport.payloads[0].messages[0].content[0]
        assert first_block.text == "DOCUMENTOS"

        history = (await client.get("/chat/topic-1")).json()
        assert [m["content"] for m in history["messages"]] == ["Pergunta", "Resposta 1"]
        assert history["last_response"] == "Resposta 1"
        assert history["generating"] is False
        assert len(cache.store["topic-1"]) == 2

    async def test_empty_message_sentinel(self, api):
        client, transport = await api("ok")
        resp = await client.post("/chat/topic-1/messages", json={"message": "  "})
        assert resp.status_code == 200
        assert resp.json()["error"] == "Mensagem vazia"
        assert transport.calls == 0

    async def test_history_loaded_from_cache(self, api, cache):
        cache.store["topic-9"] = [{"role": "user", "content": "antiga"},
                                  {"role": "assistant", "content": "resposta antiga"}]
        client, _ = await api("ok")
        history = (await client.get("/chat/topic-9")).json()
        assert history["last_response"] == "resposta antiga"

    async def test_clear(self, api, cache):
        client, _ = await api("ok")
        await client.post("/chat/topic-1/messages", json={"message": "oi"})
        resp = await client.delete("/chat/topic-1")
        assert resp.status_code == 204
        assert "topic-1" not in cache.store
        assert (await client.get("/chat/topic-1")).json()["messages"] == []


class TestChatSessions:

    @pytest.fixture
    async def small_app(self, cache):
        invoker = LLMInvoker(AISettings(), transports={"claude": FakeTransport("ok")},
                             retry_policy=FAST_RETRY)
        app = create_app(invoker=invoker, chat_cache=cache, max_chat_sessions=2)
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield app, client

    async def test_least_recently_used_evicted(self, small_app):
        app, client = small_app
        for topic in ("a", "b", "a", "c"):
            assert (await client.get(f"/chat/{topic}")).status_code == 200
        assert list(app.state.chat_sessions) == ["a", "c"]

    async def test_evicted_session_reloads_from_cache(self, small_app, cache):
        app, client = small_app
        await client.post("/chat/a/messages", json={"message": "oi"})
        await client.get("/chat/b")
        await client.get("/chat/c")
        assert "a" not in app.state.chat_sessions

        history = (await client.get("/chat/a")).json()
        assert [m["content"] for m in history["messages"]] == ["oi", "ok"]

    async def test_generating_session_not_evicted(self, small_app):
        app, client = small_app
        await client.get("/chat/a")
        app.state.chat_sessions["a"].generating = True
        await client.get("/chat/b")
        await client.get("/chat/c")
        assert list(app.state.chat_sessions) == ["a", "c"]

    async def test_clear_drops_session(self, small_app):
        app, client = small_app
        await client.post("/chat/a/messages", json={"message": "oi"})
        assert (await client.delete("/chat/a")).status_code == 204
        assert "a" not in app.state.chat_sessions

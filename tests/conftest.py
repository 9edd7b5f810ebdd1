"""Shared fixtures: scripted transports, in-memory chat cache, fast retries."""

from typing import Union

import pytest

from sentencify.config import AISettings
from sentencify.llm.invoker import LLMInvoker
from sentencify.llm.metrics import TokenUsage
from sentencify.llm.request_builder import ProviderPayload
from sentencify.llm.retry import AI_RETRY_POLICY
from sentencify.llm.transport import ProviderError, ProviderResponse

FAST_RETRY = AI_RETRY_POLICY.with_updates(initial_delay=0.0, timeout=5.0)


class FakeTransport:
    """Returns scripted responses in order; exceptions in the script are raised."""

    def __init__(self, *script: Union[str, ProviderResponse, Exception]):
        self.script = list(script)
        self.payloads: list[ProviderPayload] = []

    @property
    def calls(self) -> int:
        return len(self.payloads)

    async def send(self, payload: ProviderPayload) -> ProviderResponse:
        self.payloads.append(payload)
        if not self.script:
            raise AssertionError("FakeTransport script exhausted")
        item = self.script.pop(0) if len(self.script) > 1 else self.script[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, ProviderResponse):
            return item
        return ProviderResponse(
            text=item,
            usage=TokenUsage(input_tokens=10, output_tokens=5),
            stop_reason="end_turn",
        )


class MemoryChatCache:
    """In-memory ChatCache that can be told to fail."""

    def __init__(self, fail: bool = False):
        self.store: dict[str, list] = {}
        self.fail = fail
        self.saves = 0

    async def get_chat(self, key):
        if self.fail:
            raise RuntimeError("cache unavailable")
        return list(self.store.get(key, []))

    async def save_chat(self, key, messages):
        if self.fail:
            raise RuntimeError("cache unavailable")
        self.saves += 1
        self.store[key] = list(messages)

    async def delete_chat(self, key):
        if self.fail:
            raise RuntimeError("cache unavailable")
        self.store.pop(key, None)


def overloaded() -> ProviderError:
    return ProviderError("HTTP 529: Overloaded", status_code=529)


def unauthorized() -> ProviderError:
    return ProviderError("HTTP 401: invalid x-api-key", status_code=401)


@pytest.fixture
def settings():
    return AISettings()


@pytest.fixture
def make_invoker(settings):
    def _make(*script, **kwargs):
        transport = FakeTransport(*script)
        invoker = LLMInvoker(
            kwargs.pop("settings", settings),
            transports={"claude": transport, "openai": transport},
            retry_policy=kwargs.pop("retry_policy", FAST_RETRY),
        )
        return invoker, transport
    return _make

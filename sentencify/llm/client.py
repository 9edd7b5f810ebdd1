"""Transport construction.

  get_transport(settings)            → transport for the current provider
  get_transport(settings, "openai")  → transport for a specific provider

Anthropic goes over raw httpx (prompt caching and thinking need the
Messages API body). Everything else is treated as OpenAI-compatible and goes
through ChatOpenAI, with thinking toggled per request via
chat_template_kwargs.
"""

from typing import Optional

import httpx

from sentencify.config import AISettings
from sentencify.llm.transport import AnthropicTransport, OpenAICompatibleTransport, Transport
from sentencify.utils.logging import log, get_logger

MODULE = "llm.client"
logger = get_logger()


class ProviderNotConfiguredError(Exception):
    """Raised when a provider has no endpoint or credentials."""


def get_transport(
    settings: AISettings,
    provider: Optional[str] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> Transport:
    """Build the transport for ``provider`` (default: the current provider)."""
    name = provider or settings.provider
    config = settings.provider_config(name)
    if config is None or not config.is_configured():
        raise ProviderNotConfiguredError(f"Provider '{name}' is not configured")

    if name == "claude":
        transport: Transport = AnthropicTransport(config, client=http_client)
    else:
        transport = OpenAICompatibleTransport(config)

    log.debug(logger, MODULE, "transport_init", "Transport created",
              provider=name, base_url=config.base_url, model=config.model)
    return transport

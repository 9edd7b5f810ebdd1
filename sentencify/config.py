"""Runtime configuration for the orchestration layer.

Settings are immutable pydantic records. Changing a setting means building a
new record from the old one:

  settings = load_settings()
  settings = settings.with_updates(use_extended_thinking=True)

Fields that are not named in the update keep their current values, and the
new record is validated against the same schema as the old one.

Environment variables (all optional):
  AI_PROVIDER              "claude" (default) or "openai"
  ANTHROPIC_API_KEY        Claude credentials
  ANTHROPIC_MODEL          default "claude-sonnet-4-20250514"
  ANTHROPIC_BASE_URL       default "https://api.anthropic.com"
  OPENAI_BASE_URL          any OpenAI-compatible endpoint (llama.cpp, vLLM, ...)
  OPENAI_API_KEY           default "not-needed"
  OPENAI_MODEL             default "gpt-4.1"
  EXTENDED_THINKING        "1"/"true" to enable reasoning budgets
  THINKING_BUDGET          default 10000
  DOUBLE_CHECK_ENABLED     "1"/"true" to enable the audit pass
  DOUBLE_CHECK_PROVIDER    provider used by the audit pass
  DOUBLE_CHECK_MODEL       model used by the audit pass
  DOUBLE_CHECK_OPERATIONS  comma-separated operation names
"""

import os
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr

Provider = Literal["claude", "openai"]

DOUBLE_CHECK_OPERATIONS = (
    "topicExtraction",
    "dispositivo",
    "sentenceReview",
    "factsComparison",
    "proofAnalysis",
    "quickPrompt",
)


class ProviderConfig(BaseModel):
    """Connection settings for one LLM provider."""

    model_config = ConfigDict(frozen=True)

    model: str
    base_url: str
    api_key: SecretStr = SecretStr("")
    requires_key: bool = True
    request_timeout: float = 300.0

    def is_configured(self) -> bool:
        if not self.base_url:
            return False
        return bool(self.api_key.get_secret_value()) or not self.requires_key


class DoubleCheckSettings(BaseModel):
    """Which operations get a second, auditing model pass."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    provider: Provider = "claude"
    model: str = "claude-sonnet-4-20250514"
    operations: frozenset[str] = frozenset()

    def applies_to(self, operation: str) -> bool:
        return self.enabled and operation in self.operations


def _default_providers() -> dict[str, ProviderConfig]:
    return {
        "claude": ProviderConfig(
            model="claude-sonnet-4-20250514",
            base_url="https://api.anthropic.com",
        ),
        "openai": ProviderConfig(
            model="gpt-4.1",
            base_url="",
            api_key=SecretStr("not-needed"),
            requires_key=False,
        ),
    }


class AISettings(BaseModel):
    """Top-level AI settings shared by every operation."""

    model_config = ConfigDict(frozen=True)

    provider: Provider = "claude"
    providers: dict[str, ProviderConfig] = Field(default_factory=_default_providers)
    use_extended_thinking: bool = False
    thinking_budget: int = Field(default=10000, ge=0)
    custom_prompt: str = ""
    double_check: DoubleCheckSettings = Field(default_factory=DoubleCheckSettings)

    def provider_config(self, provider: Optional[str] = None) -> Optional[ProviderConfig]:
        return self.providers.get(provider or self.provider)

    def current_model(self, provider: Optional[str] = None) -> str:
        config = self.provider_config(provider)
        return config.model if config else ""

    def with_updates(self, **changes: Any) -> "AISettings":
        """Return a new validated record with ``changes`` applied."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self).model_validate(data)

    def with_provider_updates(self, provider: str, **changes: Any) -> "AISettings":
        """Return a new record with one provider's config updated."""
        current = self.providers.get(provider)
        if current is None:
            updated = ProviderConfig.model_validate(changes)
        else:
            data = {name: getattr(current, name) for name in ProviderConfig.model_fields}
            data.update(changes)
            updated = ProviderConfig.model_validate(data)
        return self.with_updates(providers={**self.providers, provider: updated})


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_settings() -> AISettings:
    """Build settings from the environment."""
    operations = os.getenv("DOUBLE_CHECK_OPERATIONS", "")
    providers = {
        "claude": ProviderConfig(
            model=os.getenv("ANTHROPIC_MODEL", "claude-sonnet-4-20250514"),
            base_url=os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com"),
            api_key=SecretStr(os.getenv("ANTHROPIC_API_KEY", "")),
        ),
        "openai": ProviderConfig(
            model=os.getenv("OPENAI_MODEL", "gpt-4.1"),
            base_url=os.getenv("OPENAI_BASE_URL", ""),
            api_key=SecretStr(os.getenv("OPENAI_API_KEY", "not-needed")),
            requires_key=False,
        ),
    }
    return AISettings(
        provider=os.getenv("AI_PROVIDER", "claude"),
        providers=providers,
        use_extended_thinking=_env_flag("EXTENDED_THINKING"),
        thinking_budget=int(os.getenv("THINKING_BUDGET", "10000")),
        double_check=DoubleCheckSettings(
            enabled=_env_flag("DOUBLE_CHECK_ENABLED"),
            provider=os.getenv("DOUBLE_CHECK_PROVIDER", "claude"),
            model=os.getenv("DOUBLE_CHECK_MODEL", "claude-sonnet-4-20250514"),
            operations=frozenset(
                op.strip() for op in operations.split(",") if op.strip()
            ),
        ),
    )

from __future__ import annotations
from typing import Any, Callable, Dict, List, Mapping, Optional

import httpx

from chat_relay.providers.anthropic import AnthropicProvider
from chat_relay.providers.gemini import GeminiProvider
from chat_relay.providers.openai import OpenAIProvider
from chat_relay.providers.types import ProviderKind, StreamingProvider

DEEPSEEK_BASE_URL = "https://api.deepseek.com"

DEFAULT_MODELS: Dict[ProviderKind, str] = {
    ProviderKind.DEEPSEEK: "deepseek-chat",
    ProviderKind.OPENAI: "gpt-4o-mini",
    ProviderKind.ANTHROPIC: "claude-3-5-sonnet-20241022",
    ProviderKind.GOOGLE: "gemini-1.5-flash",
}

# factory(api_key, options) -> adapter; options carries timeout, max_tokens, transport
ProviderFactory = Callable[[str, Mapping[str, Any]], StreamingProvider]

FACTORIES: Dict[ProviderKind, ProviderFactory] = {
    ProviderKind.DEEPSEEK: lambda key, o: OpenAIProvider(
        key, base_url=DEEPSEEK_BASE_URL, timeout=o["timeout"], transport=o.get("transport")
    ),
    ProviderKind.OPENAI: lambda key, o: OpenAIProvider(
        key, timeout=o["timeout"], transport=o.get("transport")
    ),
    ProviderKind.ANTHROPIC: lambda key, o: AnthropicProvider(
        key, timeout=o["timeout"], max_tokens=o["max_tokens"], transport=o.get("transport")
    ),
    ProviderKind.GOOGLE: lambda key, o: GeminiProvider(
        key, timeout=o["timeout"], transport=o.get("transport")
    ),
}


def parse_kind(provider: Any) -> ProviderKind:
    try:
        return ProviderKind(provider)
    except (ValueError, TypeError):
        raise KeyError(f"Unknown provider: {provider}") from None


class ProviderRegistry:
    """Maps a provider kind to a per-request adapter constructor.

    Adapters are built fresh for every call with the caller's credential;
    nothing is cached between calls.
    """

    def __init__(
        self,
        timeout: float = 60.0,
        max_tokens: int = 4096,
        factories: Optional[Mapping[ProviderKind, ProviderFactory]] = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.factories: Dict[ProviderKind, ProviderFactory] = dict(factories or FACTORIES)
        self.options: Dict[str, Any] = {
            "timeout": timeout,
            "max_tokens": max_tokens,
            "transport": transport,
        }

    @classmethod
    def from_settings(cls, settings: Mapping[str, Any]) -> "ProviderRegistry":
        return cls(
            timeout=settings["RELAY_UPSTREAM_TIMEOUT"],
            max_tokens=settings["RELAY_MAX_TOKENS"],
        )

    def kinds(self) -> List[ProviderKind]:
        return list(self.factories)

    @staticmethod
    def resolve_model(kind: ProviderKind, model: Optional[str] = None) -> str:
        return model or DEFAULT_MODELS[kind]

    def create(self, kind: ProviderKind, api_key: str) -> StreamingProvider:
        if kind not in self.factories:
            raise KeyError(f"Unknown provider: {kind}")
        return self.factories[kind](api_key, self.options)

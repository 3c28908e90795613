"""Provider adapters and the kind -> adapter dispatch table."""

from chat_relay.providers.registry import DEFAULT_MODELS, ProviderRegistry, parse_kind
from chat_relay.providers.types import ProviderKind, ProviderRequest, StreamingProvider

__all__ = [
    "DEFAULT_MODELS",
    "ProviderKind",
    "ProviderRegistry",
    "ProviderRequest",
    "StreamingProvider",
    "parse_kind",
]

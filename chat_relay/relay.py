"""Stateless relay: validate a chat request, open a provider stream, hand back deltas."""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional

from chat_relay.errors import (
    MissingCredential,
    MissingMessages,
    ProviderConfigurationFailure,
    StreamStartFailure,
    UnknownProvider,
)
from chat_relay.providers.registry import ProviderRegistry, parse_kind
from chat_relay.providers.types import ProviderKind, ProviderRequest

logger = logging.getLogger(__name__)


@dataclass
class RelayRequest:
    messages: List[Dict[str, str]]
    provider: ProviderKind
    api_key: str
    model: Optional[str] = None


def validate_request(body: Any) -> RelayRequest:
    """Check a decoded request body; the first failing rule wins."""
    if not isinstance(body, dict):
        body = {}
    messages = body.get("messages")
    if messages is None or not isinstance(messages, list):
        raise MissingMessages()
    api_key = body.get("apiKey")
    if not api_key or not isinstance(api_key, str):
        raise MissingCredential()
    try:
        kind = parse_kind(body.get("provider"))
    except KeyError:
        raise UnknownProvider() from None
    model = body.get("model")
    return RelayRequest(
        messages=[
            {"role": str(m.get("role") or "user"), "content": str(m.get("content") or "")}
            for m in messages
            if isinstance(m, dict)
        ],
        provider=kind,
        api_key=api_key,
        model=model if isinstance(model, str) and model else None,
    )


class ChatRelay:
    def __init__(self, registry: ProviderRegistry) -> None:
        self.registry = registry

    async def open_stream(self, req: RelayRequest) -> AsyncIterator[str]:
        """Start the upstream stream and return an iterator over its deltas.

        The first delta is awaited here so configuration and start-up errors
        surface before any response bytes are sent.
        """
        model = self.registry.resolve_model(req.provider, req.model)
        logger.info("relay call provider=%s model=%s messages=%d", req.provider.value, model, len(req.messages))
        try:
            adapter = self.registry.create(req.provider, req.api_key)
        except Exception as e:
            logger.exception("provider configuration failed for %s", req.provider.value)
            raise ProviderConfigurationFailure(str(e) or None) from e

        deltas = adapter.stream(ProviderRequest(model=model, messages=req.messages))
        first: Optional[str]
        try:
            first = await deltas.__anext__()
        except StopAsyncIteration:
            first = None
        except Exception as e:
            logger.exception("stream start failed for %s", req.provider.value)
            raise StreamStartFailure(str(e) or None) from e
        return self._continue(first, deltas, req.provider)

    @staticmethod
    async def _continue(first: Optional[str], deltas: AsyncIterator[str], kind: ProviderKind) -> AsyncIterator[str]:
        if first is None:
            return
        try:
            yield first
            async for delta in deltas:
                yield delta
        except Exception as e:
            # status is already sent; end the body early
            logger.error("stream from %s ended with error: %s", kind.value, e)
        finally:
            aclose = getattr(deltas, "aclose", None)
            if aclose is not None:
                await aclose()

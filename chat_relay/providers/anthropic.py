from __future__ import annotations
from typing import Any, AsyncIterator, Dict, List

import httpx

from chat_relay.errors import ProviderError
from chat_relay.providers.sse import iter_sse_data, load_event, raise_for_upstream
from chat_relay.providers.types import ProviderRequest

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


def split_system(messages: List[Dict[str, str]]) -> tuple[str, List[Dict[str, str]]]:
    """Pull system messages out of the history; the Messages API takes them separately."""
    system = [m.get("content", "") for m in messages if m.get("role") == "system"]
    rest = [
        {"role": m.get("role", "user"), "content": m.get("content", "")}
        for m in messages
        if m.get("role") != "system"
    ]
    return "\n\n".join(s for s in system if s), rest


class AnthropicProvider:
    name = "anthropic"

    def __init__(
        self,
        api_key: str,
        base_url: str = ANTHROPIC_BASE_URL,
        timeout: float = 60.0,
        max_tokens: int = 4096,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.transport = transport

    async def stream(self, req: ProviderRequest) -> AsyncIterator[str]:
        system, messages = split_system(req.messages)
        payload: Dict[str, Any] = {
            "model": req.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "stream": True,
        }
        if system:
            payload["system"] = system
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            async with client.stream("POST", f"{self.base_url}/messages", json=payload, headers=headers) as r:
                await raise_for_upstream(r, self.name)
                async for data in iter_sse_data(r):
                    event = load_event(data)
                    kind = event.get("type")
                    if kind == "error":
                        err = event.get("error") or {}
                        raise ProviderError(str(err.get("message") or "anthropic stream error"))
                    if kind == "message_stop":
                        break
                    if kind == "content_block_delta":
                        text = (event.get("delta") or {}).get("text")
                        if isinstance(text, str) and text:
                            yield text

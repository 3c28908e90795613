from __future__ import annotations
from typing import Any, AsyncIterator, Dict

import httpx

from chat_relay.errors import ProviderError
from chat_relay.providers.sse import iter_sse_data, load_event, raise_for_upstream
from chat_relay.providers.types import ProviderRequest

OPENAI_BASE_URL = "https://api.openai.com/v1"


class OpenAIProvider:
    """Streaming client for OpenAI and OpenAI-compatible chat completion APIs."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        base_url: str = OPENAI_BASE_URL,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def stream(self, req: ProviderRequest) -> AsyncIterator[str]:
        url = f"{self.base_url}/chat/completions"
        payload: Dict[str, Any] = {
            "model": req.model,
            "messages": req.messages,
            "stream": True,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            async with client.stream("POST", url, json=payload, headers=headers) as r:
                await raise_for_upstream(r, self.name)
                async for data in iter_sse_data(r):
                    if data.strip() == "[DONE]":
                        break
                    event = load_event(data)
                    if event.get("error"):
                        err = event["error"]
                        raise ProviderError(str(err.get("message") if isinstance(err, dict) else err))
                    delta = ((event.get("choices") or [{}])[0] or {}).get("delta") or {}
                    text = delta.get("content")
                    if isinstance(text, str) and text:
                        yield text

from __future__ import annotations
from typing import Any, AsyncIterator, Dict, List

import httpx

from chat_relay.errors import ProviderError
from chat_relay.providers.sse import iter_sse_data, load_event, raise_for_upstream
from chat_relay.providers.types import ProviderRequest

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


def to_contents(messages: List[Dict[str, str]]) -> tuple[List[Dict[str, Any]], str]:
    # Gemini calls the assistant role "model" and takes system text as systemInstruction
    contents: List[Dict[str, Any]] = []
    system: List[str] = []
    for m in messages:
        role = m.get("role")
        text = m.get("content", "")
        if role == "system":
            system.append(text)
            continue
        contents.append({
            "role": "model" if role == "assistant" else "user",
            "parts": [{"text": text}],
        })
    return contents, "\n\n".join(s for s in system if s)


class GeminiProvider:
    name = "google"

    def __init__(
        self,
        api_key: str,
        base_url: str = GEMINI_BASE_URL,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def stream(self, req: ProviderRequest) -> AsyncIterator[str]:
        url = f"{self.base_url}/models/{req.model}:streamGenerateContent"
        contents, system = to_contents(req.messages)
        payload: Dict[str, Any] = {"contents": contents}
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        headers = {
            "x-goog-api-key": self.api_key,
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            async with client.stream("POST", url, params={"alt": "sse"}, json=payload, headers=headers) as r:
                await raise_for_upstream(r, self.name)
                async for data in iter_sse_data(r):
                    event = load_event(data)
                    if event.get("error"):
                        err = event["error"]
                        raise ProviderError(str(err.get("message") if isinstance(err, dict) else err))
                    candidate = (event.get("candidates") or [{}])[0] or {}
                    for part in (candidate.get("content") or {}).get("parts") or []:
                        text = part.get("text") if isinstance(part, dict) else None
                        if isinstance(text, str) and text:
                            yield text

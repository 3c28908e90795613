"""Client side of the relay: send a turn, read the streamed reply, commit it."""

from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional

import httpx

from chat_relay.errors import LocalPreconditionFailure, RelayCallFailure
from chat_relay.protocol import decode_text_stream
from chat_relay.store import ConversationStore

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"


class StreamConsumer:
    """Sends one conversation turn at a time through the relay.

    The user message is committed before the network call; the assistant
    message is committed only once the stream has ended, and only if it
    carried any text.
    """

    def __init__(
        self,
        store: ConversationStore,
        base_url: str = "http://127.0.0.1:8000",
        client: Optional[httpx.AsyncClient] = None,
        read_timeout: float = 120.0,
    ) -> None:
        self.store = store
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.read_timeout = read_timeout
        self.is_streaming = False

    def _check_preconditions(self) -> Dict[str, str]:
        if not self.store.current_conversation_id or self.store.current_conversation is None:
            raise LocalPreconditionFailure("Create a conversation first")
        cfg = self.store.provider_config()
        if not cfg.get("apiKey"):
            raise LocalPreconditionFailure(
                f"Configure the {self.store.current_provider.value} API key first"
            )
        return cfg

    async def send(self, text: str) -> Optional[str]:
        user_message = (text or "").strip()
        if not user_message:
            return None
        cfg = self._check_preconditions()
        conversation_id = self.store.current_conversation_id
        history = self.store.history(conversation_id)

        self.is_streaming = True
        try:
            self.store.append(conversation_id, "user", user_message)
            payload: Dict[str, Any] = {
                "messages": history + [{"role": "user", "content": user_message}],
                "provider": self.store.current_provider.value,
                "apiKey": cfg["apiKey"],
                "model": cfg.get("model") or "",
            }
            assistant_message = await self._relay(payload)
            if assistant_message:
                self.store.append(conversation_id, "assistant", assistant_message)
                return assistant_message
            return None
        finally:
            self.is_streaming = False

    async def _relay(self, payload: Dict[str, Any]) -> str:
        client = self._client or httpx.AsyncClient(
            timeout=httpx.Timeout(10.0, read=self.read_timeout)
        )
        try:
            async with client.stream("POST", f"{self.base_url}{CHAT_PATH}", json=payload) as r:
                if not r.is_success:
                    raise RelayCallFailure(await self._error_message(r), status=r.status_code)
                parts = [text async for text in decode_text_stream(r.aiter_bytes())]
                return "".join(parts)
        except httpx.HTTPError as e:
            logger.error("relay call failed: %s", e)
            raise RelayCallFailure(str(e) or "API call failed") from e
        finally:
            if self._client is None:
                await client.aclose()

    @staticmethod
    async def _error_message(response: httpx.Response) -> str:
        body = await response.aread()
        try:
            data = json.loads(body)
        except ValueError:
            data = None
        if isinstance(data, dict) and isinstance(data.get("error"), str) and data["error"]:
            return data["error"]
        return "API call failed"

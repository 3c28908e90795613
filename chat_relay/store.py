"""Conversation store: conversations, per-provider API config and the current provider.

All mutation goes through the store's methods; each mutation writes the whole
document back to disk when the store has a path.
"""

from __future__ import annotations
import json
import logging
import os
import random
import string
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from jsonschema import Draft202012Validator

from chat_relay.providers.types import ProviderKind

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "New chat"
DEFAULT_PROVIDER = ProviderKind.DEEPSEEK
CONFIG_FIELDS = ("apiKey", "model")

STORE_SCHEMA_PATH = Path(__file__).resolve().parent / "store.schema.json"
_validator = Draft202012Validator(json.loads(STORE_SCHEMA_PATH.read_text(encoding="utf-8")))


def validate_document(data: Any) -> List[str]:
    errors = sorted(_validator.iter_errors(data), key=lambda e: [str(p) for p in e.path])
    return [f"{'/'.join(map(str, e.path)) or '<root>'}: {e.message}" for e in errors]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _new_id(prefix: str) -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{prefix}_{_now_ms()}_{suffix}"


class ConversationStore:
    def __init__(self, path: Optional[Path] = None) -> None:
        self.path: Optional[Path] = Path(path) if path else None
        self.conversations: List[Dict[str, Any]] = []
        self.current_conversation_id: Optional[str] = None
        self.api_config: Dict[str, Dict[str, str]] = {}
        self.current_provider: ProviderKind = DEFAULT_PROVIDER

    # ---------------- persistence ----------------

    def load(self) -> "ConversationStore":
        """Read the store document; a missing or invalid document leaves the store empty."""
        if self.path is None or not self.path.exists():
            return self
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.error("could not read store %s: %s", self.path, e)
            return self
        errors = validate_document(data)
        if errors:
            logger.error("store %s failed validation: %s", self.path, "; ".join(errors))
            return self
        self.conversations = list(data.get("conversations") or [])
        self.api_config = dict(data.get("apiConfig") or {})
        self.current_provider = ProviderKind(data.get("currentProvider") or DEFAULT_PROVIDER.value)
        self.current_conversation_id = self.conversations[0]["id"] if self.conversations else None
        return self

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conversations": self.conversations,
            "currentProvider": self.current_provider.value,
            "apiConfig": self.api_config,
        }

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(self.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)

    # ---------------- conversations ----------------

    def _find(self, conversation_id: Optional[str]) -> Optional[Dict[str, Any]]:
        for c in self.conversations:
            if c["id"] == conversation_id:
                return c
        return None

    @property
    def current_conversation(self) -> Optional[Dict[str, Any]]:
        return self._find(self.current_conversation_id)

    def history(self, conversation_id: str) -> List[Dict[str, str]]:
        conv = self._find(conversation_id)
        if conv is None:
            return []
        return [{"role": m["role"], "content": m["content"]} for m in conv["messages"]]

    def create_conversation(self, title: Optional[str] = None) -> str:
        now = _now_ms()
        conv = {
            "id": _new_id("conv"),
            "title": title or DEFAULT_TITLE,
            "messages": [],
            "createdAt": now,
            "updatedAt": now,
        }
        self.conversations.append(conv)
        self.current_conversation_id = conv["id"]
        self._save()
        return conv["id"]

    def delete_conversation(self, conversation_id: str) -> None:
        self.conversations = [c for c in self.conversations if c["id"] != conversation_id]
        if self.current_conversation_id == conversation_id:
            self.current_conversation_id = self.conversations[0]["id"] if self.conversations else None
        self._save()

    def set_current_conversation(self, conversation_id: str) -> None:
        self.current_conversation_id = conversation_id

    def append(self, conversation_id: str, role: str, content: str) -> Optional[Dict[str, Any]]:
        conv = self._find(conversation_id)
        if conv is None:
            return None
        message = {
            "id": _new_id("msg"),
            "role": role,
            "content": content,
            "timestamp": _now_ms(),
        }
        conv["messages"].append(message)
        conv["updatedAt"] = message["timestamp"]
        self._save()
        return message

    def update_message(self, conversation_id: str, message_id: str, content: str) -> None:
        conv = self._find(conversation_id)
        if conv is None:
            return
        for m in conv["messages"]:
            if m["id"] == message_id:
                m["content"] = content
                conv["updatedAt"] = _now_ms()
                self._save()
                return

    def clear_conversations(self) -> None:
        self.conversations = []
        self.current_conversation_id = None
        self._save()

    # ---------------- provider config ----------------

    def set_config(self, provider: ProviderKind, **fields: Optional[str]) -> None:
        """Merge `apiKey` and `model` into the provider's config."""
        unknown = set(fields) - set(CONFIG_FIELDS)
        if unknown:
            raise KeyError(f"Unknown config field(s): {', '.join(sorted(unknown))}")
        kind = ProviderKind(provider)
        cfg = dict(self.api_config.get(kind.value) or {})
        cfg.update({k: v for k, v in fields.items() if v is not None})
        self.api_config[kind.value] = cfg
        self._save()

    def provider_config(self, provider: Optional[ProviderKind] = None) -> Dict[str, str]:
        kind = ProviderKind(provider or self.current_provider)
        return dict(self.api_config.get(kind.value) or {})

    def set_current_provider(self, provider: ProviderKind) -> None:
        self.current_provider = ProviderKind(provider)
        self._save()

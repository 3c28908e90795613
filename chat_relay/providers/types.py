from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Dict, List, Protocol


class ProviderKind(str, Enum):
    DEEPSEEK = "deepseek"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"


@dataclass
class ProviderRequest:
    model: str
    messages: List[Dict[str, str]]  # [{role, content}]


class StreamingProvider(Protocol):
    """Uniform capability every adapter exposes to the relay."""

    def stream(self, req: ProviderRequest) -> AsyncIterator[str]:
        """Yield text deltas in arrival order."""

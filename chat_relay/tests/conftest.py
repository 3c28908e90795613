from __future__ import annotations
from typing import Any, Dict, List, Optional

import pytest

from chat_relay.providers.registry import ProviderRegistry
from chat_relay.providers.types import ProviderKind, ProviderRequest


class FakeProvider:
    """Adapter stand-in that records each request and replays canned deltas."""

    def __init__(self, kind: ProviderKind, api_key: str, deltas: List[str], calls: List[Dict[str, Any]],
                 fail_with: Optional[Exception] = None, fail_after: Optional[Exception] = None) -> None:
        self.kind = kind
        self.api_key = api_key
        self.deltas = deltas
        self.calls = calls
        self.fail_with = fail_with
        self.fail_after = fail_after

    async def stream(self, req: ProviderRequest):
        self.calls.append({"kind": self.kind, "api_key": self.api_key, "model": req.model, "messages": req.messages})
        if self.fail_with is not None:
            raise self.fail_with
        for d in self.deltas:
            yield d
        if self.fail_after is not None:
            raise self.fail_after


@pytest.fixture
def fake_registry():
    """Build a registry whose every kind produces a FakeProvider."""

    def _make(deltas: List[str] | None = None, fail_with: Optional[Exception] = None,
              fail_after: Optional[Exception] = None):
        calls: List[Dict[str, Any]] = []
        created: List[ProviderKind] = []

        def factory_for(kind: ProviderKind):
            def factory(key, options):
                created.append(kind)
                return FakeProvider(kind, key, list(deltas or []), calls, fail_with=fail_with, fail_after=fail_after)
            return factory

        registry = ProviderRegistry(factories={k: factory_for(k) for k in ProviderKind})
        registry.calls = calls  # type: ignore[attr-defined]
        registry.created = created  # type: ignore[attr-defined]
        return registry

    return _make

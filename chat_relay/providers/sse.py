from __future__ import annotations
import json
import re
from typing import AsyncIterator

import httpx

from chat_relay.errors import ProviderError


# SSE terminators only; str.splitlines would also break on U+2028, U+2029 and U+0085
_LINE_BREAK = re.compile(r"\r\n|\r|\n")


async def iter_sse_lines(response: httpx.Response) -> AsyncIterator[str]:
    pending = ""
    async for text in response.aiter_text():
        pending += text
        # a trailing \r may be the first half of \r\n
        hold_cr = pending.endswith("\r")
        if hold_cr:
            pending = pending[:-1]
        *lines, pending = _LINE_BREAK.split(pending)
        if hold_cr:
            pending += "\r"
        for line in lines:
            yield line
    if pending:
        for line in _LINE_BREAK.split(pending):
            yield line


async def iter_sse_data(response: httpx.Response) -> AsyncIterator[str]:
    """Yield the payload of each server-sent event in a streamed response.

    Multi-line ``data:`` fields are joined with newlines, per the SSE format.
    """
    data_lines: list[str] = []
    async for line in iter_sse_lines(response):
        if not line:
            if data_lines:
                yield "\n".join(data_lines)
                data_lines = []
            continue
        if line.startswith(":"):
            continue
        if line.startswith("data:"):
            value = line[5:]
            data_lines.append(value[1:] if value.startswith(" ") else value)
    if data_lines:
        yield "\n".join(data_lines)


async def raise_for_upstream(response: httpx.Response, provider: str) -> None:
    if response.status_code < 400:
        return
    body = await response.aread()
    message = ""
    try:
        data = json.loads(body)
        err = data.get("error") if isinstance(data, dict) else None
        if isinstance(err, dict):
            message = str(err.get("message") or "")
        elif isinstance(err, str):
            message = err
    except ValueError:
        message = body.decode("utf-8", errors="replace").strip()
    raise ProviderError(
        f"{provider} API error {response.status_code}" + (f": {message}" if message else ""),
        status=response.status_code,
    )


def load_event(data: str) -> dict:
    try:
        event = json.loads(data)
    except ValueError:
        return {}
    return event if isinstance(event, dict) else {}

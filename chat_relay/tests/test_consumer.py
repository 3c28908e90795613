import json

import httpx
import pytest

from chat_relay.app import create_app
from chat_relay.consumer import StreamConsumer
from chat_relay.errors import LocalPreconditionFailure, RelayCallFailure
from chat_relay.providers.types import ProviderKind
from chat_relay.store import ConversationStore


def ready_store(provider: ProviderKind = ProviderKind.DEEPSEEK) -> ConversationStore:
    store = ConversationStore()
    store.create_conversation("test")
    store.set_current_provider(provider)
    store.set_config(provider, apiKey="sk-1", model="")
    return store


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def streaming_handler(chunks, seen=None, status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)

        async def body():
            for c in chunks:
                yield c

        return httpx.Response(status, content=body())
    return handler


def roles(store: ConversationStore):
    return [m["role"] for m in store.current_conversation["messages"]]


@pytest.mark.asyncio
async def test_reassembles_hello_world():
    store = ready_store()
    seen: list = []
    consumer = StreamConsumer(store, client=mock_client(streaming_handler([b'0:"Hello"\n', b'0:" world"\n'], seen)))
    reply = await consumer.send("hi there")
    assert reply == "Hello world"
    msgs = store.current_conversation["messages"]
    assert [(m["role"], m["content"]) for m in msgs] == [("user", "hi there"), ("assistant", "Hello world")]
    payload = json.loads(seen[0].content)
    assert payload == {
        "messages": [{"role": "user", "content": "hi there"}],
        "provider": "deepseek",
        "apiKey": "sk-1",
        "model": "",
    }
    assert seen[0].url.path == "/api/chat"


@pytest.mark.asyncio
async def test_sends_prior_history():
    store = ready_store(ProviderKind.ANTHROPIC)
    cid = store.current_conversation_id
    store.append(cid, "user", "first")
    store.append(cid, "assistant", "answer")
    seen: list = []
    consumer = StreamConsumer(store, client=mock_client(streaming_handler([b'0:"ok"\n'], seen)))
    await consumer.send("second")
    payload = json.loads(seen[0].content)
    assert [m["content"] for m in payload["messages"]] == ["first", "answer", "second"]
    assert payload["provider"] == "anthropic"


@pytest.mark.asyncio
async def test_chunk_boundaries_inside_lines_and_utf8():
    store = ready_store()
    data = '0:"Grüße"\n0:" ✓"\n'.encode("utf-8")
    chunks = [data[i:i + 3] for i in range(0, len(data), 3)]
    consumer = StreamConsumer(store, client=mock_client(streaming_handler(chunks)))
    assert await consumer.send("x") == "Grüße ✓"


@pytest.mark.asyncio
async def test_no_tagged_lines_commits_nothing():
    store = ready_store()
    consumer = StreamConsumer(store, client=mock_client(streaming_handler([b'e:{"finishReason":"stop"}\n', b"\n"])))
    assert await consumer.send("hello") is None
    assert roles(store) == ["user"]


@pytest.mark.asyncio
async def test_no_conversation_selected_fails_locally():
    store = ConversationStore()
    store.set_config(ProviderKind.DEEPSEEK, apiKey="k")
    seen: list = []
    consumer = StreamConsumer(store, client=mock_client(streaming_handler([], seen)))
    with pytest.raises(LocalPreconditionFailure, match="conversation"):
        await consumer.send("hello")
    assert seen == []


@pytest.mark.asyncio
async def test_missing_credential_fails_locally_naming_provider():
    store = ConversationStore()
    store.create_conversation()
    store.set_current_provider(ProviderKind.GOOGLE)
    store.set_config(ProviderKind.OPENAI, apiKey="other")
    seen: list = []
    consumer = StreamConsumer(store, client=mock_client(streaming_handler([], seen)))
    with pytest.raises(LocalPreconditionFailure, match="google"):
        await consumer.send("hello")
    assert seen == []
    assert store.current_conversation["messages"] == []


@pytest.mark.asyncio
async def test_blank_input_is_ignored():
    store = ready_store()
    seen: list = []
    consumer = StreamConsumer(store, client=mock_client(streaming_handler([], seen)))
    assert await consumer.send("   ") is None
    assert seen == []
    assert store.current_conversation["messages"] == []


@pytest.mark.asyncio
async def test_error_response_reports_message_and_keeps_user_message():
    store = ready_store()

    def handler(request):
        return httpx.Response(500, json={"error": "openai API error 401: bad key"})

    consumer = StreamConsumer(store, client=mock_client(handler))
    with pytest.raises(RelayCallFailure, match="bad key") as ei:
        await consumer.send("hello")
    assert ei.value.status == 500
    assert roles(store) == ["user"]
    assert consumer.is_streaming is False


@pytest.mark.asyncio
async def test_error_response_without_error_field_uses_fallback():
    store = ready_store()
    consumer = StreamConsumer(store, client=mock_client(lambda request: httpx.Response(502, text="Bad Gateway")))
    with pytest.raises(RelayCallFailure, match="API call failed"):
        await consumer.send("hello")


@pytest.mark.asyncio
async def test_network_failure_keeps_user_message():
    store = ready_store()

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    consumer = StreamConsumer(store, client=mock_client(handler))
    with pytest.raises(RelayCallFailure, match="connection refused"):
        await consumer.send("hello")
    assert roles(store) == ["user"]
    assert consumer.is_streaming is False


@pytest.mark.asyncio
async def test_is_streaming_while_reading():
    store = ready_store()
    observed = []
    consumer = None

    def handler(request):
        async def body():
            observed.append(consumer.is_streaming)
            yield b'0:"a"\n'
        return httpx.Response(200, content=body())

    consumer = StreamConsumer(store, client=mock_client(handler))
    await consumer.send("x")
    assert observed == [True]
    assert consumer.is_streaming is False


@pytest.mark.asyncio
async def test_end_to_end_through_relay_app(fake_registry):
    reg = fake_registry(["Hello", " world"])
    app = create_app(registry=reg)
    store = ready_store(ProviderKind.OPENAI)
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://relay")
    consumer = StreamConsumer(store, base_url="http://relay", client=client)
    assert await consumer.send("hi") == "Hello world"
    assert reg.calls[0]["model"] == "gpt-4o-mini"
    assert roles(store) == ["user", "assistant"]
    await client.aclose()


@pytest.mark.asyncio
async def test_end_to_end_start_failure(fake_registry):
    reg = fake_registry(fail_with=RuntimeError("upstream refused"))
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app(registry=reg)), base_url="http://relay")
    store = ready_store(ProviderKind.GOOGLE)
    consumer = StreamConsumer(store, base_url="http://relay", client=client)
    with pytest.raises(RelayCallFailure, match="upstream refused"):
        await consumer.send("hi")
    assert roles(store) == ["user"]
    await client.aclose()


@pytest.mark.asyncio
async def test_truncated_stream_commits_partial_text(fake_registry):
    reg = fake_registry(["Hello", " wor"], fail_after=RuntimeError("upstream dropped"))
    client = httpx.AsyncClient(transport=httpx.ASGITransport(app=create_app(registry=reg)), base_url="http://relay")
    store = ready_store(ProviderKind.DEEPSEEK)
    consumer = StreamConsumer(store, base_url="http://relay", client=client)
    assert await consumer.send("hi") == "Hello wor"
    msgs = store.current_conversation["messages"]
    assert [(m["role"], m["content"]) for m in msgs] == [("user", "hi"), ("assistant", "Hello wor")]
    await client.aclose()

from __future__ import annotations
import argparse
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from chat_relay.consumer import StreamConsumer
from chat_relay.errors import ChatClientError
from chat_relay.providers.registry import DEFAULT_MODELS, parse_kind
from chat_relay.providers.types import ProviderKind
from chat_relay.settings import configure_logging, get_settings, load_env_file
from chat_relay.store import ConversationStore

REPL_HELP = """Commands:
  /new [title]      start a conversation
  /list             list conversations
  /use <id>         switch conversation
  /provider <name>  switch provider (deepseek, openai, anthropic, google)
  /quit             leave"""


def _mask(key: str) -> str:
    if not key:
        return "(not set)"
    return key[:3] + "..." + key[-4:] if len(key) > 10 else "****"


def _parse_provider(name: str) -> Optional[ProviderKind]:
    try:
        return parse_kind(name)
    except KeyError:
        print(f"Unknown provider: {name}. Choose one of: {', '.join(k.value for k in ProviderKind)}", file=sys.stderr)
        return None


def cmd_serve(host: str, port: int, reload: bool = False) -> int:
    import uvicorn
    uvicorn.run("chat_relay.app:app", host=host, port=port, reload=reload)
    return 0


def cmd_config(store: ConversationStore, provider: Optional[str], api_key: Optional[str], model: Optional[str]) -> int:
    if provider is None:
        # show all
        for kind in ProviderKind:
            cfg = store.provider_config(kind)
            marker = "*" if kind == store.current_provider else " "
            print(f"{marker} {kind.value.ljust(10)} key={_mask(cfg.get('apiKey', ''))} "
                  f"model={cfg.get('model') or DEFAULT_MODELS[kind] + ' (default)'}")
        return 0
    kind = _parse_provider(provider)
    if kind is None:
        return 2
    store.set_config(kind, apiKey=api_key, model=model)
    print(f"Saved {kind.value} config")
    return 0


def cmd_provider(store: ConversationStore, provider: Optional[str]) -> int:
    if provider is None:
        print(store.current_provider.value)
        return 0
    kind = _parse_provider(provider)
    if kind is None:
        return 2
    store.set_current_provider(kind)
    print(f"Current provider: {kind.value}")
    return 0


def _print_conversations(store: ConversationStore) -> None:
    if not store.conversations:
        print("No conversations")
        return
    for c in store.conversations:
        marker = "*" if c["id"] == store.current_conversation_id else " "
        print(f"{marker} {c['id']}  {c['title']}  ({len(c['messages'])} messages)")


def cmd_conversations(store: ConversationStore, new: Optional[str], delete: Optional[str], clear: bool) -> int:
    if clear:
        store.clear_conversations()
        print("Cleared all conversations")
        return 0
    if delete:
        store.delete_conversation(delete)
        print(f"Deleted {delete}")
        return 0
    if new is not None:
        cid = store.create_conversation(new or None)
        print(f"Created {cid}")
        return 0
    _print_conversations(store)
    return 0


async def _send(consumer: StreamConsumer, text: str) -> bool:
    try:
        reply = await consumer.send(text)
    except ChatClientError as e:
        print(f"Error: {e}", file=sys.stderr)
        return False
    if reply:
        print(reply)
    return True


def _repl_command(store: ConversationStore, line: str) -> bool:
    """Handle a slash command; returns False when the session should end."""
    cmd, _, arg = line[1:].partition(" ")
    arg = arg.strip()
    if cmd in ("quit", "exit", "q"):
        return False
    if cmd == "new":
        print(f"Created {store.create_conversation(arg or None)}")
    elif cmd == "list":
        _print_conversations(store)
    elif cmd == "use":
        if any(c["id"] == arg for c in store.conversations):
            store.set_current_conversation(arg)
        else:
            print(f"No conversation {arg}", file=sys.stderr)
    elif cmd == "provider":
        kind = _parse_provider(arg)
        if kind is not None:
            store.set_current_provider(kind)
    else:
        print(REPL_HELP)
    return True


async def _repl(consumer: StreamConsumer) -> int:
    store = consumer.store
    print(f"Provider: {store.current_provider.value}. Type /help for commands.")
    loop = asyncio.get_running_loop()
    while True:
        try:
            line = await loop.run_in_executor(None, input, "> ")
        except (EOFError, KeyboardInterrupt):
            print()
            return 0
        line = line.strip()
        if not line:
            continue
        if line.startswith("/"):
            if not _repl_command(store, line):
                return 0
            continue
        await _send(consumer, line)


def cmd_chat(store: ConversationStore, relay_url: str, read_timeout: float, message: Optional[str]) -> int:
    consumer = StreamConsumer(store, base_url=relay_url, read_timeout=read_timeout)
    if message is not None:
        return 0 if asyncio.run(_send(consumer, message)) else 1
    return asyncio.run(_repl(consumer))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chat-relay", description="Multi-provider streaming chat relay")
    p.add_argument("command", choices=["serve", "chat", "config", "provider", "conversations"], help="CLI command")
    p.add_argument("--store", dest="store", default=None, help="Conversation store file (default: CHAT_STORE_PATH)")
    # serve
    p.add_argument("--host", dest="host", default=None, help="Bind host (for serve)")
    p.add_argument("--port", dest="port", type=int, default=None, help="Bind port (for serve)")
    p.add_argument("--reload", dest="reload", action="store_true", help="Auto-reload on code changes (for serve)")
    # chat
    p.add_argument("--relay-url", dest="relay_url", default=None, help="Relay base URL (for chat)")
    p.add_argument("--message", "-m", dest="message", default=None, help="Send one message and exit (for chat)")
    # config / provider
    p.add_argument("--provider", dest="provider", default=None, help="Provider name (for config/provider)")
    p.add_argument("--api-key", dest="api_key", default=None, help="API key to store (for config)")
    p.add_argument("--model", dest="model", default=None, help="Model override to store (for config)")
    # conversations
    p.add_argument("--new", dest="new", nargs="?", const="", default=None, help="Create a conversation with an optional title")
    p.add_argument("--delete", dest="delete", default=None, help="Delete a conversation by id")
    p.add_argument("--clear", dest="clear", action="store_true", help="Delete all conversations")
    return p


def main(argv: List[str] | None = None) -> int:
    argv = list(sys.argv[1:] if argv is None else argv)
    load_env_file()
    settings = get_settings()
    configure_logging(settings["RELAY_LOG_LEVEL"])
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "serve":
        return cmd_serve(args.host or settings["RELAY_HOST"], args.port or settings["RELAY_PORT"], reload=args.reload)
    store = ConversationStore(Path(args.store) if args.store else settings["CHAT_STORE_PATH"]).load()
    if args.command == "config":
        return cmd_config(store, args.provider, args.api_key, args.model)
    if args.command == "provider":
        return cmd_provider(store, args.provider)
    if args.command == "conversations":
        return cmd_conversations(store, args.new, args.delete, args.clear)
    if args.command == "chat":
        return cmd_chat(store, args.relay_url or settings["CHAT_RELAY_URL"], settings["CHAT_READ_TIMEOUT"], args.message)
    parser.print_help()
    return 2


if __name__ == "__main__":
    raise SystemExit(main())

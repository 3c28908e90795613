from pathlib import Path
import tempfile

from chat_relay.cli import main
from chat_relay.providers.types import ProviderKind
from chat_relay.store import ConversationStore


def test_config_and_provider_commands(capsys):
    with tempfile.TemporaryDirectory() as d:
        store_path = Path(d) / "store.json"
        assert main(["config", "--store", str(store_path), "--provider", "openai", "--api-key", "sk-abcdefghijkl"]) == 0
        assert main(["provider", "--store", str(store_path), "--provider", "openai"]) == 0
        store = ConversationStore(store_path).load()
        assert store.current_provider is ProviderKind.OPENAI
        assert store.provider_config()["apiKey"] == "sk-abcdefghijkl"

        assert main(["config", "--store", str(store_path)]) == 0
        out = capsys.readouterr().out
        # keys are masked in listings
        assert "sk-abcdefghijkl" not in out
        assert "gpt-4o-mini (default)" in out


def test_unknown_provider_rejected(capsys):
    with tempfile.TemporaryDirectory() as d:
        store_path = Path(d) / "store.json"
        assert main(["provider", "--store", str(store_path), "--provider", "mistral"]) == 2
        assert "Unknown provider" in capsys.readouterr().err


def test_conversations_commands(capsys):
    with tempfile.TemporaryDirectory() as d:
        store_path = Path(d) / "store.json"
        assert main(["conversations", "--store", str(store_path), "--new", "Trip plans"]) == 0
        assert main(["conversations", "--store", str(store_path)]) == 0
        assert "Trip plans" in capsys.readouterr().out
        assert main(["conversations", "--store", str(store_path), "--clear"]) == 0
        assert ConversationStore(store_path).load().conversations == []


def test_chat_without_conversation_reports_error(capsys):
    with tempfile.TemporaryDirectory() as d:
        store_path = Path(d) / "store.json"
        assert main(["chat", "--store", str(store_path), "-m", "hello"]) == 1
        assert "Create a conversation first" in capsys.readouterr().err

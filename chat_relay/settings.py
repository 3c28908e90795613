from __future__ import annotations
import logging
import os
from pathlib import Path
from typing import Any, Dict


# Load .env from the working directory (dev convenience)
def load_env_file(path: Path | None = None) -> None:
    env_path = Path(path) if path else Path.cwd() / ".env"
    if not env_path.exists():
        return
    try:
        lines = env_path.read_text(encoding="utf-8").splitlines()
    except OSError as e:
        logging.getLogger(__name__).warning("could not read %s: %s", env_path, e)
        return
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        k, v = line.split("=", 1)
        k = k.strip(); v = v.strip().strip('"').strip("'")
        if k and v and k not in os.environ:
            os.environ[k] = v


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


def get_settings() -> Dict[str, Any]:
    store_path = os.getenv("CHAT_STORE_PATH") or str(Path.home() / ".chat_relay" / "store.json")
    origins = [o.strip() for o in os.getenv("RELAY_CORS_ORIGINS", "*").split(",") if o.strip()]
    return {
        "RELAY_HOST": os.getenv("RELAY_HOST", "127.0.0.1"),
        "RELAY_PORT": int(_float_env("RELAY_PORT", 8000)),
        "RELAY_CORS_ORIGINS": origins or ["*"],
        "RELAY_UPSTREAM_TIMEOUT": _float_env("RELAY_UPSTREAM_TIMEOUT", 60.0),
        "RELAY_MAX_TOKENS": int(_float_env("RELAY_MAX_TOKENS", 4096)),
        "RELAY_LOG_LEVEL": os.getenv("RELAY_LOG_LEVEL", "INFO").upper(),
        "CHAT_RELAY_URL": os.getenv("CHAT_RELAY_URL", "http://127.0.0.1:8000").rstrip("/"),
        "CHAT_STORE_PATH": Path(store_path).expanduser(),
        "CHAT_READ_TIMEOUT": _float_env("CHAT_READ_TIMEOUT", 120.0),
    }


def configure_logging(level: str | int = "INFO") -> None:
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request line at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

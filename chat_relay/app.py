from __future__ import annotations
import json
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel

from chat_relay import __version__
from chat_relay.errors import RelayError
from chat_relay.protocol import MEDIA_TYPE, frame_text_stream
from chat_relay.providers.registry import DEFAULT_MODELS, ProviderRegistry
from chat_relay.relay import ChatRelay, validate_request
from chat_relay.settings import get_settings, load_env_file

logger = logging.getLogger(__name__)


class Health(BaseModel):
    status: str


class VersionInfo(BaseModel):
    version: str
    providers: list[str]
    default_models: dict[str, str]


def create_app(settings: Optional[Dict[str, Any]] = None, registry: Optional[ProviderRegistry] = None) -> FastAPI:
    s = settings or get_settings()
    app = FastAPI(title="Chat Relay", version=__version__)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=s["RELAY_CORS_ORIGINS"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.relay = ChatRelay(registry or ProviderRegistry.from_settings(s))

    @app.exception_handler(RelayError)
    async def relay_error_handler(request: Request, exc: RelayError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.get("/health", response_model=Health)
    async def health():
        return Health(status="ok")

    @app.get("/version", response_model=VersionInfo)
    async def version():
        relay: ChatRelay = app.state.relay
        return VersionInfo(
            version=__version__,
            providers=[k.value for k in relay.registry.kinds()],
            default_models={k.value: m for k, m in DEFAULT_MODELS.items()},
        )

    @app.post("/api/chat")
    async def chat(request: Request):
        raw = await request.body()
        try:
            body = json.loads(raw) if raw else {}
        except ValueError:
            body = {}
        req = validate_request(body)
        relay: ChatRelay = app.state.relay
        deltas = await relay.open_stream(req)
        return StreamingResponse(frame_text_stream(deltas), media_type=MEDIA_TYPE)

    return app


load_env_file()
app = create_app()

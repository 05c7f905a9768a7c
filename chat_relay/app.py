import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.websockets import WebSocketState

from chat_relay.completion import CompletionClient
from chat_relay.config import Settings
from chat_relay.registry import Connection
from chat_relay.relay import FanOutRelay

logger = logging.getLogger(__name__)


def create_app(settings=None, completer=None) -> FastAPI:
    """Build the relay app.

    A ``CompletionClient`` is created from the settings when an API key is
    configured and no ``completer`` is passed in. Only that client is closed
    on shutdown; a passed-in completer stays with the caller.
    """
    if settings is None:
        settings = Settings.from_env()
    owned_client = None
    if completer is None and settings.completion_enabled:
        completer = owned_client = CompletionClient.from_settings(settings)
    relay = FanOutRelay.from_settings(settings, completer=completer)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("AI replies %s", "enabled" if completer is not None else "disabled")
        yield
        await relay.close()
        if owned_client is not None:
            owned_client.close()

    app = FastAPI(lifespan=lifespan)
    app.state.settings = settings
    app.state.relay = relay
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.client_origin],
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket):
        await ws.accept()
        connection = Connection(ws)
        await relay.on_connect(connection)
        try:
            while connection.alive:
                data = await ws.receive_text()
                await relay.on_message(connection, data)
        except WebSocketDisconnect:
            pass
        finally:
            await relay.on_disconnect(connection)
        # Delivery to this client failed; stop reading from it too.
        if ws.client_state == WebSocketState.CONNECTED and ws.application_state == WebSocketState.CONNECTED:
            logger.info("Closing client %s after failed delivery", connection.id)
            await ws.close()

    @app.get("/")
    def root():
        return {
            "message": "Chat relay is running!",
            "connections": len(relay.registry),
            "completion": relay.completer is not None,
        }

    return app

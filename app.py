from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import ParticipantStore, RoomStore
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL, SWEEP_INTERVAL_MS
from errors import register_error_handlers
from hub import MapLoader, RoomHub
from logging_config import get_logger, setup_logging
from routers.rooms import rooms_router
from sweeper import Sweeper

setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def create_app(
    room_store: Optional[RoomStore] = None,
    participant_store: Optional[ParticipantStore] = None,
    map_loader: Optional[MapLoader] = None,
    sweep_interval_ms: int = SWEEP_INTERVAL_MS,
) -> FastAPI:
    """Build the app around one set of stores. Tests pass their own stores and clock."""
    # Stores are compared against None: an empty RoomStore is falsy
    if room_store is None:
        room_store = RoomStore()
    if participant_store is None:
        participant_store = ParticipantStore(room_store)
    hub = RoomHub(room_store, participant_store, map_loader=map_loader)
    sweeper = Sweeper(room_store, participant_store, interval_ms=sweep_interval_ms)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        sweeper.start()
        yield
        await sweeper.stop()
        logger.info("Marble Party server shut down")

    app = FastAPI(title="Marble Party", lifespan=lifespan)
    app.state.room_store = room_store
    app.state.participant_store = participant_store
    app.state.hub = hub
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=CORS_ORIGINS != ["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Host-Key"],
    )
    register_error_handlers(app)
    app.include_router(rooms_router, prefix="/api")

    @app.get("/health")
    async def health():
        return {"ok": True}

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket):
        """Single socket endpoint; the first useful frame must be a join."""
        connection_id = await hub.connect(websocket)
        message_count = 0
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000))
                # Text and binary frames carry the same JSON protocol
                data = message.get("text")
                if data is None:
                    data = message.get("bytes")
                if data is None:
                    continue
                message_count += 1
                logger.debug(f"Received message #{message_count} from connection {connection_id}")
                await hub.handle_message(connection_id, data)
        except WebSocketDisconnect:
            logger.debug(f"WebSocket disconnected normally for connection {connection_id}")
        except Exception as e:
            logger.error(f"Error receiving from connection {connection_id}: {e}", exc_info=True)
        finally:
            hub.disconnect(connection_id)

    logger.info("FastAPI application initialized")
    return app


app = create_app()

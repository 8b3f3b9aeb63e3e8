"""FastAPI relay server.

Terminates the controller's WebSocket session and exposes a small HTTP
side channel on the same port:

    GET  /health          -> {"status": "ok", "rokuIp": "...", "uptime": 12.3}
    POST /set-roku-ip     <- {"ip": "192.168.1.40"}
    WS   /                <- {"action": "keydown", "key": "Left"}
                          <- {"type": "set-roku-ip", "ip": "192.168.1.40"}
                          -> {"type": "config", "rokuIp": "...", "serverTime": 1700000000000}
                          -> {"type": "error", "message": "Roku unreachable: ..."}
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from rokurelay.relay.forwarder import DEFAULT_TIMEOUT, ECP_PORT, EcpForwarder
from rokurelay.relay.hub import RelayHub
from rokurelay.relay.target import TargetAddress
from rokurelay.utils.network import get_lan_ip

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class SetTargetRequest(BaseModel):
    ip: str | None = Field(default=None, description="Roku IP address or host name")


class HealthResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    roku_ip: str = Field(default="", alias="rokuIp")
    uptime: float = 0.0


class SetTargetResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "ok"
    roku_ip: str = Field(alias="rokuIp")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------

def create_app(
    roku_ip: str = "",
    downstream_port: int = ECP_PORT,
    downstream_timeout: float = DEFAULT_TIMEOUT,
    hub: RelayHub | None = None,
) -> FastAPI:
    """Create the relay application.

    Args:
        roku_ip: Initial downstream target; may be empty.
        downstream_port: ECP port on the device.
        downstream_timeout: Deadline for each forwarded command, in seconds.
        hub: Optional pre-configured RelayHub (for testing).
    """
    if hub is None:
        target = TargetAddress(roku_ip)
        hub = RelayHub(
            target=target,
            forwarder=EcpForwarder(target, port=downstream_port, timeout=downstream_timeout),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        h: RelayHub = app.state.hub
        await h.forwarder.open()
        logger.info("Relay started (Roku IP: %s)", h.target.get() or "not set")
        yield
        await h.shutdown()
        logger.info("Relay stopped")

    app = FastAPI(
        title="rokurelay",
        description="WebSocket relay to the Roku External Control Protocol",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.hub = hub

    # The controller page is served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type"],
    )

    @app.get("/health")
    async def health_check() -> HealthResponse:
        h: RelayHub = app.state.hub
        return HealthResponse(status="ok", roku_ip=h.target.get(), uptime=h.uptime)

    @app.post("/set-roku-ip", response_model=SetTargetResponse)
    async def set_roku_ip(request: Request):  # type: ignore[no-untyped-def]
        h: RelayHub = app.state.hub
        # Any body without a usable ip gets the same 400, not a 422
        try:
            body = SetTargetRequest.model_validate_json(await request.body() or b"{}")
            address = h.target.set(body.ip or "")
        except (ValidationError, ValueError):
            return JSONResponse(status_code=400, content={"error": "Missing ip field"})
        return SetTargetResponse(roku_ip=address)

    @app.websocket("/")
    async def relay_socket(websocket: WebSocket) -> None:
        h: RelayHub = app.state.hub
        await websocket.accept()
        identity = websocket.client.host if websocket.client else "unknown"
        connection = await h.accept(websocket, identity)
        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    break
                raw = message.get("text")
                if raw is None:
                    raw = message.get("bytes")
                if raw is None:
                    continue
                await h.handle_message(connection, raw)
        except WebSocketDisconnect:
            pass
        except RuntimeError as exc:
            # Raised by starlette when reading after the socket was closed
            # by an eviction.
            logger.debug("Socket from %s ended: %s", identity, exc)
        finally:
            h.release(connection)

    return app


# ---------------------------------------------------------------------------
# Standalone entry point
# ---------------------------------------------------------------------------

def main(
    host: str = "0.0.0.0",
    port: int = 3002,
    roku_ip: str = "",
    downstream_port: int = ECP_PORT,
    downstream_timeout: float = DEFAULT_TIMEOUT,
) -> None:
    """Run the relay server."""
    app = create_app(
        roku_ip=roku_ip,
        downstream_port=downstream_port,
        downstream_timeout=downstream_timeout,
    )
    lan_ip = get_lan_ip()
    logger.info("Roku relay listening on http://localhost:%d", port)
    logger.info("Network: http://%s:%d  WebSocket: ws://%s:%d", lan_ip, port, lan_ip, port)
    if roku_ip:
        logger.info("Roku IP: %s", roku_ip)
    else:
        logger.info("Roku IP: (not set, will be sent by controller)")
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()

"""
WebSocket Server for Tick Distribution

Accepts client connections, registers them with the TickBroadcaster for
live pushes, and serves per-symbol snapshots of the recency cache.

Client protocol:
    ws://host:port/ws/stock/{stockId}   register, then receive that symbol's snapshot
    ws://host:port/                     register only
    -> {"type": "snapshot", "stockId": "005930"}
    <- {"type": "snapshot", "stockId": "005930", "data": [tick, ...]}
    -> {"type": "ping"}
    <- {"type": "pong"}
    <- {"stockId": ..., "currentPrice": ..., ...}       live tick push

HTTP:
    GET /snapshot/{stockId}  -> JSON array of JSON-encoded tick strings
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Optional
from urllib.parse import parse_qs, unquote, urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.datastructures import Headers
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from tick_streamer.broadcaster import TickBroadcaster
from tick_streamer.core.types import CacheUnavailableError

logger = logging.getLogger(__name__)

STREAM_PATH_PREFIX = "/ws/stock/"
SNAPSHOT_PATH_PREFIX = "/snapshot/"


def stock_id_from_path(path: str) -> Optional[str]:
    """
    Extract the symbol a client subscribed with.

    Accepts "/ws/stock/{stockId}" or a "?stockId=" query parameter.
    """
    parts = urlsplit(path)
    if parts.path.startswith(STREAM_PATH_PREFIX):
        stock_id = unquote(parts.path[len(STREAM_PATH_PREFIX):]).strip("/")
        if stock_id:
            return stock_id
    values = parse_qs(parts.query).get("stockId")
    if values and values[0]:
        return values[0]
    return None


def json_response(status: HTTPStatus, payload: Any) -> Response:
    """Plain HTTP response with a JSON body."""
    body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
    headers = Headers(
        [
            ("Content-Type", "application/json; charset=utf-8"),
            ("Content-Length", str(len(body))),
            ("Connection", "close"),
        ]
    )
    return Response(status.value, status.phrase, headers, body)


@dataclass
class ServerStats:
    """WebSocket server statistics."""

    connected_clients: int
    total_connections: int
    messages_broadcast: int
    snapshots_served: int
    start_time: datetime


class TickWebSocketServer:
    """
    WebSocket server in front of a TickBroadcaster.

    A client is registered for live pushes before its snapshot is read, so
    no tick can fall between the snapshot and the first push. A tick may
    show up in both; clients key their display by recency.
    """

    def __init__(
        self,
        broadcaster: TickBroadcaster,
        host: str = "0.0.0.0",
        port: int = 8765,
    ) -> None:
        self._broadcaster = broadcaster
        self._host = host
        self._port = port
        self._server: Optional[Server] = None
        self._total_connections = 0
        self._snapshots_served = 0
        self._start_time: Optional[datetime] = None

    async def start(self) -> None:
        """Start the WebSocket server."""
        self._start_time = datetime.now(timezone.utc)
        self._server = await serve(
            self._handle_client,
            self._host,
            self._port,
            ping_interval=30,
            ping_timeout=10,
            process_request=self._process_request,
        )
        logger.info(f"WebSocket server started on ws://{self._host}:{self._port}")

    async def stop(self) -> None:
        """Stop the WebSocket server and disconnect all clients."""
        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            await self._broadcaster.close_all()
            logger.info("WebSocket server stopped")

    # ── HTTP snapshot surface ────────────────────────────────────────────────

    async def _process_request(
        self, connection: ServerConnection, request: Request
    ) -> Optional[Response]:
        """
        Answer GET /snapshot/{stockId} over plain HTTP.

        Returns None for every other path so the WebSocket handshake proceeds.
        """
        path = urlsplit(request.path).path
        if not path.startswith(SNAPSHOT_PATH_PREFIX):
            return None

        stock_id = unquote(path[len(SNAPSHOT_PATH_PREFIX):]).strip("/")
        if not stock_id:
            return json_response(HTTPStatus.BAD_REQUEST, {"error": "stockId required"})

        try:
            payload = await self._broadcaster.snapshot_payload(stock_id)
        except CacheUnavailableError as e:
            logger.error(f"Snapshot for {stock_id} failed: {e}")
            return json_response(HTTPStatus.SERVICE_UNAVAILABLE, {"error": "cache unavailable"})

        self._snapshots_served += 1
        return json_response(HTTPStatus.OK, payload)

    # ── WebSocket clients ─────────────────────────────────────────────────────

    async def _handle_client(self, websocket: ServerConnection) -> None:
        """Handle a new client connection."""
        client_id = f"{websocket.remote_address}"

        await self._broadcaster.register(websocket)
        self._total_connections += 1
        logger.info(
            f"Client connected: {client_id} (total: {self._broadcaster.connection_count})"
        )

        try:
            await websocket.send(
                json.dumps(
                    {
                        "type": "connected",
                        "message": "Connected to tick stream",
                        "timestamp": datetime.now(timezone.utc).isoformat(),
                    }
                )
            )

            stock_id = stock_id_from_path(websocket.request.path) if websocket.request else None
            if stock_id:
                await self._send_snapshot(websocket, stock_id)

            async for message in websocket:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    continue
                if not isinstance(data, dict):
                    continue

                msg_type = data.get("type", "")
                if msg_type == "ping":
                    await websocket.send(json.dumps({"type": "pong"}))
                elif msg_type == "snapshot":
                    await self._send_snapshot(websocket, str(data.get("stockId") or ""))

        except ConnectionClosed:
            pass
        finally:
            await self._broadcaster.unregister(websocket)
            logger.info(
                f"Client disconnected: {client_id} "
                f"(total: {self._broadcaster.connection_count})"
            )

    async def _send_snapshot(self, websocket: ServerConnection, stock_id: str) -> None:
        """Send one symbol's cached window to a single client."""
        if not stock_id:
            await websocket.send(json.dumps({"type": "error", "error": "stockId required"}))
            return

        try:
            ticks = await self._broadcaster.snapshot_for(stock_id)
        except CacheUnavailableError as e:
            logger.error(f"Snapshot for {stock_id} failed: {e}")
            await websocket.send(
                json.dumps({"type": "error", "stockId": stock_id, "error": "cache unavailable"})
            )
            return

        self._snapshots_served += 1
        await websocket.send(
            json.dumps(
                {
                    "type": "snapshot",
                    "stockId": stock_id,
                    "data": [tick.to_dict() for tick in ticks],
                },
                ensure_ascii=False,
            )
        )

    def get_stats(self) -> ServerStats:
        """Get current server statistics."""
        return ServerStats(
            connected_clients=self._broadcaster.connection_count,
            total_connections=self._total_connections,
            messages_broadcast=self._broadcaster.messages_broadcast,
            snapshots_served=self._snapshots_served,
            start_time=self._start_time or datetime.now(timezone.utc),
        )

    @property
    def client_count(self) -> int:
        """Get current number of connected clients."""
        return self._broadcaster.connection_count

"""
WebSocket server for live tick distribution.
"""
from tick_streamer.ws_server.server import ServerStats, TickWebSocketServer

__all__ = ["ServerStats", "TickWebSocketServer"]

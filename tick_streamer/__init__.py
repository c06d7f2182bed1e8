"""
Tick Streamer Service

Real-time market tick distribution. Consumes per-symbol ticks from a Redis
stream, normalizes and deduplicates them, keeps the five most recent ticks
per symbol in a TTL-bound Redis list, and pushes every accepted tick to
connected WebSocket clients.

Architecture:
    broker (Redis stream) -> pipeline -> normalizer -> dedup -> recency cache
                                                                   |
                                  ws clients <- broadcaster <------+

Components:
    - normalizer: fills defaults on raw tick records
    - cache: bounded, expiring per-symbol tick store
    - dedup: suppresses ticks equal to the most recent cached one
    - pipeline: sequential per-stream ingestion worker
    - broadcaster: live subscriber registry and fan-out
    - ws_server: WebSocket / HTTP snapshot surface for clients
"""

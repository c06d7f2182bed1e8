"""
stream_feed: Generic Redis Streams primitives for the tick broker.

Public API:
    FeedProducer       - append dict payloads to a Redis stream
    FeedConsumer       - read a stream through a consumer group, one entry at a time
    serialize          - encode dict -> JSON string
    deserialize        - decode JSON string/bytes -> dict
"""
from .consumer import ConsumerError, FeedConsumer, FeedMessage
from .producer import FeedProducer, ProducerError
from .serializer import PAYLOAD_FIELD, SerializationError, deserialize, serialize

__all__ = [
    "ConsumerError",
    "FeedConsumer",
    "FeedMessage",
    "FeedProducer",
    "PAYLOAD_FIELD",
    "ProducerError",
    "SerializationError",
    "deserialize",
    "serialize",
]

from comanda.client.api import ComandaClient, QueuedRequest
from comanda.client.event_stream import StreamMessage, VenueEventStream, parse_sse
from comanda.client.retry_queue import JsonFileStorage, MemoryStorage, PermanentFailure, QueuedItem, RetryQueue

__all__ = [
    "ComandaClient",
    "JsonFileStorage",
    "MemoryStorage",
    "PermanentFailure",
    "QueuedItem",
    "QueuedRequest",
    "RetryQueue",
    "StreamMessage",
    "VenueEventStream",
    "parse_sse",
]

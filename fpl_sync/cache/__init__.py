"""Cache layer backed by Redis.

Public exports:
    - create_redis / ping_redis / close_redis: Client lifecycle
    - CacheGateway: Typed collection and pointer access for one entity kind
    - serialize / deserialize: Reversible JSON codec for cache entries
"""

from fpl_sync.cache.client import close_redis, create_redis, ping_redis
from fpl_sync.cache.gateway import CacheGateway
from fpl_sync.cache.serialization import deserialize, serialize

__all__ = [
    "create_redis",
    "ping_redis",
    "close_redis",
    "CacheGateway",
    "serialize",
    "deserialize",
]

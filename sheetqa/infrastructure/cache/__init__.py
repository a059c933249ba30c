from sheetqa.infrastructure.cache.conversation_store import ConversationStore
from sheetqa.infrastructure.cache.redis_client import RedisClient, close_redis, get_redis_client, init_redis

__all__ = ["ConversationStore", "RedisClient", "close_redis", "get_redis_client", "init_redis"]

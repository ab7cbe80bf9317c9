"""Redis-backed keyed store for short-lived approval state.

Key layout (all under ``forms_approval:``):
  telegram:{md5(visitor)}   pending notification batch       TTL batch_ttl_seconds
  status:{md5(visitor)}     last delivered status line       TTL batch_ttl_seconds
  redirect:{session_id}     one-shot redirect by session     TTL redirect_ttl_seconds
  redirect:{md5(visitor)}   one-shot redirect by visitor     TTL redirect_ttl_seconds
"""

import hashlib
import json
from typing import Any, Optional

import redis

from forms_approval.logging_config import get_logger

logger = get_logger("keyed_store")

KEY_PREFIX = "forms_approval"

_redis_client = None
_redis_url = None


def hash_identity(visitor_identity: str) -> str:
    return hashlib.md5(visitor_identity.encode("utf-8")).hexdigest()


def batch_key(visitor_identity: str) -> str:
    return f"{KEY_PREFIX}:telegram:{hash_identity(visitor_identity)}"


def status_key(visitor_identity: str) -> str:
    return f"{KEY_PREFIX}:status:{hash_identity(visitor_identity)}"


def session_redirect_key(session_id: str) -> str:
    return f"{KEY_PREFIX}:redirect:{session_id}"


def visitor_redirect_key(visitor_identity: str) -> str:
    return f"{KEY_PREFIX}:redirect:{hash_identity(visitor_identity)}"


class KeyedStore:
    """JSON values with expiry on top of a redis client."""

    def __init__(self, client):
        self.client = client

    def get(self, key: str) -> Optional[Any]:
        raw = self.client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self.client.setex(key, ttl_seconds, json.dumps(value, ensure_ascii=False))

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return self.client.delete(*keys)

    def take(self, key: str) -> Optional[Any]:
        """Atomically read and delete a key."""
        raw = self.client.getdel(key)
        if raw is None:
            return None
        return json.loads(raw)

    def purge(self) -> int:
        keys = list(self.client.scan_iter(match=f"{KEY_PREFIX}:*"))
        if not keys:
            return 0
        removed = self.client.delete(*keys)
        logger.info("Purged keyed store", extra={"context": {"keys": removed}})
        return removed


def get_redis_client(redis_url: str, socket_timeout_seconds: float):
    global _redis_client, _redis_url
    if _redis_client is None or _redis_url != redis_url:
        _redis_url = redis_url
        _redis_client = redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout_seconds,
            socket_connect_timeout=socket_timeout_seconds,
        )
    return _redis_client

"""
Redis cache layer for catalog reads (product detail, search pages, category tree).

Redis is ONLY a cache, never the source of truth.
The relational store is always authoritative.

Every operation fails open: a backend error, timeout or missing server
behaves exactly like a cache miss (get) or a no-op (set/delete). Nothing in
here raises to the caller.

Connection is lazy. After a connection failure the client stays "down" for
a bounded, exponentially growing delay before it tries again, so an absent
Redis costs at most one connect timeout per backoff window instead of one
per request.
"""

import json
import threading
import time
from typing import Any, Optional

import redis
from redis.backoff import NoBackoff
from redis.retry import Retry

from storefront.utils.logger import get_logger

logger = get_logger("cache")

CONNECTION_ERRORS = (redis.ConnectionError, redis.TimeoutError)


class CacheClient:
    """
    Fail-open Redis cache client with namespaced keys and JSON values.

    Args:
        url: redis:// or rediss:// URL. None disables the backend entirely.
        namespace: prefix for every key ("{namespace}:{key}").
        client: pre-built redis client (e.g. fakeredis in tests); skips lazy connect.
        op_timeout: socket timeout bounding every round trip, seconds.
        connect_timeout: socket connect timeout, seconds.
        retry_base_delay / retry_max_delay: reconnect backoff bounds, seconds.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        namespace: str = "storefront",
        client: Optional[redis.Redis] = None,
        op_timeout: float = 0.5,
        connect_timeout: float = 1.0,
        retry_base_delay: float = 1.0,
        retry_max_delay: float = 30.0,
    ):
        self.url = url
        self.namespace = namespace
        self.op_timeout = op_timeout
        self.connect_timeout = connect_timeout
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay

        self._client = client
        self._lock = threading.Lock()
        self._failures = 0
        self._retry_at = 0.0

    def _key(self, key: str) -> str:
        """Prefix key with namespace."""
        return f"{self.namespace}:{key}"

    #
    # Connection management
    #

    def _connection(self) -> Optional[redis.Redis]:
        """Current client, connecting lazily; None while disabled or backing off."""
        if self._client is not None and self._failures == 0:
            return self._client
        if self._client is None and not self.url:
            return None
        if time.monotonic() < self._retry_at:
            return None

        with self._lock:
            if self._client is None:
                self._client = redis.Redis.from_url(
                    self.url,
                    decode_responses=True,
                    socket_timeout=self.op_timeout,
                    socket_connect_timeout=self.connect_timeout,
                    # Reconnects are paced by our own backoff, not by per-command retries.
                    retry=Retry(NoBackoff(), 0),
                )
            # Retry window has passed: let the next operation probe the backend.
            return self._client

    def _mark_down(self, error: Exception) -> None:
        with self._lock:
            self._failures += 1
            delay = min(self.retry_base_delay * (2 ** (self._failures - 1)), self.retry_max_delay)
            self._retry_at = time.monotonic() + delay
        if self._failures == 1:
            logger.info(f"Cache backend unavailable, continuing without cache: {error}")
        else:
            logger.debug(f"Cache backend still unavailable (attempt {self._failures}), retry in {delay:.1f}s")

    def _mark_up(self) -> None:
        if self._failures:
            with self._lock:
                self._failures = 0
                self._retry_at = 0.0
            logger.info("Cache backend reachable again")

    def _run(self, description: str, operation, default):
        """Run one backend operation, translating every failure into `default`."""
        client = self._connection()
        if client is None:
            return default
        try:
            result = operation(client)
        except CONNECTION_ERRORS as e:
            self._mark_down(e)
            return default
        except redis.RedisError as e:
            logger.debug(f"Cache {description} error: {e}")
            return default
        self._mark_up()
        return result

    def is_available(self) -> bool:
        """Liveness probe for diagnostics. Never gate behaviour on this."""
        return bool(self._run("ping", lambda client: client.ping(), False))

    ping = is_available

    #
    # Key/value operations
    #

    def get(self, key: str) -> Optional[Any]:
        """Cached value for key, or None on miss or any failure."""
        full_key = self._key(key)
        raw = self._run(f"read for {full_key}", lambda client: client.get(full_key), None)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.debug(f"Discarding undecodable cache entry {full_key}: {e}")
            return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        """Store value as JSON with a TTL in seconds. False means "not cached", never an error."""
        full_key = self._key(key)
        try:
            payload = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.debug(f"Cache value for {full_key} is not serializable: {e}")
            return False
        return bool(self._run(f"write for {full_key}", lambda client: client.setex(full_key, ttl, payload), False))

    def delete(self, key: str) -> bool:
        full_key = self._key(key)
        return self._run(f"delete for {full_key}", lambda client: client.delete(full_key), None) is not None

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern. Returns count of keys deleted."""
        full_pattern = self._key(pattern)

        def _delete(client):
            keys = list(client.scan_iter(match=full_pattern, count=100))
            if keys:
                return client.delete(*keys)
            return 0

        return int(self._run(f"pattern delete for {full_pattern}", _delete, 0))

# recordshop/services/cache_service.py
import json
import threading
import time
from typing import Any, Callable, Mapping

import redis
from redis.exceptions import RedisError

from recordshop.utils.retry import redis_retry
from recordshop.utils.settings import REDIS_URL, CACHE_RECONNECT_SECONDS
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

INVENTORY_PREFIX = "inventory"
RECORD_PREFIX = "record"
SHIPPING_PREFIX = "shipping"


def inventory_key(params: Mapping[str, Any]) -> str:
    # wszystkie parametry zapytania w kluczu, posortowane - dwa rozne zapytania nie koliduja
    parts = [f"{name}={params[name]}" for name in sorted(params) if params[name] is not None]
    return f"{INVENTORY_PREFIX}:" + "&".join(parts)


def record_key(listing_id: Any) -> str:
    return f"{RECORD_PREFIX}:{listing_id}"


def shipping_key(country: str, weight: int, method: str) -> str:
    return f"{SHIPPING_PREFIX}:{country.strip().lower()}:{weight}:{method}"


class CacheService:
    """
    Cache w Redisie przed drogimi odczytami z marketplace.

    Polaczenie tworzone leniwie i zapamietywane (jedna proba naraz).
    Gdy Redis nie odpowiada, kazda operacja to no-op: get -> None,
    set -> nic, clear -> 0. Wywolujacy zawsze moze isc do zrodla.
    """

    def __init__(
        self,
        url: str | None = None,
        reconnect_after: float = CACHE_RECONNECT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.url = url or REDIS_URL
        self.reconnect_after = reconnect_after
        self._clock = clock
        self._client = None
        self._unavailable_until = 0.0
        self._connect_lock = threading.Lock()

    @redis_retry()
    def _connect(self):
        client = redis.Redis.from_url(
            self.url,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
        client.ping()
        return client

    def _get_client(self):
        if self._client is not None:
            return self._client

        with self._connect_lock:
            if self._client is not None:
                return self._client
            if self._clock() < self._unavailable_until:
                return None
            try:
                self._client = self._connect()
                logger.info(f"Connected to cache at {self.url}")
            except RedisError as e:
                self._unavailable_until = self._clock() + self.reconnect_after
                logger.warning(f"Cache unavailable, continuing without it: {e}")
                return None
        return self._client

    def _drop_client(self, error: Exception) -> None:
        logger.warning(f"Cache error, disabling for {self.reconnect_after}s: {error}")
        self._client = None
        self._unavailable_until = self._clock() + self.reconnect_after

    @property
    def available(self) -> bool:
        return self._get_client() is not None

    def get(self, key: str) -> str | None:
        client = self._get_client()
        if client is None:
            return None
        try:
            return client.get(key)
        except RedisError as e:
            self._drop_client(e)
            return None

    def set(self, key: str, value: str, ttl: int) -> None:
        client = self._get_client()
        if client is None:
            return
        try:
            #SET key value EX ttl
            client.set(name=key, value=value, ex=ttl)
        except RedisError as e:
            self._drop_client(e)

    def clear(self, pattern: str = "*") -> int:
        client = self._get_client()
        if client is None:
            return 0
        try:
            keys = client.keys(pattern)
            if not keys:
                return 0
            client.delete(*keys)
        except RedisError as e:
            self._drop_client(e)
            return 0

        logger.info(f"Cleared {len(keys)} cache entries matching {pattern}")
        return len(keys)

    def get_json(self, key: str) -> Any | None:
        raw = self.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"Corrupted cache entry {key}, ignoring")
            return None

    def set_json(self, key: str, value: Any, ttl: int) -> None:
        self.set(key, json.dumps(value, default=str), ttl)


_shared_cache: CacheService | None = None
_shared_lock = threading.Lock()


def get_cache() -> CacheService:
    """Jeden wspolny CacheService na proces."""
    global _shared_cache
    if _shared_cache is None:
        with _shared_lock:
            if _shared_cache is None:
                _shared_cache = CacheService()
    return _shared_cache

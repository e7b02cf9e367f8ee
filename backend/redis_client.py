"""
Redis: кеш публичных списков (номера, столы, меню) и ограничение частоты входа.

Если Redis недоступен, кеш просто не используется, а лимиты не применяются.
"""
import json
import logging
import os
from functools import wraps
from typing import Any, Dict, List, Optional, Tuple

import redis
from fastapi import HTTPException, Request, status

logger = logging.getLogger("RedisClient")

ROOMS_KEY = "rooms:all"
TABLES_KEY = "tables:all"
FOOD_ITEMS_KEY = "food_items:all"


def _redis_port() -> int:
    # В kubernetes переменная бывает вида tcp://10.0.0.1:6379
    raw = os.getenv("REDIS_PORT") or os.getenv("REDIS_SERVICE_PORT") or "6379"
    return int(str(raw).rsplit(":", 1)[-1])


class RedisClient:
    def __init__(self, client=None):
        """client подставляется в тестах; пустой REDIS_HOST отключает Redis."""
        self.redis_host = os.getenv("REDIS_HOST", "redis")
        self.redis_port = _redis_port()
        self.client = client
        if client is not None or not self.redis_host:
            return

        try:
            self.client = redis.Redis(
                host=self.redis_host,
                port=self.redis_port,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            self.client.ping()
        except redis.RedisError as e:
            logger.warning(f"Could not connect to Redis at {self.redis_host}:{self.redis_port}: {e}")
            self.client = None

    def is_available(self) -> bool:
        if not self.client:
            return False
        try:
            self.client.ping()
            return True
        except redis.RedisError:
            return False

    # ========== Общие операции со списками ==========

    def _cache_list(self, key: str, items: List[Dict], ttl: int) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.setex(key, ttl, json.dumps(items, default=str))
            return True
        except redis.RedisError as e:
            logger.warning(f"Error caching {key}: {e}")
            return False

    def _get_list(self, key: str) -> Optional[List[Dict]]:
        if not self.is_available():
            return None
        try:
            cached = self.client.get(key)
            if cached:
                return json.loads(cached)
        except (redis.RedisError, ValueError) as e:
            logger.warning(f"Error reading {key} from cache: {e}")
        return None

    def _invalidate(self, *keys: str) -> bool:
        if not self.is_available():
            return False
        try:
            self.client.delete(*keys)
            return True
        except redis.RedisError as e:
            logger.warning(f"Error invalidating {', '.join(keys)}: {e}")
            return False

    # ========== Номера ==========

    def cache_rooms(self, rooms: List[Dict], ttl: int = 120) -> bool:
        return self._cache_list(ROOMS_KEY, rooms, ttl)

    def get_cached_rooms(self) -> Optional[List[Dict]]:
        return self._get_list(ROOMS_KEY)

    def invalidate_rooms_cache(self) -> bool:
        """Вызывается при создании/изменении/удалении номера"""
        return self._invalidate(ROOMS_KEY)

    # ========== Столы ==========

    def cache_tables(self, tables: List[Dict], ttl: int = 60) -> bool:
        return self._cache_list(TABLES_KEY, tables, ttl)

    def get_cached_tables(self) -> Optional[List[Dict]]:
        return self._get_list(TABLES_KEY)

    def invalidate_tables_cache(self) -> bool:
        """Статус стола меняется и при смене статуса брони, поэтому TTL короткий"""
        return self._invalidate(TABLES_KEY)

    # ========== Меню ==========

    def cache_food_items(self, items: List[Dict], ttl: int = 300) -> bool:
        return self._cache_list(FOOD_ITEMS_KEY, items, ttl)

    def get_cached_food_items(self) -> Optional[List[Dict]]:
        return self._get_list(FOOD_ITEMS_KEY)

    def invalidate_food_items_cache(self) -> bool:
        return self._invalidate(FOOD_ITEMS_KEY)

    # ========== Ограничение частоты запросов ==========

    def check_rate_limit(self, key: str, max_requests: int = 10, window: int = 60) -> Tuple[bool, int]:
        """Фиксированное окно: (можно ли выполнить запрос, сколько запросов осталось в окне)."""
        if not self.is_available():
            return True, max_requests

        try:
            hits = self.client.incr(key)
            if hits == 1:
                self.client.expire(key, window)
        except redis.RedisError as e:
            logger.warning(f"Rate limit check for {key} failed, letting the request through: {e}")
            return True, max_requests

        return hits <= max_requests, max(0, max_requests - hits)

    # ========== Служебное ==========

    def get_cache_info(self) -> Dict[str, Any]:
        if not self.is_available():
            return {"status": "unavailable"}

        try:
            return {
                "status": "available",
                "rooms_cached": bool(self.client.exists(ROOMS_KEY)),
                "tables_cached": bool(self.client.exists(TABLES_KEY)),
                "food_items_cached": bool(self.client.exists(FOOD_ITEMS_KEY)),
            }
        except redis.RedisError as e:
            return {"status": "error", "error": str(e)}


redis_client = RedisClient()


def _client_id(request: Optional[Request]) -> str:
    if request is None or request.client is None:
        return "global"
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host


def rate_limit(max_requests: int = 10, window: int = 60, key_prefix: str = "rate_limit"):
    """
    Ограничивает частоту вызова async-эндпоинта с одного адреса.
    Эндпоинт должен принимать параметр request: Request.
    """
    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            rate_key = f"{key_prefix}:{func.__name__}:{_client_id(kwargs.get('request'))}"
            allowed, _ = redis_client.check_rate_limit(rate_key, max_requests, window)
            if not allowed:
                logger.warning(f"Rate limit exceeded for {rate_key}")
                raise HTTPException(
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    detail=f"Too many requests. Try again in {window} seconds.",
                )
            return await func(*args, **kwargs)
        return wrapper
    return decorator

# api/services/custom_field_cache.py

import logging
import threading
from typing import Any, Callable, Dict, Optional

from cachetools import TTLCache

from config import AppConfig

logger = logging.getLogger(__name__)


def custom_fields_cache_key(location_id: str) -> str:
    return f"custom_fields_{location_id}"


class CustomFieldCache:
    """Per-location cache of the GHL custom field schema"""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, key: str, value: Dict[str, Any]):
        raise NotImplementedError

    def invalidate(self, key: str):
        raise NotImplementedError

    def remember(self, key: str, loader: Callable[[], Optional[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
        """Return the cached value, loading and storing it on a miss. None is never cached."""
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"🎯 Cache hit: {key}")
            return cached
        value = loader()
        if value is not None:
            self.set(key, value)
        return value


class TTLCustomFieldCache(CustomFieldCache):
    """In-process cache; entries expire after `ttl` seconds"""

    def __init__(self, ttl: Optional[int] = None, max_size: int = 256):
        self.cache = TTLCache(maxsize=max_size, ttl=ttl if ttl is not None else AppConfig.CUSTOM_FIELD_CACHE_TTL)
        # TTLCache is not thread-safe and routes run in a thread pool
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            return self.cache.get(key)

    def set(self, key: str, value: Dict[str, Any]):
        with self._lock:
            self.cache[key] = value

    def invalidate(self, key: str):
        with self._lock:
            self.cache.pop(key, None)
        logger.debug(f"🗑️ Cache invalidated: {key}")


class NullCustomFieldCache(CustomFieldCache):
    """Disables caching: every lookup goes to GHL"""

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        return None

    def set(self, key: str, value: Dict[str, Any]):
        pass

    def invalidate(self, key: str):
        pass

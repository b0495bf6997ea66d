"""Route cache keyed by route identity."""
import logging
from typing import Any, Dict, Optional

from processor.text import clean_text
from storage.dynamodb_manager import DynamoDBManager
from storage.layered_cache import JsonFileCacheBackend, LayeredCache, RemoteCacheBackend
from storage.local_store import LocalStore

logger = logging.getLogger(__name__)


def sanitize_route(value: Any) -> Optional[Dict[str, Any]]:
    """
    Normalize a route payload.

    Args:
        value: Untrusted route payload

    Returns:
        Route with polyline and non-negative totals, or None without a polyline
    """
    if not isinstance(value, dict):
        return None
    polyline = clean_text(value.get('encodedPolyline'))
    if not polyline:
        return None
    return {
        'encodedPolyline': polyline,
        'totalDistanceMeters': max(0, _number(value.get('totalDistanceMeters'))),
        'totalDurationSeconds': max(0, _number(value.get('totalDurationSeconds'))),
    }


def _number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0


class RouteCache:
    """Layered cache of encoded route polylines."""

    def __init__(self, local: LocalStore, remote: Optional[DynamoDBManager] = None):
        remote_backend = None
        if remote is not None:
            remote_backend = RemoteCacheBackend(
                getter=lambda key: sanitize_route(remote.get_route(key)),
                setter=remote.put_route,
            )
        self.cache = LayeredCache(
            JsonFileCacheBackend(local, LocalStore.ROUTE_CACHE_FILE, sanitize=sanitize_route),
            remote_backend,
        )

    def get(self, cache_key: str) -> Optional[Dict[str, Any]]:
        return self.cache.get(cache_key)

    def save(self, cache_key: str, route: Any) -> bool:
        """
        Store a route.

        Args:
            cache_key: Route identity
            route: Route payload

        Returns:
            False when the key is empty or the payload has no polyline
        """
        sanitized = sanitize_route(route)
        if not cache_key or sanitized is None:
            return False
        self.cache.set(cache_key, sanitized)
        return True

"""Geocode resolution through a layered cache."""
import logging
from typing import Optional

from geocoding.geocoder import GoogleGeocoder, normalize_address_key
from processor.models import Coordinates, GeocodeCacheEntry
from storage.dynamodb_manager import DynamoDBManager
from storage.layered_cache import JsonFileCacheBackend, LayeredCache, RemoteCacheBackend
from storage.local_store import LocalStore

logger = logging.getLogger(__name__)


def _sanitize_entry(value) -> Optional[dict]:
    coordinates = Coordinates.from_dict(value)
    if coordinates is None:
        return None
    entry = coordinates.to_dict()
    if isinstance(value.get('addressText'), str):
        entry['addressText'] = value['addressText']
    return entry


class GeocodeResolver:
    """
    Resolve address text to coordinates.

    Lookup order: local cache, remote cache, then the geocoding API when a
    geocoder is configured. Hits are written back to both cache layers;
    misses are never cached.
    """

    def __init__(self, cache: LayeredCache, geocoder: Optional[GoogleGeocoder] = None):
        self.cache = cache
        self.geocoder = geocoder

    @classmethod
    def create(cls, local: LocalStore, remote: Optional[DynamoDBManager] = None,
               api_key: str = '') -> 'GeocodeResolver':
        """
        Build a resolver over the local geocode file and the remote table.

        Args:
            local: Local file store
            remote: Remote store, or None to skip the shared cache
            api_key: Google geocoding key; empty disables live lookups

        Returns:
            GeocodeResolver
        """
        remote_backend = None
        if remote is not None:
            def read_remote(key):
                entry = remote.get_geocode(key)
                return entry.to_dict() if entry else None

            def write_remote(key, value):
                entry = GeocodeCacheEntry.from_dict(dict(value, addressKey=key))
                if entry is not None:
                    remote.put_geocode(entry)

            remote_backend = RemoteCacheBackend(getter=read_remote, setter=write_remote)
        cache = LayeredCache(
            JsonFileCacheBackend(local, LocalStore.GEOCODE_CACHE_FILE, sanitize=_sanitize_entry),
            remote_backend,
        )
        geocoder = GoogleGeocoder(api_key) if api_key else None
        return cls(cache, geocoder)

    def resolve(self, address_text: str) -> Optional[Coordinates]:
        """
        Resolve an address.

        Args:
            address_text: Free-form address

        Returns:
            Coordinates, or None when unresolved
        """
        address_key = normalize_address_key(address_text)
        if not address_key:
            return None

        cached = Coordinates.from_dict(self.cache.get(address_key))
        if cached is not None:
            return cached

        if self.geocoder is None:
            return None

        coordinates = self.geocoder.geocode(address_text)
        if coordinates is None:
            logger.info(f"No geocode result for '{address_text}'")
            return None

        self.cache.set(address_key, dict(coordinates.to_dict(), addressText=address_text))
        return coordinates

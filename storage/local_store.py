"""Local JSON file store for snapshots and caches."""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


class LocalStore:
    """JSON documents stored as files under a data directory."""

    EVENTS_CACHE_FILE = 'events-cache.json'
    SAMPLE_EVENTS_FILE = 'sample-events.json'
    STATIC_PLACES_FILE = 'static-places.json'
    GEOCODE_CACHE_FILE = 'geocode-cache.json'
    ROUTE_CACHE_FILE = 'route-cache.json'
    PLANNER_STATE_FILE = 'planner-state.json'

    def __init__(self, data_dir: str):
        """
        Initialize the local store.

        Args:
            data_dir: Directory holding the JSON files (created on first write)
        """
        self.data_dir = Path(data_dir)

    def path_for(self, name: str) -> Path:
        return self.data_dir / name

    def read_json(self, name: str) -> Optional[Any]:
        """
        Read a JSON document.

        Args:
            name: File name inside the data directory

        Returns:
            Parsed document, or None when the file is missing or unreadable
        """
        path = self.path_for(name)
        try:
            with path.open('r', encoding='utf-8') as handle:
                return json.load(handle)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to read local file {path}: {e}")
            return None

    def write_json(self, name: str, payload: Any) -> None:
        """
        Atomically replace a JSON document.

        The payload is written to a temporary file in the same directory and
        moved over the target with ``os.replace``.

        Args:
            name: File name inside the data directory
            payload: JSON-serializable document

        Raises:
            OSError: If the file cannot be written
        """
        self.data_dir.mkdir(parents=True, exist_ok=True)
        target = self.path_for(name)
        fd, temp_path = tempfile.mkstemp(dir=str(self.data_dir), prefix=f".{name}.", suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as handle:
                json.dump(payload, handle, indent=2)
                handle.write('\n')
            os.replace(temp_path, target)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

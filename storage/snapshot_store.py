"""Dual-destination persistence for sync snapshots."""
import logging
from typing import List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from processor.event_processor import DATE_SORT_SENTINEL
from processor.models import NormalizedEvent, NormalizedPlace, SyncSnapshot
from storage.dynamodb_manager import DynamoDBManager
from storage.local_store import LocalStore

logger = logging.getLogger(__name__)


class SnapshotStore:
    """
    Snapshot persistence over the local file store and the remote store.

    Writes always go to the local file first, then best-effort to the remote
    store. Reads prefer remote, then the local file, then the bundled sample
    events.
    """

    def __init__(self, local: LocalStore, remote: Optional[DynamoDBManager] = None):
        self.local = local
        self.remote = remote

    def write(self, snapshot: SyncSnapshot) -> bool:
        """
        Persist a snapshot to both destinations.

        A failure on either side is logged and never stops the other.

        Args:
            snapshot: Snapshot to store

        Returns:
            True if the local write and the remote mirror (when configured)
            both succeeded
        """
        local_ok = True
        try:
            self.local.write_json(LocalStore.EVENTS_CACHE_FILE, snapshot.to_dict())
            logger.info(
                f"Wrote snapshot with {snapshot.event_count} events and "
                f"{snapshot.spot_count} places to local cache"
            )
        except OSError as e:
            logger.error(f"Local snapshot write failed: {e}", exc_info=True)
            local_ok = False

        if self.remote is None:
            return local_ok

        try:
            payload = snapshot.to_dict()
            events_result = self.remote.save_events(
                payload['events'], snapshot.synced_at, snapshot.source_urls
            )
            spots_result = self.remote.save_spots(
                payload['places'], snapshot.synced_at, snapshot.source_urls
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Remote snapshot write failed: {e}")
            return False

        errors = events_result.errors + spots_result.errors
        if errors:
            logger.error(f"Remote snapshot write finished with errors: {errors}")
            return False
        return local_ok

    def read(self) -> SyncSnapshot:
        """
        Load the most recent snapshot.

        Returns:
            Snapshot from the remote store, local cache, or sample data, in
            that order; an empty snapshot when none is available
        """
        snapshot = self._read_remote()
        if snapshot is not None:
            return snapshot

        cached = self.local.read_json(LocalStore.EVENTS_CACHE_FILE)
        if isinstance(cached, dict):
            return SyncSnapshot.from_dict(cached)

        sample = self.local.read_json(LocalStore.SAMPLE_EVENTS_FILE)
        if isinstance(sample, list):
            return SyncSnapshot(
                synced_at='',
                source_urls=[],
                ingestion_errors=[],
                events=[NormalizedEvent.from_dict(item) for item in sample if isinstance(item, dict)],
                places=self.load_static_places(),
                sample_data=True,
            )

        return SyncSnapshot(
            synced_at='',
            source_urls=[],
            ingestion_errors=[],
            events=[],
            places=self.load_static_places(),
        )

    def load_static_places(self) -> List[NormalizedPlace]:
        raw = self.local.read_json(LocalStore.STATIC_PLACES_FILE)
        if not isinstance(raw, list):
            return []
        return [NormalizedPlace.from_dict(item) for item in raw if isinstance(item, dict)]

    def save_static_places(self, places: List[NormalizedPlace]) -> None:
        self.local.write_json(
            LocalStore.STATIC_PLACES_FILE, [place.to_dict() for place in places]
        )

    def _read_remote(self) -> Optional[SyncSnapshot]:
        if self.remote is None:
            return None

        try:
            events = self.remote.list_events()
            spots = self.remote.list_spots()
            meta = self.remote.get_sync_meta('events')
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Remote snapshot read failed, falling back to file cache: {e}")
            return None

        if not meta and not events:
            return None

        ordered_events = sorted(
            (NormalizedEvent.from_dict(item) for item in events),
            key=lambda event: event.start_date_iso or DATE_SORT_SENTINEL
        )
        ordered_places = sorted(
            (NormalizedPlace.from_dict(item) for item in spots),
            key=lambda place: (place.tag, place.name)
        )
        meta = meta or {}
        return SyncSnapshot(
            synced_at=meta.get('syncedAt', ''),
            source_urls=list(meta.get('sourceUrls') or []),
            ingestion_errors=[],
            events=ordered_events,
            places=ordered_places or self.load_static_places(),
        )

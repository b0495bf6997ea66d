"""Source snapshot provider and source registry operations."""
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlparse

from botocore.exceptions import BotoCoreError, ClientError

from processor.models import SOURCE_STATUSES, SOURCE_TYPES, IngestionError, Source
from processor.text import clean_text
from storage.dynamodb_manager import DynamoDBManager
from sync.errors import RegistryUnavailableError, SourceValidationError

logger = logging.getLogger(__name__)


@dataclass
class SourceSnapshot:
    """Active sources for one sync run."""
    event_sources: List[Source]
    spot_sources: List[Source]

    @property
    def all(self) -> List[Source]:
        return self.event_sources + self.spot_sources


def make_fallback_source(source_type: str, url: str) -> Source:
    url = clean_text(url)
    return Source(
        id=f"fallback-{source_type}-{url}",
        source_type=source_type,
        url=url,
        label=url,
        status='active',
        readonly=True,
    )


class SourceSnapshotProvider:
    """
    Resolves the active event and spot sources.

    Sources come from the registry; a source type with no active registry
    entries is replaced by read-only fallbacks from configuration.
    """

    def __init__(self, registry: Optional[DynamoDBManager],
                 event_fallback_urls: List[str], spot_fallback_urls: List[str]):
        self.registry = registry
        self.fallback_urls = {
            'event': list(event_fallback_urls),
            'spot': list(spot_fallback_urls),
        }

    def snapshot(self) -> SourceSnapshot:
        """
        Resolve the active sources for a sync run.

        Returns:
            SourceSnapshot with event and spot sources
        """
        registered = self.load_registered()
        return SourceSnapshot(
            event_sources=self._active_or_fallback(registered, 'event'),
            spot_sources=self._active_or_fallback(registered, 'spot'),
        )

    def all_sources(self) -> List[Source]:
        """Registered sources plus fallbacks for types with no registry entries."""
        registered = self.load_registered()
        sources = list(registered)
        for source_type in SOURCE_TYPES:
            if not any(source.source_type == source_type for source in registered):
                sources.extend(self._fallbacks(source_type))
        return sources

    def find(self, source_id: str) -> Optional[Source]:
        for source in self.all_sources():
            if source.id == source_id:
                return source
        return None

    def load_registered(self) -> List[Source]:
        """
        Read the source registry.

        Returns:
            Valid registry sources; empty when the registry is unavailable
        """
        if self.registry is None:
            return []
        try:
            rows = self.registry.list_sources()
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Source registry read failed, falling back to configured sources: {e}")
            return []

        sources = [Source.from_dict(row) for row in rows]
        return [source for source in sources if source is not None]

    def _active_or_fallback(self, registered: List[Source], source_type: str) -> List[Source]:
        active = []
        seen_urls = set()
        for source in registered:
            if source.source_type != source_type or source.status != 'active':
                continue
            if source.url in seen_urls:
                continue
            seen_urls.add(source.url)
            active.append(source)

        if active:
            return active
        logger.info(f"No active {source_type} sources registered; using configured fallbacks")
        return self._fallbacks(source_type)

    def _fallbacks(self, source_type: str) -> List[Source]:
        return [make_fallback_source(source_type, url) for url in self.fallback_urls[source_type]]

    # Registry mutations

    def create_source(self, source_type: str, url: str, label: str = '') -> Source:
        """
        Register a new source.

        Args:
            source_type: "event" or "spot"
            url: Absolute http(s) URL
            label: Display label (defaults to the URL)

        Returns:
            Created (or already existing) Source

        Raises:
            RegistryUnavailableError: If no registry is configured
            SourceValidationError: If the input is invalid
        """
        registry = self._require_registry()
        source_type = clean_text(source_type).lower()
        url = clean_text(url)
        if source_type not in SOURCE_TYPES:
            raise SourceValidationError('sourceType must be "event" or "spot".')
        validate_source_url(url)

        row = registry.create_source(source_type, url, clean_text(label) or url)
        return Source.from_dict(row)

    def update_source(self, source_id: str, label: Optional[str] = None,
                      status: Optional[str] = None) -> Optional[Source]:
        """
        Update a source's label and/or status.

        Returns:
            Updated Source, or None when it does not exist

        Raises:
            RegistryUnavailableError: If no registry is configured
            SourceValidationError: If nothing valid was provided
        """
        registry = self._require_registry()
        changes = {}
        if isinstance(label, str):
            changes['label'] = clean_text(label)
        if isinstance(status, str):
            next_status = clean_text(status).lower()
            if next_status not in SOURCE_STATUSES:
                raise SourceValidationError('status must be "active" or "paused".')
            changes['status'] = next_status
        if not changes:
            raise SourceValidationError('Nothing to update. Provide "label" and/or "status".')

        row = registry.update_source(source_id, **changes)
        return Source.from_dict(row) if row else None

    def delete_source(self, source_id: str) -> bool:
        return self._require_registry().delete_source(source_id)

    def record_sync_status(self, sources: List[Source], errors: List[IngestionError],
                           synced_at: str) -> None:
        """
        Best-effort update of lastSyncedAt/lastError on registry sources.

        Read-only fallback sources are skipped. The first error per source
        becomes its lastError; sources without errors get an empty one.

        Args:
            sources: Sources that took part in the sync
            errors: Ingestion errors of the run
            synced_at: ISO timestamp of the run
        """
        if self.registry is None:
            return

        first_error_by_source: Dict[str, str] = {}
        for error in errors:
            if error.source_id and error.source_id not in first_error_by_source:
                first_error_by_source[error.source_id] = error.message

        for source in sources:
            if source.readonly or not source.id:
                continue
            try:
                self.registry.update_source(
                    source.id,
                    lastSyncedAt=synced_at,
                    lastError=first_error_by_source.get(source.id, ''),
                )
            except (ClientError, BotoCoreError) as e:
                logger.warning(f"Failed to record sync status for source {source.id}: {e}")

    def _require_registry(self) -> DynamoDBManager:
        if self.registry is None:
            raise RegistryUnavailableError(
                'REMOTE_TABLE_NAME is missing. Configure the remote store to persist sources.'
            )
        return self.registry


def validate_source_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in ('http', 'https') or not parsed.netloc:
        raise SourceValidationError('Invalid URL. Use a full http(s) URL.')

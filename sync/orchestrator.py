"""Sync orchestrator: sources to persisted snapshot."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from geocoding.geocoder import coordinates_from_map_url
from geocoding.resolver import GeocodeResolver
from processor import event_processor, spot_processor
from processor.event_processor import EventProcessor
from processor.models import (
    Coordinates,
    IngestionError,
    NormalizedEvent,
    NormalizedPlace,
    Source,
    SourceSyncResult,
    SyncSnapshot,
)
from processor.spot_processor import SpotProcessor
from scraper.event_extractor import DetailExtractor, DiscoveryExtractor
from scraper.extraction_client import ExtractionClient
from scraper.ics_feed import IcsFeedReader, is_feed_url
from scraper.place_extractor import PlaceExtractor
from storage.dynamodb_manager import DynamoDBManager
from storage.local_store import LocalStore
from storage.snapshot_store import SnapshotStore
from sync.config import SyncConfig
from sync.errors import MissingCredentialError, SourceNotFoundError
from sync.inflight import SingleFlight
from sync.sources import SourceSnapshotProvider

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class BatchResult(Generic[T]):
    """Records and errors produced from one group of sources."""
    records: List[T] = field(default_factory=list)
    source_urls: List[str] = field(default_factory=list)
    errors: List[IngestionError] = field(default_factory=list)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


class SyncOrchestrator:
    """
    Coordinates a full or single-source sync.

    Item-level failures become IngestionErrors and never abort the run.
    Remote persistence is best-effort. Concurrent ``sync`` calls for the
    same target key share one execution.
    """

    def __init__(
        self,
        config: SyncConfig,
        sources: SourceSnapshotProvider,
        discovery: DiscoveryExtractor,
        details: DetailExtractor,
        places: PlaceExtractor,
        feed_reader: IcsFeedReader,
        geocoder: GeocodeResolver,
        snapshot_store: SnapshotStore,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.config = config
        self.sources = sources
        self.discovery = discovery
        self.details = details
        self.places = places
        self.feed_reader = feed_reader
        self.geocoder = geocoder
        self.snapshot_store = snapshot_store
        self.clock = clock
        self.event_processor = EventProcessor(
            event_url_prefix=config.event_url_prefix,
            confidence_threshold=config.event_confidence_threshold,
        )
        self.spot_processor = SpotProcessor(confidence_threshold=config.spot_confidence_threshold)
        self.single_flight = SingleFlight()

    @classmethod
    def from_config(cls, config: SyncConfig,
                    sleep: Callable[[float], None] = time.sleep) -> 'SyncOrchestrator':
        """
        Wire an orchestrator and its collaborators from configuration.

        Args:
            config: Sync configuration
            sleep: Sleep function for retries and job polling

        Returns:
            SyncOrchestrator
        """
        local = LocalStore(config.data_dir)
        remote = None
        if config.remote_table_name:
            remote = DynamoDBManager(config.remote_table_name, region_name=config.aws_region)

        client = ExtractionClient(
            api_key=config.extraction_api_key,
            base_url=config.extraction_base_url,
            timeout=config.extraction_timeout_seconds,
            poll_interval=config.job_poll_interval_seconds,
            poll_max_attempts=config.job_poll_max_attempts,
            sleep=sleep,
        )
        processor = EventProcessor(
            event_url_prefix=config.event_url_prefix,
            confidence_threshold=config.event_confidence_threshold,
        )

        return cls(
            config=config,
            sources=SourceSnapshotProvider(remote, config.event_source_urls, config.spot_source_urls),
            discovery=DiscoveryExtractor(client, processor),
            details=DetailExtractor(
                client,
                event_url_prefix=config.event_url_prefix,
                max_attempts=config.detail_max_attempts,
                retry_delay=config.detail_retry_delay_seconds,
                sleep=sleep,
            ),
            places=PlaceExtractor(client),
            feed_reader=IcsFeedReader(sleep=sleep),
            geocoder=GeocodeResolver.create(local, remote, config.geocoding_api_key),
            snapshot_store=SnapshotStore(local, remote),
        )

    # Entry points

    def sync(self, target_key: str = 'default') -> SyncSnapshot:
        """
        Run a full sync, or join the one already running for target_key.

        Args:
            target_key: Identity of the sync target

        Returns:
            The resulting SyncSnapshot

        Raises:
            MissingCredentialError: If the extraction API key is not configured
        """
        return self.single_flight.do(f"sync:{target_key}", self._run_sync)

    def sync_one(self, source_id: str) -> SourceSyncResult:
        """
        Re-sync a single source without rewriting the snapshot.

        Args:
            source_id: Source identifier (registry id or fallback id)

        Returns:
            SourceSyncResult with the record count and errors

        Raises:
            MissingCredentialError: If the extraction API key is not configured
            SourceNotFoundError: If no source has this id
        """
        return self.single_flight.do(f"source:{source_id}", lambda: self._run_sync_one(source_id))

    def load_snapshot(self) -> SyncSnapshot:
        """Current persisted snapshot through the remote, local, sample chain."""
        return self.snapshot_store.read()

    # Runs

    def _run_sync(self) -> SyncSnapshot:
        self._require_credentials()
        started = time.time()
        synced_at = self.clock().isoformat()

        source_snapshot = self.sources.snapshot()
        logger.info(
            f"Sync started with {len(source_snapshot.event_sources)} event sources and "
            f"{len(source_snapshot.spot_sources)} spot sources"
        )

        event_result = self.sync_event_sources(source_snapshot.event_sources)
        spot_result = self.sync_spot_sources(source_snapshot.spot_sources)
        places = spot_result.records or self._static_places()
        errors = event_result.errors + spot_result.errors

        snapshot = SyncSnapshot(
            synced_at=synced_at,
            source_urls=event_result.source_urls + spot_result.source_urls,
            ingestion_errors=errors,
            events=event_result.records,
            places=places,
        )

        self.snapshot_store.write(snapshot)
        self.sources.record_sync_status(source_snapshot.all, errors, synced_at)

        logger.info(
            f"Sync completed: {snapshot.event_count} events, {snapshot.spot_count} places, "
            f"{len(errors)} ingestion errors in {time.time() - started:.2f}s"
        )
        return snapshot

    def _run_sync_one(self, source_id: str) -> SourceSyncResult:
        self._require_credentials()
        source = self.sources.find(source_id)
        if source is None:
            raise SourceNotFoundError(f"Source not found: {source_id}")

        synced_at = self.clock().isoformat()
        logger.info(f"Syncing single {source.source_type} source {source.id}")
        if source.source_type == 'event':
            result = self.sync_event_sources([source])
        else:
            result = self.sync_spot_sources([source])

        self.sources.record_sync_status([source], result.errors, synced_at)
        return SourceSyncResult(
            synced_at=synced_at,
            source_id=source.id,
            source_type=source.source_type,
            count=len(result.records),
            errors=result.errors,
        )

    def _require_credentials(self) -> None:
        if not self.config.extraction_api_key:
            raise MissingCredentialError('FIRECRAWL_API_KEY is missing; cannot run extraction.')

    # Events

    def sync_event_sources(self, sources: List[Source]) -> BatchResult[NormalizedEvent]:
        """
        Discover, fetch, normalize, dedupe and geocode events.

        Args:
            sources: Event sources, in priority order

        Returns:
            BatchResult with sorted events and ingestion errors
        """
        result = BatchResult(source_urls=[source.url for source in sources])
        events: List[NormalizedEvent] = []
        candidates: Dict[str, Source] = {}

        for source in sources:
            if is_feed_url(source.url):
                events.extend(self._read_feed(source, result.errors))
                continue

            try:
                discovered = self.discovery.discover_source(source.url)
            except Exception as e:
                logger.warning(f"Discovery failed for {source.url}: {e}")
                result.errors.append(IngestionError.for_source(source, 'discover', _describe(e)))
                continue

            if not discovered:
                result.errors.append(IngestionError.for_source(
                    source, 'discover', 'No event URLs discovered on source page.'
                ))
                continue

            # First source to discover a URL owns it
            for url in discovered:
                candidates.setdefault(url, source)

        pending = list(candidates.items())
        if len(pending) > self.config.max_event_details:
            logger.info(
                f"Truncating {len(pending)} candidate events to {self.config.max_event_details}"
            )
            pending = pending[:self.config.max_event_details]

        events.extend(self._fetch_event_details(pending, result.errors))
        result.records = self.enrich_events(event_processor.dedupe_and_sort(events))
        return result

    def _read_feed(self, source: Source, errors: List[IngestionError]) -> List[NormalizedEvent]:
        try:
            rows = self.feed_reader.fetch_events(source.url)
        except Exception as e:
            logger.warning(f"Feed read failed for {source.url}: {e}")
            errors.append(IngestionError.for_source(source, 'extract', _describe(e)))
            return []

        events = []
        for uid, raw in rows:
            event = self.event_processor.normalize_feed_event(raw, uid=uid, source=source)
            if event:
                events.append(event)
        return events

    def _fetch_event_details(self, pending: List[Tuple[str, Source]],
                             errors: List[IngestionError]) -> List[NormalizedEvent]:
        """
        Fetch details in fixed-size chunks.

        Each chunk runs concurrently and is awaited as a whole; failures do
        not cancel siblings. Outcomes are merged in submission order.
        """
        events = []
        chunk_size = max(1, self.config.detail_chunk_size)

        with ThreadPoolExecutor(max_workers=chunk_size, thread_name_prefix='details') as pool:
            for start in range(0, len(pending), chunk_size):
                chunk = pending[start:start + chunk_size]
                futures = [pool.submit(self.details.fetch_details, url) for url, _ in chunk]
                wait(futures)

                for (url, source), future in zip(chunk, futures):
                    try:
                        raw = future.result()
                    except Exception as e:
                        errors.append(IngestionError.for_source(
                            source, 'details', _describe(e), event_url=url
                        ))
                        continue

                    event = self.event_processor.normalize_event(raw, source)
                    if event is None:
                        errors.append(IngestionError.for_source(
                            source, 'normalize', 'Extracted event is missing a name or valid URL.',
                            event_url=url
                        ))
                        continue
                    events.append(event)

        return events

    # Places

    def sync_spot_sources(self, sources: List[Source]) -> BatchResult[NormalizedPlace]:
        """
        Extract, normalize, dedupe and geocode places.

        Args:
            sources: Spot sources

        Returns:
            BatchResult with sorted places and ingestion errors
        """
        result = BatchResult(source_urls=[source.url for source in sources])
        places: List[NormalizedPlace] = []

        for source in sources:
            try:
                raw_places = self.places.fetch_places(source.url)
            except Exception as e:
                logger.warning(f"Place extraction failed for {source.url}: {e}")
                result.errors.append(IngestionError.for_source(source, 'extract', _describe(e)))
                continue

            normalized = self.spot_processor.normalize_spots(raw_places, source)
            if not normalized:
                result.errors.append(IngestionError.for_source(
                    source, 'normalize', 'No usable places extracted from source.'
                ))
                continue
            places.extend(normalized)

        result.records = self.enrich_places(spot_processor.dedupe_and_sort(places))
        return result

    def _static_places(self) -> List[NormalizedPlace]:
        static = self.snapshot_store.load_static_places()
        missing = sum(1 for place in static if not place.has_coordinates)
        enriched = self.enrich_places(static)
        if missing and missing != sum(1 for place in enriched if not place.has_coordinates):
            try:
                self.snapshot_store.save_static_places(enriched)
            except OSError as e:
                logger.warning(f"Failed to save static place coordinates: {e}")
        return enriched

    # Geocoding

    def enrich_events(self, events: List[NormalizedEvent]) -> List[NormalizedEvent]:
        """Fill missing coordinates from the map link, then the address."""
        for event in events:
            if event.has_coordinates:
                continue
            coordinates = (
                coordinates_from_map_url(event.google_maps_url)
                or self._resolve(event.address or event.location_text)
            )
            if coordinates:
                event.lat, event.lng = coordinates.lat, coordinates.lng
        return events

    def enrich_places(self, places: List[NormalizedPlace]) -> List[NormalizedPlace]:
        """Fill missing coordinates from the map link, then location or name."""
        for place in places:
            if place.has_coordinates:
                continue
            coordinates = (
                coordinates_from_map_url(place.map_link)
                or self._resolve(place.location or place.name)
            )
            if coordinates:
                place.lat, place.lng = coordinates.lat, coordinates.lng
        return places

    def _resolve(self, address_text: str) -> Optional[Coordinates]:
        if not address_text:
            return None
        try:
            return self.geocoder.resolve(address_text)
        except OSError as e:
            logger.warning(f"Geocode cache write failed for '{address_text}': {e}")
            return None
        except Exception as e:
            logger.warning(f"Geocoding failed for '{address_text}': {e}", exc_info=True)
            return None

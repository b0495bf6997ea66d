"""Data models for source ingestion and sync snapshots."""
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

SOURCE_TYPES = ('event', 'spot')
SOURCE_STATUSES = ('active', 'paused')
INGESTION_STAGES = ('discover', 'details', 'normalize', 'extract')


def _text(value: Any) -> str:
    """Coerce an untrusted payload value to a string, empty for non-strings."""
    return value if isinstance(value, str) else ''


def to_coordinate(value: Any) -> Optional[float]:
    """Coerce a payload value to a finite float coordinate or None."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number or number in (float('inf'), float('-inf')):
        return None
    return number


@dataclass
class Source:
    """Configured event or spot source."""
    id: str
    source_type: str
    url: str
    label: str
    status: str = 'active'
    readonly: bool = False
    last_synced_at: str = ''
    last_error: str = ''
    created_at: str = ''
    updated_at: str = ''

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'sourceType': self.source_type,
            'url': self.url,
            'label': self.label,
            'status': self.status,
            'readonly': self.readonly,
            'lastSyncedAt': self.last_synced_at,
            'lastError': self.last_error,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional['Source']:
        """
        Build a Source from a registry row.

        Args:
            data: Registry row using camelCase keys

        Returns:
            Source, or None when type, status or URL are invalid
        """
        source_type = _text(data.get('sourceType')).strip().lower()
        status = _text(data.get('status')).strip().lower()
        url = _text(data.get('url')).strip()
        if source_type not in SOURCE_TYPES or status not in SOURCE_STATUSES or not url:
            return None

        return cls(
            id=_text(data.get('id')).strip(),
            source_type=source_type,
            url=url,
            label=_text(data.get('label')).strip() or url,
            status=status,
            readonly=bool(data.get('readonly', False)),
            last_synced_at=_text(data.get('lastSyncedAt')),
            last_error=_text(data.get('lastError')),
            created_at=_text(data.get('createdAt')),
            updated_at=_text(data.get('updatedAt')),
        )


@dataclass
class RawEventDetails:
    """Untrusted event fields returned by the extraction service or a scrape."""
    url: str = ''
    name: str = ''
    description: str = ''
    start_date_time_text: str = ''
    start_date_iso: str = ''
    location_text: str = ''
    address: str = ''
    google_maps_url: str = ''
    lat: Optional[float] = None
    lng: Optional[float] = None

    _PAYLOAD_KEYS = {
        'url': 'url',
        'name': 'name',
        'description': 'description',
        'startDateTimeText': 'start_date_time_text',
        'startDateISO': 'start_date_iso',
        'locationText': 'location_text',
        'address': 'address',
        'googleMapsUrl': 'google_maps_url',
    }

    @classmethod
    def from_payload(cls, payload: Any, url: str = '') -> 'RawEventDetails':
        """Build from a duck-typed extraction payload, ignoring unknown keys."""
        if not isinstance(payload, dict):
            return cls(url=url)
        values = {attr: _text(payload.get(key)) for key, attr in cls._PAYLOAD_KEYS.items()}
        values['url'] = values['url'] or url
        return cls(
            lat=to_coordinate(payload.get('lat')),
            lng=to_coordinate(payload.get('lng')),
            **values
        )

    def merged_over(self, fallback: 'RawEventDetails') -> 'RawEventDetails':
        """
        Merge these fields over a fallback record.

        Non-empty values on self win field by field.

        Args:
            fallback: Record supplying values for empty fields

        Returns:
            New merged RawEventDetails
        """
        merged = {}
        for item in fields(self):
            mine = getattr(self, item.name)
            if isinstance(mine, str):
                mine = mine.strip()
            merged[item.name] = mine if mine not in ('', None) else getattr(fallback, item.name)
        return RawEventDetails(**merged)


@dataclass
class RawPlace:
    """Untrusted place row returned by the extraction service."""
    name: str = ''
    tag: str = ''
    location: str = ''
    map_link: str = ''
    corner_link: str = ''
    curator_comment: str = ''
    short_description: str = ''
    details: str = ''
    lat: Optional[float] = None
    lng: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Any) -> Optional['RawPlace']:
        if not isinstance(payload, dict):
            return None
        return cls(
            name=_text(payload.get('name')),
            tag=_text(payload.get('tag')),
            location=_text(payload.get('location')),
            map_link=_text(payload.get('mapLink')),
            corner_link=_text(payload.get('cornerLink')),
            curator_comment=_text(payload.get('curatorComment')),
            short_description=_text(payload.get('shortDescription') or payload.get('description')),
            details=_text(payload.get('details')),
            lat=to_coordinate(payload.get('lat')),
            lng=to_coordinate(payload.get('lng')),
        )


@dataclass
class NormalizedEvent:
    """Validated event record."""
    id: str
    name: str
    description: str
    event_url: str
    start_date_time_text: str
    start_date_iso: str
    location_text: str
    address: str
    google_maps_url: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    source_id: str = ''
    source_url: str = ''
    confidence: float = 0.7

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'eventUrl': self.event_url,
            'startDateTimeText': self.start_date_time_text,
            'startDateISO': self.start_date_iso,
            'locationText': self.location_text,
            'address': self.address,
            'googleMapsUrl': self.google_maps_url,
            'sourceId': self.source_id,
            'sourceUrl': self.source_url,
            'confidence': self.confidence,
        }
        if self.has_coordinates:
            data['lat'] = self.lat
            data['lng'] = self.lng
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NormalizedEvent':
        return cls(
            id=_text(data.get('id')),
            name=_text(data.get('name')),
            description=_text(data.get('description')),
            event_url=_text(data.get('eventUrl')),
            start_date_time_text=_text(data.get('startDateTimeText')),
            start_date_iso=_text(data.get('startDateISO')),
            location_text=_text(data.get('locationText')),
            address=_text(data.get('address')),
            google_maps_url=_text(data.get('googleMapsUrl')),
            lat=to_coordinate(data.get('lat')),
            lng=to_coordinate(data.get('lng')),
            source_id=_text(data.get('sourceId')),
            source_url=_text(data.get('sourceUrl')),
            confidence=float(data.get('confidence') or 0.7),
        )


@dataclass
class NormalizedPlace:
    """Validated place (spot) record."""
    id: str
    name: str
    tag: str
    location: str
    map_link: str
    corner_link: str
    curator_comment: str
    description: str
    details: str
    lat: Optional[float] = None
    lng: Optional[float] = None
    source_id: str = ''
    source_url: str = ''
    confidence: float = 0.7

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'name': self.name,
            'tag': self.tag,
            'location': self.location,
            'mapLink': self.map_link,
            'cornerLink': self.corner_link,
            'curatorComment': self.curator_comment,
            'description': self.description,
            'details': self.details,
            'sourceId': self.source_id,
            'sourceUrl': self.source_url,
            'confidence': self.confidence,
        }
        if self.has_coordinates:
            data['lat'] = self.lat
            data['lng'] = self.lng
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NormalizedPlace':
        return cls(
            id=_text(data.get('id')),
            name=_text(data.get('name')),
            tag=_text(data.get('tag')),
            location=_text(data.get('location')),
            map_link=_text(data.get('mapLink')),
            corner_link=_text(data.get('cornerLink')),
            curator_comment=_text(data.get('curatorComment')),
            description=_text(data.get('description')),
            details=_text(data.get('details')),
            lat=to_coordinate(data.get('lat')),
            lng=to_coordinate(data.get('lng')),
            source_id=_text(data.get('sourceId')),
            source_url=_text(data.get('sourceUrl')),
            confidence=float(data.get('confidence') or 0.7),
        )


@dataclass
class IngestionError:
    """Non-fatal failure of one item or source during a sync run."""
    source_type: str
    source_id: str
    source_url: str
    stage: str
    message: str
    event_url: str = ''

    @classmethod
    def for_source(cls, source: Source, stage: str, message: str,
                   event_url: str = '') -> 'IngestionError':
        """
        Build an error attributed to a source.

        Raises:
            ValueError: If stage is not one of INGESTION_STAGES
        """
        if stage not in INGESTION_STAGES:
            raise ValueError(f"Unknown ingestion stage: {stage}")
        return cls(
            source_type=source.source_type,
            source_id=source.id,
            source_url=source.url,
            stage=stage,
            message=' '.join(str(message).split()),
            event_url=event_url,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'sourceType': self.source_type,
            'sourceId': self.source_id,
            'sourceUrl': self.source_url,
            'eventUrl': self.event_url,
            'stage': self.stage,
            'message': self.message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IngestionError':
        return cls(
            source_type=_text(data.get('sourceType')),
            source_id=_text(data.get('sourceId')),
            source_url=_text(data.get('sourceUrl')),
            stage=_text(data.get('stage')),
            message=_text(data.get('message')),
            event_url=_text(data.get('eventUrl')),
        )


@dataclass(frozen=True)
class Coordinates:
    """Latitude/longitude pair."""
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {'lat': self.lat, 'lng': self.lng}

    @classmethod
    def from_dict(cls, data: Any) -> Optional['Coordinates']:
        if not isinstance(data, dict):
            return None
        lat = to_coordinate(data.get('lat'))
        lng = to_coordinate(data.get('lng'))
        if lat is None or lng is None:
            return None
        return cls(lat=lat, lng=lng)


@dataclass(frozen=True)
class GeocodeCacheEntry:
    """Cached geocode result keyed by normalized address."""
    address_key: str
    lat: float
    lng: float
    address_text: str = ''

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'addressKey': self.address_key,
            'addressText': self.address_text,
            'lat': self.lat,
            'lng': self.lng,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional['GeocodeCacheEntry']:
        coordinates = Coordinates.from_dict(data)
        if coordinates is None:
            return None
        return cls(
            address_key=_text(data.get('addressKey')),
            lat=coordinates.lat,
            lng=coordinates.lng,
            address_text=_text(data.get('addressText')),
        )


@dataclass(frozen=True)
class SyncSnapshot:
    """Point-in-time result of one sync run."""
    synced_at: str
    source_urls: List[str]
    ingestion_errors: List[IngestionError]
    events: List[NormalizedEvent]
    places: List[NormalizedPlace]
    sample_data: bool = False

    @property
    def event_count(self) -> int:
        return len(self.events)

    @property
    def spot_count(self) -> int:
        return len(self.places)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'syncedAt': self.synced_at,
            'sourceUrls': list(self.source_urls),
            'eventCount': self.event_count,
            'spotCount': self.spot_count,
            'ingestionErrors': [error.to_dict() for error in self.ingestion_errors],
            'events': [event.to_dict() for event in self.events],
            'places': [place.to_dict() for place in self.places],
        }
        if self.sample_data:
            data['sampleData'] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SyncSnapshot':
        return cls(
            synced_at=_text(data.get('syncedAt')),
            source_urls=[url for url in data.get('sourceUrls') or [] if isinstance(url, str)],
            ingestion_errors=[
                IngestionError.from_dict(item)
                for item in data.get('ingestionErrors') or []
                if isinstance(item, dict)
            ],
            events=[
                NormalizedEvent.from_dict(item)
                for item in data.get('events') or []
                if isinstance(item, dict)
            ],
            places=[
                NormalizedPlace.from_dict(item)
                for item in data.get('places') or []
                if isinstance(item, dict)
            ],
            sample_data=bool(data.get('sampleData', False)),
        )


@dataclass
class SourceSyncResult:
    """Result of re-syncing a single source."""
    synced_at: str
    source_id: str
    source_type: str
    count: int
    errors: List[IngestionError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'syncedAt': self.synced_at,
            'sourceId': self.source_id,
            'sourceType': self.source_type,
            'count': self.count,
            'errors': [error.to_dict() for error in self.errors],
        }


@dataclass
class SyncResult:
    """Result of a full-replacement write to the remote store."""
    added: int
    updated: int
    deleted: int
    errors: List[str]

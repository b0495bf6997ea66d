"""Sync configuration read from environment variables."""
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

DEFAULT_EVENT_SOURCE_URLS = (
    'https://api2.luma.com/ics/get?entity=calendar&id=cal-kC1rltFkxqfbHcB',
    'https://api2.luma.com/ics/get?entity=discover&id=discplace-BDj7GNbGlsF7Cka',
)
DEFAULT_SPOT_LIST_URL = 'https://www.corner.inc/list/e65af393-70dd-46d5-948a-d774f472d2ee'


def split_urls(value: str) -> List[str]:
    return [part.strip() for part in (value or '').split(',') if part.strip()]


@dataclass
class SyncConfig:
    """Settings for one orchestrator instance."""
    extraction_api_key: str = ''
    extraction_base_url: str = 'https://api.firecrawl.dev'
    extraction_timeout_seconds: int = 60
    geocoding_api_key: str = ''
    remote_table_name: str = ''
    aws_region: Optional[str] = None
    data_dir: str = 'data'
    event_source_urls: List[str] = field(default_factory=lambda: list(DEFAULT_EVENT_SOURCE_URLS))
    spot_source_urls: List[str] = field(default_factory=lambda: [DEFAULT_SPOT_LIST_URL])
    max_event_details: int = 60
    detail_chunk_size: int = 4
    detail_max_attempts: int = 3
    detail_retry_delay_seconds: float = 1.0
    job_poll_interval_seconds: float = 1.5
    job_poll_max_attempts: int = 40
    event_url_prefix: str = 'https://luma.com/'
    event_confidence_threshold: int = 6
    spot_confidence_threshold: int = 4
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'SyncConfig':
        """
        Build configuration from environment variables.

        Args:
            environ: Mapping to read (defaults to os.environ)

        Returns:
            SyncConfig
        """
        env = os.environ if environ is None else environ
        spot_urls = split_urls(env.get('SPOT_SOURCE_URLS', ''))
        default_spot_url = env.get('DEFAULT_SPOT_LIST_URL', DEFAULT_SPOT_LIST_URL)

        return cls(
            extraction_api_key=env.get('FIRECRAWL_API_KEY', ''),
            extraction_base_url=env.get('FIRECRAWL_BASE_URL', 'https://api.firecrawl.dev'),
            extraction_timeout_seconds=int(env.get('EXTRACTION_TIMEOUT_SECONDS', '60')),
            geocoding_api_key=env.get('GOOGLE_MAPS_GEOCODING_KEY') or env.get('GOOGLE_MAPS_SERVER_KEY', ''),
            remote_table_name=env.get('REMOTE_TABLE_NAME', ''),
            aws_region=env.get('AWS_REGION') or None,
            data_dir=env.get('DATA_DIR', 'data'),
            event_source_urls=split_urls(env.get('EVENT_SOURCE_URLS', '')) or list(DEFAULT_EVENT_SOURCE_URLS),
            spot_source_urls=spot_urls or [default_spot_url],
            max_event_details=int(env.get('MAX_EVENT_DETAILS', '60')),
            detail_chunk_size=int(env.get('DETAIL_CHUNK_SIZE', '4')),
            detail_max_attempts=int(env.get('DETAIL_MAX_ATTEMPTS', '3')),
            detail_retry_delay_seconds=float(env.get('DETAIL_RETRY_DELAY_SECONDS', '1.0')),
            job_poll_interval_seconds=float(env.get('JOB_POLL_INTERVAL_SECONDS', '1.5')),
            job_poll_max_attempts=int(env.get('JOB_POLL_MAX_ATTEMPTS', '40')),
            event_url_prefix=env.get('EVENT_URL_PREFIX', 'https://luma.com/'),
            event_confidence_threshold=int(env.get('EVENT_CONFIDENCE_THRESHOLD', '6')),
            spot_confidence_threshold=int(env.get('SPOT_CONFIDENCE_THRESHOLD', '4')),
            log_level=env.get('LOG_LEVEL', 'INFO'),
        )

"""HTTP client for the AI web-extraction service."""
import logging
import time
from typing import Any, Callable, Dict, Optional, Sequence

import requests

from scraper.retry import PollTimeout, poll_until

logger = logging.getLogger(__name__)

FAILED_STATUSES = ('failed', 'cancelled')


class ExtractionError(Exception):
    """Extraction request failed."""


class ExtractionJobFailed(ExtractionError):
    """Asynchronous extraction job ended in a failed or cancelled state."""


class ExtractionTimeout(ExtractionError):
    """Asynchronous extraction job did not finish within the polling budget."""


class ExtractionClient:
    """
    Client for a Firecrawl-compatible extraction API.

    Non-2xx responses raise ExtractionError immediately; retrying is left
    to the callers.
    """

    DEFAULT_BASE_URL = "https://api.firecrawl.dev"

    def __init__(
        self,
        api_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: int = 60,
        poll_interval: float = 1.5,
        poll_max_attempts: int = 40,
        sleep: Callable[[float], None] = time.sleep,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the extraction client.

        Args:
            api_key: Bearer credential for the service
            base_url: Service root URL
            timeout: HTTP request timeout in seconds
            poll_interval: Seconds between job-status polls
            poll_max_attempts: Maximum number of job-status polls
            sleep: Sleep function used between polls
            session: Optional requests session
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.poll_max_attempts = poll_max_attempts
        self.sleep = sleep
        self.session = session or requests.Session()

    def extract(self, urls: Sequence[str], prompt: str, schema: Dict[str, Any]) -> Any:
        """
        Run a structured extraction and return its data.

        When the service answers with a job id, the job is polled until it
        completes, fails, or the polling budget runs out.

        Args:
            urls: Pages to extract from
            prompt: Extraction instructions
            schema: JSON schema of the expected result

        Returns:
            Extracted data payload

        Raises:
            ExtractionError: On HTTP failure or an unsuccessful response
            ExtractionJobFailed: If the job fails or is cancelled
            ExtractionTimeout: If the job does not finish in time
        """
        payload = self._request('POST', '/v1/extract', json={
            'urls': list(urls),
            'prompt': prompt,
            'schema': schema,
        })

        if payload.get('data') is not None:
            return payload['data']

        job_id = payload.get('id') or payload.get('jobId')
        if not job_id:
            raise ExtractionError('Extraction response contained neither data nor a job id')

        return self.wait_for_job(job_id)

    def poll_job(self, job_id: str) -> Dict[str, Any]:
        """Fetch the current status of an extraction job."""
        return self._request('GET', f'/v1/extract/{job_id}')

    def wait_for_job(self, job_id: str) -> Any:
        """
        Poll an extraction job until it reaches a terminal status.

        Args:
            job_id: Job identifier returned by extract

        Returns:
            Job data payload
        """
        def is_done(status_payload: Dict[str, Any]) -> bool:
            status = str(status_payload.get('status', '')).lower()
            if status == 'completed':
                return True
            if status in FAILED_STATUSES:
                message = status_payload.get('error') or f"Extraction job {job_id} {status}"
                raise ExtractionJobFailed(message)
            return False

        try:
            result = poll_until(
                lambda: self.poll_job(job_id),
                is_done,
                interval=self.poll_interval,
                max_attempts=self.poll_max_attempts,
                sleep=self.sleep,
                description=f"Extraction job {job_id}",
            )
        except PollTimeout as e:
            raise ExtractionTimeout(str(e)) from e

        return result.get('data')

    def scrape(self, url: str, formats: Sequence[str] = ('markdown', 'html')) -> Dict[str, Any]:
        """
        Fetch raw page content.

        Args:
            url: Page URL
            formats: Content formats to request

        Returns:
            Scrape data (``markdown``, ``html``, ``metadata`` keys when available)
        """
        payload = self._request('POST', '/v1/scrape', json={
            'url': url,
            'formats': list(formats),
        })
        data = payload.get('data')
        return data if isinstance(data, dict) else {}

    def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        headers = {
            'Authorization': f"Bearer {self.api_key}",
            'Content-Type': 'application/json',
        }

        try:
            response = self.session.request(method, url, json=json, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            raise ExtractionError(f"{method} {path} failed: {e}") from e

        if not response.ok:
            raise ExtractionError(
                f"{method} {path} returned HTTP {response.status_code}: {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ExtractionError(f"{method} {path} returned invalid JSON") from e

        if not isinstance(payload, dict):
            raise ExtractionError(f"{method} {path} returned an unexpected payload")
        if payload.get('success') is False:
            raise ExtractionError(payload.get('error') or f"{method} {path} was unsuccessful")
        return payload

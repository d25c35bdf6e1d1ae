"""PostgREST-style HTTP target store."""

import time
import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .base import BaseStore
from ..errors import StoreError

logger = logging.getLogger(__name__)


def _filter_value(value: Any) -> str:
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    return f"eq.{value}"


class RestStore(BaseStore):
    """
    Target store backed by a PostgREST endpoint.

    Tables live under ``/rest/v1/<table>``; filters are sent as
    ``field=eq.value`` query parameters and writes ask for the stored
    representation back.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        target_service: str = "rest",
        rate_limit: float = 10.0,
        max_retries: int = 3,
        backoff_factor: float = 2.0,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None
    ):
        """
        Initialize the REST store.

        Args:
            base_url: Base URL of the service (without /rest/v1)
            api_key: API key sent as bearer token and ``apikey`` header
            target_service: Name of the target service
            rate_limit: Max requests per second (0 disables)
            max_retries: Retries for 429 and 5xx responses
            backoff_factor: Retry backoff factor
            timeout: Request timeout in seconds
            session: Custom requests session
        """
        super().__init__(target_service)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.rate_limit = rate_limit
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.timeout = timeout
        self._last_request_time = 0.0
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a requests session with retry logic and authentication."""
        session = requests.Session()

        retries = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=[429, 500, 502, 503, 504],
        )
        adapter = HTTPAdapter(max_retries=retries)
        session.mount("https://", adapter)
        session.mount("http://", adapter)

        if self.api_key:
            session.headers["Authorization"] = f"Bearer {self.api_key}"
            session.headers["apikey"] = self.api_key
        session.headers["Content-Type"] = "application/json"

        return session

    def _rate_limit_wait(self):
        """Wait to respect rate limits."""
        if self.rate_limit > 0:
            elapsed = time.time() - self._last_request_time
            wait_time = (1.0 / self.rate_limit) - elapsed
            if wait_time > 0:
                time.sleep(wait_time)
        self._last_request_time = time.time()

    def _url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    def _request(self, method: str, table: str, **kwargs) -> Any:
        self._rate_limit_wait()
        try:
            response = self._session.request(method, self._url(table), timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            error_msg = str(e)
            try:
                error_data = e.response.json()
                error_msg = error_data.get("message") or error_data.get("error") or str(error_data)
            except ValueError:
                pass
            raise StoreError(
                f"{method} {table} failed: {error_msg}",
                table=table,
                status_code=e.response.status_code,
            ) from e
        except requests.exceptions.RequestException as e:
            raise StoreError(f"{method} {table} failed: {e}", table=table) from e

        return response.json() if response.text else None

    def find(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        params = {field: _filter_value(value) for field, value in (filters or {}).items()}
        params["select"] = "*"
        if limit is not None:
            params["limit"] = str(limit)
        return self._request("GET", table, params=params) or []

    def insert(self, table: str, data: Dict[str, Any]) -> Dict[str, Any]:
        rows = self.insert_batch(table, [data])
        if not rows:
            raise StoreError(f"Insert into {table} returned no row", table=table)
        return rows[0]

    def insert_batch(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        return self._request(
            "POST",
            table,
            json=rows,
            headers={"Prefer": "return=representation"},
        ) or []

    def update_by_id(self, table: str, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        rows = self._request(
            "PATCH",
            table,
            params={"id": _filter_value(record_id)},
            json=changes,
            headers={"Prefer": "return=representation"},
        ) or []
        return rows[0] if rows else None

    def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        self._rate_limit_wait()
        params = {field: _filter_value(value) for field, value in (filters or {}).items()}
        params["select"] = "id"
        try:
            response = self._session.head(
                self._url(table),
                params=params,
                headers={"Prefer": "count=exact"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise StoreError(f"COUNT {table} failed: {e}", table=table) from e

        content_range = response.headers.get("Content-Range", "")
        total = content_range.rsplit("/", 1)[-1]
        if total.isdigit():
            return int(total)
        return len(self.find(table, filters))

    def validate_connection(self) -> bool:
        """Validate connection to the REST endpoint."""
        try:
            self._rate_limit_wait()
            response = self._session.get(f"{self.base_url}/rest/v1/", timeout=self.timeout)
            return response.status_code < 500
        except requests.exceptions.RequestException as e:
            logger.error(f"Target store connection validation failed: {e}")
            return False

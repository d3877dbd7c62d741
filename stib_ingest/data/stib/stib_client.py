import logging
import time
from typing import Iterator

import requests

from stib_ingest.data.stib.cache import TtlCache
from stib_ingest.errors import SourceError

logger = logging.getLogger(__name__)


class StibClient:
    """Client for the STIB-MIVB open data portal (Opendatasoft explore API v2.1)."""

    def __init__(self, config, session: requests.Session = None):
        self.api_key = config.api_key
        self.base_url = config.base_url.rstrip("/")
        self.page_size = config.page_size
        self.page_delay = config.page_delay
        self.timeout = config.timeout
        self.cache = TtlCache(config.cache_ttl) if config.use_cache else None
        self.session = session or requests.Session()

        if not self.api_key:
            raise ValueError("A STIB API key must be provided in the configuration.")

    def iter_records(self, dataset: str) -> Iterator[dict]:
        """
        Yield every record of a dataset, one page at a time.

        The total is taken from the first page; iteration stops once the
        offset reaches it. Pages are spaced by `page_delay` seconds.

        Raises:
            SourceError: on any transport error, HTTP error status or
                malformed page. Nothing is retried.
        """
        offset = 0
        total_count = None

        while True:
            page = self.get_page(dataset, offset)
            if total_count is None:
                total_count = page["total_count"]
                logger.info(f"Dataset {dataset} reports {total_count} records")

            for record in page["results"]:
                yield record

            offset += self.page_size
            if offset >= total_count:
                break

            time.sleep(self.page_delay)

    def get_page(self, dataset: str, offset: int) -> dict:
        endpoint = f"catalog/datasets/{dataset}/records"
        params = {"limit": self.page_size, "offset": offset}
        page = self._execute_request(endpoint, params)

        if (
            not isinstance(page, dict)
            or not isinstance(page.get("total_count"), int)
            or not isinstance(page.get("results"), list)
        ):
            raise SourceError(f"malformed page for {dataset} at offset {offset}")

        logger.debug(f"Fetched {dataset} page offset={offset} ({len(page['results'])} records)")
        return page

    def _build_url(self, endpoint: str, params: dict) -> str:
        url = f"{self.base_url}/{endpoint}"
        query_string = "&".join(f"{key}={value}" for key, value in params.items())
        return f"{url}?{query_string}"

    def _execute_request(self, endpoint: str, params: dict) -> dict:
        url = self._build_url(endpoint, params)

        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                return cached

        try:
            response = self.session.get(
                url,
                headers={"Authorization": f"Apikey {self.api_key}"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.exceptions.HTTPError as e:
            raise SourceError(
                f"HTTP request to {endpoint} failed with status code {e.response.status_code}"
            ) from e
        except requests.RequestException as e:
            raise SourceError(f"request to {endpoint} failed: {e}") from e
        except ValueError as e:
            raise SourceError(f"response from {endpoint} is not valid JSON: {e}") from e

        if self.cache is not None:
            self.cache.set(url, payload)
        return payload

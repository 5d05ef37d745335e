"""
ShipStation v2 API client for the paginated inventory collections.
GET {base}/v2/{collection}?page=N&page_size=K, header API-Key: <key>.
Response envelope: {"<collection>": [...], "page": N, "pages": M, "links": {"next": {"href": ...}}}.
The counters and links are optional; when absent the fetcher falls back to the page-size heuristic.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from app.config import settings
from app.services.exceptions import ProviderHTTPError
from app.services.http_client import get_once, log_response

logger = logging.getLogger(__name__)

PROVIDER_NAME = "ShipStation"

# User-facing hints for statuses the provider does not explain itself
STATUS_HINTS = {
    401: "Invalid API key or authentication failed.",
    403: "API key does not have permission to access this resource.",
    404: "API endpoint not found. This may indicate an API version issue.",
    429: "Rate limit exceeded. Please try again later.",
}


def describe_status(status: int) -> str:
    if status in STATUS_HINTS:
        return STATUS_HINTS[status]
    if status >= 500:
        return "Carrier API is unavailable. Please try again later."
    return f"Carrier API request failed with status {status}."


@dataclass
class Page:
    records: list
    # True/False when the provider signals continuation explicitly, None otherwise
    has_more: Optional[bool] = None


def _provider_message(response: httpx.Response) -> Optional[str]:
    try:
        data = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    if data.get("message"):
        return str(data["message"])
    errors = data.get("errors")
    if isinstance(errors, list) and errors and isinstance(errors[0], dict) and errors[0].get("message"):
        return str(errors[0]["message"])
    return None


def _continuation(data: dict) -> Optional[bool]:
    links = data.get("links")
    if isinstance(links, dict) and "next" in links:
        nxt = links.get("next")
        return bool(nxt.get("href")) if isinstance(nxt, dict) else bool(nxt)
    page, pages = data.get("page"), data.get("pages")
    if isinstance(page, int) and isinstance(pages, int):
        return page < pages
    return None


class ShipStationClient:
    def __init__(
        self,
        api_key: str,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = (base_url or settings.SHIPSTATION_API_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.SYNC_PAGE_TIMEOUT
        self.client = client

    def _headers(self) -> dict:
        return {
            "API-Key": self.api_key,
            "Content-Type": "application/json",
        }

    async def fetch_page(self, collection: str, page: int, page_size: int) -> Page:
        """Fetch one page of a collection. Raises ProviderHTTPError on any failure."""
        url = f"{self.base_url}/v2/{collection}"
        try:
            response = await get_once(
                url,
                params={"page": page, "page_size": page_size},
                headers=self._headers(),
                timeout=self.timeout,
                client=self.client,
            )
        except httpx.TimeoutException as e:
            logger.warning("%s API GET %s page %s timed out: %s", PROVIDER_NAME, url, page, e)
            raise ProviderHTTPError(None, f"Request timed out after {self.timeout}s")
        except httpx.TransportError as e:
            logger.warning("%s API GET %s page %s failed: %s", PROVIDER_NAME, url, page, e)
            raise ProviderHTTPError(None, f"Network error: {e}")

        log_response(PROVIDER_NAME, "GET", url, response.status_code, response.text[:300] if response.status_code >= 400 else "")
        if not response.is_success:
            message = _provider_message(response) or describe_status(response.status_code)
            raise ProviderHTTPError(response.status_code, message)

        try:
            data = response.json()
        except ValueError:
            raise ProviderHTTPError(response.status_code, "Carrier returned a non-JSON body")
        if not isinstance(data, dict):
            raise ProviderHTTPError(response.status_code, "Carrier returned an unexpected body")
        records = data.get(collection)
        if records is None:
            records = []
        if not isinstance(records, list):
            raise ProviderHTTPError(response.status_code, f"Carrier field '{collection}' is not a list")
        return Page(records=records, has_more=_continuation(data))

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


def build_client(api_key: str) -> ShipStationClient:
    """Default client factory used by the sync engine: one pooled httpx client per operation."""
    return ShipStationClient(
        api_key=api_key,
        client=httpx.AsyncClient(timeout=settings.SYNC_PAGE_TIMEOUT),
    )

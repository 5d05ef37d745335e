"""
Drive page-by-page requests against a carrier collection until the last page.

Termination: when the provider signals continuation explicitly (Page.has_more is
not None) that signal wins. Otherwise a batch shorter than page_size is taken as
the last page. This is a heuristic: a provider whose true last page is exactly
page_size long costs one extra request, which returns an empty batch and stops.
An empty batch always stops, and max_pages is a hard ceiling.
"""
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from app.services.exceptions import ProviderHTTPError

logger = logging.getLogger(__name__)

# (page_number, page_size) -> Page with .records and .has_more
FetchPage = Callable[[int, int], Awaitable[Any]]


async def iter_pages(fetch_page: FetchPage, page_size: int, max_pages: int = 1000) -> AsyncIterator[list]:
    """Yield record batches lazily, starting at page 1. Not restartable."""
    if page_size <= 0:
        raise ValueError("page_size must be positive")
    page_number = 1
    while True:
        page = await fetch_page(page_number, page_size)
        batch = page.records or []
        if batch:
            yield batch
        if not batch:
            return
        has_more = page.has_more if page.has_more is not None else len(batch) >= page_size
        if not has_more:
            return
        if page_number >= max_pages:
            logger.warning("Stopping pagination at max_pages=%s; more pages may exist", max_pages)
            return
        page_number += 1


async def fetch_all(fetch_page: FetchPage, page_size: int, max_pages: int = 1000) -> list:
    """
    Accumulate every batch. On a failing page, re-raise ProviderHTTPError with
    partial_records set to everything fetched before it.
    """
    records: list = []
    pages = 0
    try:
        async for batch in iter_pages(fetch_page, page_size, max_pages):
            pages += 1
            records.extend(batch)
            logger.debug("Fetched page %s: %s record(s) (total so far: %s)", pages, len(batch), len(records))
    except ProviderHTTPError as e:
        e.partial_records = records
        logger.warning("Fetch aborted after %s page(s), %s record(s): %s", pages, len(records), e)
        raise
    logger.info("Fetched %s record(s) across %s page(s)", len(records), pages)
    return records

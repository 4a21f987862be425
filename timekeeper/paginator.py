"""Fetch-all over page-numbered endpoints whose pagination metadata is unreliable.

Termination is decided per page, most reliable signal first:

  1. ``data`` missing or not a list  -> on the first page, a single-object
                                        response returned as-is; on a later
                                        page, an empty last page
  2. fewer items than requested      -> last page
  3. explicit pagination metadata    -> honoured when it says "no more"
  4. otherwise                       -> assume a full page means more data
  5. ``max_pages`` pages fetched     -> stop, result marked incomplete

Rule 4 costs one extra (empty) request when the collection size is an
exact multiple of the page size and the upstream sends no metadata.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Mapping, Optional

from timekeeper.executor import RequestExecutor
from timekeeper.models import CollectionResult, PageRequest, PageResult, TerminationReason

logger = logging.getLogger("timekeeper.paginator")

DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_PAGES = 100


def _metadata_says_exhausted(body: Mapping[str, Any], page: int) -> bool:
    """True when the body's pagination hints declare this the last page."""
    sources = []
    if isinstance(body.get("pagination"), Mapping):
        sources.append(body["pagination"])
    sources.append(body)

    for meta in sources:
        for key in ("hasMore", "has_more"):
            if key in meta and isinstance(meta[key], bool):
                return not meta[key]
        if "next_page" in meta:
            return meta["next_page"] in (None, "", False)
        total_pages = meta.get("total_pages")
        if isinstance(total_pages, (int, str)) and str(total_pages).isdigit():
            return page >= int(total_pages)
    return False


class PaginatedFetcher:
    def __init__(
        self,
        executor: RequestExecutor,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        page_delay: float = 0.0,
    ) -> None:
        self._executor = executor
        self.page_size = page_size
        self.max_pages = max_pages
        self.page_delay = page_delay

    def fetch_page(self, request: PageRequest, page: int) -> tuple[PageResult, Any]:
        """Fetch one page and decide whether it is the last. Returns (result, raw body)."""
        body = self._executor.execute(request.endpoint, params=request.params_for(page))

        items = body.get("data") if isinstance(body, Mapping) else None
        if not isinstance(items, list):
            return PageResult(page, [], True, TerminationReason.SINGLE_OBJECT_RESPONSE), body

        if len(items) < request.page_size:
            return PageResult(page, items, True, TerminationReason.SHORT_PAGE), body
        if _metadata_says_exhausted(body, page):
            return PageResult(page, items, True, TerminationReason.PAGINATION_META_EXHAUSTED), body
        return PageResult(page, items, False), body

    def fetch_all(
        self, endpoint: str, params: Optional[Mapping[str, Any]] = None
    ) -> CollectionResult:
        """Concatenate every page of ``endpoint`` in page order."""
        request = PageRequest(
            endpoint=endpoint,
            params={k: str(v) for k, v in (params or {}).items()},
            page_size=self.page_size,
        )
        items: list[Any] = []
        started = time.monotonic()

        for fetched, page in enumerate(
            range(request.first_page, request.first_page + self.max_pages), start=1
        ):
            if fetched > 1 and self.page_delay:
                time.sleep(self.page_delay)

            result, body = self.fetch_page(request, page)

            if result.termination_reason is TerminationReason.SINGLE_OBJECT_RESPONSE:
                if fetched == 1:
                    logger.debug("Single-object response", extra={"endpoint": endpoint})
                    return CollectionResult(
                        items=[],
                        fetched_completely=True,
                        termination_reason=result.termination_reason,
                        pages_fetched=fetched,
                        payload=body,
                    )
                # a later page without a list carries no items
                result = PageResult(page, [], True, TerminationReason.SHORT_PAGE)

            items.extend(result.items)
            logger.debug(
                "Fetched page %d (%d items)",
                page,
                len(result.items),
                extra={"endpoint": endpoint, "page": page, "items": len(result.items)},
            )
            if result.is_terminal:
                logger.info(
                    "Fetched %d items in %d pages",
                    len(items),
                    fetched,
                    extra={
                        "endpoint": endpoint,
                        "items": len(items),
                        "duration_s": round(time.monotonic() - started, 3),
                    },
                )
                return CollectionResult(
                    items=items,
                    fetched_completely=True,
                    termination_reason=result.termination_reason,
                    pages_fetched=fetched,
                )

        logger.warning(
            "Safety cap of %d pages reached, returning partial data",
            self.max_pages,
            extra={"endpoint": endpoint, "items": len(items)},
        )
        return CollectionResult(
            items=items,
            fetched_completely=False,
            termination_reason=TerminationReason.SAFETY_CAP_REACHED,
            pages_fetched=self.max_pages,
        )

"""
Page-by-page collection fetching with progress reporting.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

PAGE_SIZE = 100

ProgressCallback = Callable[[int], None]


@dataclass
class Page:
    """One page of a platform list endpoint."""
    items: List[Any] = field(default_factory=list)
    total: Optional[int] = None  # declared collection size, when the platform reports one
    has_more: bool = True


def progress_percent(fetched: int, declared_total: int) -> int:
    return min(100, round(fetched / declared_total * 100))


def fetch_all_pages(
    fetch_page: Callable[[int, int], Page],
    on_progress: Optional[ProgressCallback] = None,
    page_size: int = PAGE_SIZE,
) -> List[Any]:
    """
    Fetch a whole collection starting at page 1.

    Stops on the first empty page or when a page reports no further pages.
    The declared total is read once from the first page; when it is missing
    no progress is reported.

    Args:
        fetch_page: Callable taking (page_number, page_size) and returning a Page
        on_progress: Optional callback receiving 0-100 percentages
        page_size: Items requested per page

    Returns:
        All items in the order the platform returned them
    """
    items: List[Any] = []
    declared_total = 0
    page_number = 1

    while True:
        page = fetch_page(page_number, page_size)
        if page_number == 1:
            declared_total = page.total or 0

        if not page.items:
            break

        items.extend(page.items)
        logger.debug(f"Fetched page {page_number} ({len(items)} items so far)")

        if on_progress and declared_total > 0:
            on_progress(progress_percent(len(items), declared_total))

        if not page.has_more:
            break
        page_number += 1

    return items

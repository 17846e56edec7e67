"""Page/offset arithmetic shared by the list operations."""

from typing import Optional, Tuple

from config import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(value, hi))


def page_bounds(
    page: Optional[int] = 1,
    page_size: Optional[int] = None,
    *,
    max_page_size: int = MAX_PAGE_SIZE,
) -> Tuple[int, int, int]:
    """Normalize a 1-based page request.

    Returns:
        Tuple of (page, page_size, offset).
    """
    page_size = _clamp(int(page_size or DEFAULT_PAGE_SIZE), 1, max_page_size)
    page = max(1, int(page or 1))
    return page, page_size, (page - 1) * page_size

from typing import Any, Tuple

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 50


def normalize_paging(page: Any, page_size: Any) -> Tuple[int, int, int]:
    """Clamp query-string paging to ``(page, page_size, offset)``."""
    p = page if isinstance(page, int) and page > 0 else 1
    ps = page_size if isinstance(page_size, int) and page_size > 0 else DEFAULT_PAGE_SIZE
    ps = min(ps, MAX_PAGE_SIZE)
    return p, ps, (p - 1) * ps

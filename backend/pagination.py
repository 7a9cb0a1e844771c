# pagination.py — Page/per_page handling shared by all collection endpoints
import math
import os
from typing import Tuple

from fastapi import Response

MAX_ITEMS_PER_PAGE = int(os.getenv("MAX_ITEMS_PER_PAGE", "50"))


def get_limit_and_offset(page: int = 1, per_page: int = 0) -> Tuple[int, int]:
    """Translate a 1-based page into (limit, offset)."""
    if per_page <= 0 or per_page > MAX_ITEMS_PER_PAGE:
        per_page = MAX_ITEMS_PER_PAGE
    if page < 1:
        page = 1
    return per_page, (page - 1) * per_page


def set_pagination_headers(response: Response, total: int, result_count: int, per_page: int = 0) -> None:
    limit, _ = get_limit_and_offset(1, per_page)
    response.headers["x-pagination-total-pages"] = str(math.ceil(total / limit) if total else 0)
    response.headers["x-pagination-result-count"] = str(result_count)

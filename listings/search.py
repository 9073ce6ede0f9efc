"""Pagination helpers shared by listing and offer searches."""
from typing import Any, Dict, Tuple

from errors import ValidationError

def page_bounds(limit: int, offset: int, max_page_size: int) -> Tuple[int, int]:
    """Clamp ``limit`` to ``[1, max_page_size]`` and check ``offset``.

    Raises:
        ValidationError: If offset is negative
    """
    if offset < 0:
        raise ValidationError(
            "Invalid pagination",
            details=[{'field': 'offset', 'message': 'Offset must not be negative'}]
        )
    return max(1, min(limit, max_page_size)), offset

def pagination(total: int, limit: int, offset: int) -> Dict[str, Any]:
    """Pagination block returned alongside search results."""
    return {
        'total': total,
        'limit': limit,
        'offset': offset,
        'has_more': offset + limit < total
    }

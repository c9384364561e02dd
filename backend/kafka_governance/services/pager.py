from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

PAGE_SIZE = 10


@dataclass(frozen=True)
class PageContext:
    page_no: int
    total_pages: int
    all_page_nos: list[int]


def page_context(total_items: int, page_no: int, page_size: int = PAGE_SIZE) -> PageContext:
    """Clamp the requested page into [1, total_pages]."""
    total_pages = max(1, math.ceil(total_items / page_size))
    current = min(max(1, page_no), total_pages)
    return PageContext(
        page_no=current,
        total_pages=total_pages,
        all_page_nos=list(range(1, total_pages + 1)),
    )


def get_items_list(
    page_no: int,
    items: Sequence[T],
    mapper: Callable[[PageContext, T], R],
    page_size: int = PAGE_SIZE,
) -> list[R]:
    if not items:
        return []
    ctx = page_context(len(items), page_no, page_size)
    start = (ctx.page_no - 1) * page_size
    return [mapper(ctx, item) for item in items[start:start + page_size]]

"""Page/size pagination for list endpoints (notification audit)."""

import math
from typing import Generic, Iterable, Optional, Sequence, TypeVar

from fastapi import Query
from pydantic import BaseModel
from sqlalchemy import Select, func
from sqlalchemy.ext.asyncio import AsyncSession

from timeoff.common.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE

T = TypeVar("T")


class PaginationParams:
    """Query parameters ``page``, ``page_size`` and ``sort``.

    ``sort`` names a column, ``-`` prefixed for descending order.
    """

    def __init__(
        self,
        page: int = Query(default=1, ge=1),
        page_size: int = Query(default=DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
        sort: Optional[str] = Query(default=None, examples=["-created_at"]),
    ) -> None:
        self.page = page
        self.page_size = page_size
        self.sort = sort

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class PaginationMeta(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, params: PaginationParams, total: int) -> "PaginationMeta":
        pages = math.ceil(total / params.page_size)
        return cls(
            page=params.page,
            page_size=params.page_size,
            total=total,
            total_pages=pages,
            has_next=params.page < pages,
            has_prev=params.page > 1,
        )


class PaginatedResponse(BaseModel, Generic[T]):
    """``{"data": [...], "meta": {...}}``"""

    data: Sequence[T]
    meta: PaginationMeta


def _order_column(model, params: PaginationParams, sortable: Iterable[str], default: str):
    wanted = params.sort or default
    if wanted.lstrip("-") not in sortable:
        wanted = default
    column = getattr(model, wanted.lstrip("-"))
    return column.desc() if wanted.startswith("-") else column.asc()


async def paginate(
    db: AsyncSession,
    query: Select,
    params: PaginationParams,
    *,
    model,
    sortable: Iterable[str] = ("created_at",),
    default_sort: str = "-created_at",
) -> tuple[list, PaginationMeta]:
    """Run one page of *query*; return its rows and the page metadata.

    Only columns listed in *sortable* may be used for ordering; anything
    else falls back to *default_sort*. The primary key breaks ties so that
    pages never overlap.
    """
    count_q = query.with_only_columns(func.count(), maintain_column_froms=True)
    total: int = (await db.execute(count_q.order_by(None))).scalar_one()

    ordered = query.order_by(
        _order_column(model, params, sortable, default_sort), model.id,
    )
    result = await db.execute(ordered.offset(params.offset).limit(params.page_size))
    return list(result.scalars().all()), PaginationMeta.build(params, total)

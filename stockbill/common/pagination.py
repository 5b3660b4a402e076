"""
Paginación por página para los listados.
"""
import math
from typing import Generic, List, TypeVar

from fastapi import Query
from pydantic import BaseModel

from stockbill.core.config import settings

T = TypeVar("T")


class PageParams(BaseModel):
    page: int = 1
    limit: int = settings.DEFAULT_PAGE_SIZE

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def page_params(
    page: int = Query(1, ge=1, description="Número de página (desde 1)"),
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE, description="Registros por página"),
) -> PageParams:
    return PageParams(page=page, limit=limit)


class PageMeta(BaseModel):
    total: int
    page: int
    limit: int
    totalPages: int


class Page(BaseModel, Generic[T]):
    data: List[T]
    meta: PageMeta


def build_meta(total: int, params: PageParams) -> PageMeta:
    total_pages = math.ceil(total / params.limit) if total > 0 else 0
    return PageMeta(total=total, page=params.page, limit=params.limit, totalPages=total_pages)


def paginate(query, params: PageParams):
    """Devuelve (items, meta) aplicando offset/limit a una query ORM ya ordenada."""
    total = query.order_by(None).count()
    items = query.offset(params.offset).limit(params.limit).all()
    return items, build_meta(total, params)

from fastapi import APIRouter, Depends, status, Query
from typing import Optional
from uuid import UUID
from datetime import datetime

from stockbill.dependencies.dbDependecies import db_dependency
from stockbill.common.pagination import Page, PageParams, page_params
from stockbill.modules.auth.dependencies import AuthDependencies
from stockbill.modules.auth.schemas import AuthContext
from stockbill.modules.inventory.models import MovementType
from stockbill.modules.inventory.service import StockMovementService
from stockbill.modules.inventory.schemas import StockAdjustmentCreate, StockMovementOut, MovementFilters

movements_router = APIRouter(prefix="/stock-movements", tags=["Stock Movements"])


@movements_router.get("", response_model=Page[StockMovementOut])
def list_movements(
    db: db_dependency,
    product_id: Optional[UUID] = Query(None, alias="productId"),
    movement_type: Optional[MovementType] = Query(None, alias="type"),
    invoice_id: Optional[UUID] = Query(None, alias="invoiceId"),
    from_date: Optional[datetime] = Query(None, alias="fromDate"),
    to_date: Optional[datetime] = Query(None, alias="toDate"),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Listar movimientos de stock del tenant, más recientes primero."""
    filters = MovementFilters(
        product_id=product_id,
        type=movement_type,
        invoice_id=invoice_id,
        from_date=from_date,
        to_date=to_date
    )
    movements, meta = StockMovementService(db).get_movements(auth_context.tenant_id, filters, params)
    return {"data": movements, "meta": meta}


@movements_router.get("/{movement_id}", response_model=StockMovementOut)
def get_movement(
    movement_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    return StockMovementService(db).get_movement(auth_context.tenant_id, movement_id)


@movements_router.post("", response_model=StockMovementOut, status_code=status.HTTP_201_CREATED)
def create_adjustment(
    data: StockAdjustmentCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_manager())
):
    """
    Registrar un ajuste manual de stock (tipo ADJUSTMENT).

    Un ajuste que dejaría el stock en negativo se rechaza.
    """
    return StockMovementService(db).create_adjustment(auth_context.tenant_id, data, auth_context.user_id)


product_movements_router = APIRouter(prefix="/products", tags=["Stock Movements"])


@product_movements_router.get("/{product_id}/movements", response_model=Page[StockMovementOut])
def list_product_movements(
    product_id: UUID,
    db: db_dependency,
    movement_type: Optional[MovementType] = Query(None, alias="type"),
    from_date: Optional[datetime] = Query(None, alias="fromDate"),
    to_date: Optional[datetime] = Query(None, alias="toDate"),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Historial de movimientos de un producto."""
    filters = MovementFilters(type=movement_type, from_date=from_date, to_date=to_date)
    movements, meta = StockMovementService(db).get_product_movements(
        auth_context.tenant_id, product_id, filters, params
    )
    return {"data": movements, "meta": meta}

from fastapi import APIRouter, Depends, Query, Response, status
from typing import Optional
from uuid import UUID
from datetime import date

from stockbill.dependencies.dbDependecies import db_dependency
from stockbill.common.pagination import Page, PageParams, page_params
from stockbill.modules.auth.dependencies import AuthDependencies
from stockbill.modules.auth.schemas import AuthContext
from stockbill.modules.payments.models import PaymentMethod
from stockbill.modules.payments.service import PaymentService
from stockbill.modules.payments.schemas import PaymentCreate, PaymentDetail, PaymentFilters

payments_router = APIRouter(prefix="/payments", tags=["Payments"])


@payments_router.get("", response_model=Page[PaymentDetail])
def list_payments(
    db: db_dependency,
    invoice_id: Optional[UUID] = Query(None, alias="invoiceId", description="Filtrar por factura"),
    method: Optional[PaymentMethod] = Query(None, description="Método de pago"),
    from_date: Optional[date] = Query(None, alias="fromDate", description="Fecha inicial (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, alias="toDate", description="Fecha final (YYYY-MM-DD)"),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    filters = PaymentFilters(invoice_id=invoice_id, method=method, from_date=from_date, to_date=to_date)
    payments, meta = PaymentService(db).get_payments(auth_context.tenant_id, filters, params)
    return {"data": payments, "meta": meta}


@payments_router.get("/{payment_id}", response_model=PaymentDetail)
def get_payment(
    payment_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Pago con número de factura y resumen del cliente"""
    return PaymentService(db).get_payment(auth_context.tenant_id, payment_id)


@payments_router.post("", response_model=PaymentDetail, status_code=status.HTTP_201_CREATED)
def record_payment(
    payment_data: PaymentCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_manager())
):
    """
    Registrar un pago

    El monto no puede superar el saldo pendiente de la factura. El estado
    de pago de la factura se recalcula automáticamente.
    """
    return PaymentService(db).record(auth_context.tenant_id, payment_data, auth_context.user_id)


@payments_router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(
    payment_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """Eliminar un pago y recalcular el estado de pago de la factura"""
    PaymentService(db).delete(auth_context.tenant_id, payment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)

from fastapi import APIRouter, Body, Depends, Query, Response, status
from typing import List, Optional
from uuid import UUID
from datetime import date

from stockbill.dependencies.dbDependecies import db_dependency
from stockbill.common.pagination import Page, PageParams, page_params
from stockbill.modules.auth.dependencies import AuthDependencies
from stockbill.modules.auth.schemas import AuthContext
from stockbill.modules.invoices.models import InvoiceStatus, PaymentStatus
from stockbill.modules.invoices.service import InvoiceService
from stockbill.modules.invoices.schemas import (
    InvoiceCreate, InvoiceOut, InvoiceDetail, InvoiceUpdate,
    InvoiceCancelRequest, InvoiceFilters, NextInvoiceNumber
)
from stockbill.modules.payments.schemas import PaymentOut

invoices_router = APIRouter(prefix="/invoices", tags=["Invoices"])


@invoices_router.get("", response_model=Page[InvoiceOut])
def list_invoices(
    db: db_dependency,
    invoice_status: Optional[InvoiceStatus] = Query(None, alias="status", description="Estado de la factura"),
    payment_status: Optional[PaymentStatus] = Query(None, alias="paymentStatus", description="Estado de pago"),
    customer_id: Optional[UUID] = Query(None, alias="customerId", description="Filtrar por cliente"),
    from_date: Optional[date] = Query(None, alias="fromDate", description="Fecha inicial (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, alias="toDate", description="Fecha final (YYYY-MM-DD)"),
    params: PageParams = Depends(page_params),
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Listar facturas con filtros

    Todos los roles pueden ver las facturas. Más recientes primero.
    """
    filters = InvoiceFilters(
        status=invoice_status,
        payment_status=payment_status,
        customer_id=customer_id,
        from_date=from_date,
        to_date=to_date
    )
    invoices, meta = InvoiceService(db).get_invoices(auth_context.tenant_id, filters, params)
    return {"data": invoices, "meta": meta}


@invoices_router.get("/next-number", response_model=NextInvoiceNumber)
def get_next_invoice_number(
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Número que recibirá la próxima factura (no lo reserva)."""
    return {"number": InvoiceService(db).preview_next_number(auth_context.tenant_id)}


@invoices_router.get("/{invoice_id}", response_model=InvoiceDetail)
def get_invoice(
    invoice_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Obtener factura con items, cliente y usuario"""
    return InvoiceService(db).get_invoice(auth_context.tenant_id, invoice_id)


@invoices_router.post("", response_model=InvoiceDetail, status_code=status.HTTP_201_CREATED)
def create_invoice(
    invoice_data: InvoiceCreate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_manager())
):
    """
    Crear una nueva factura de venta

    La factura queda en borrador y el stock de los productos se descuenta
    de inmediato. Falla si algún producto no tiene stock suficiente o si
    la empresa alcanzó su límite mensual de facturas.
    """
    return InvoiceService(db).create(auth_context.tenant_id, invoice_data, auth_context.user_id)


@invoices_router.patch("/{invoice_id}", response_model=InvoiceDetail)
def update_invoice(
    invoice_id: UUID,
    invoice_data: InvoiceUpdate,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_manager())
):
    """Actualizar notas y fecha de vencimiento (solo borradores)"""
    return InvoiceService(db).update(auth_context.tenant_id, invoice_id, invoice_data)


@invoices_router.delete("/{invoice_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_invoice(
    invoice_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """Eliminar una factura en borrador restituyendo el stock"""
    InvoiceService(db).delete(auth_context.tenant_id, invoice_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@invoices_router.patch("/{invoice_id}/send", response_model=InvoiceDetail)
def send_invoice(
    invoice_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_admin_or_manager())
):
    return InvoiceService(db).send(auth_context.tenant_id, invoice_id)


@invoices_router.patch("/{invoice_id}/cancel", response_model=InvoiceDetail)
def cancel_invoice(
    invoice_id: UUID,
    db: db_dependency,
    cancel_data: Optional[InvoiceCancelRequest] = Body(None),
    auth_context: AuthContext = Depends(AuthDependencies.require_admin())
):
    """
    Cancelar factura

    Restituye el stock de cada producto con un movimiento RETURN.
    La factura se conserva con estado CANCELLED.
    """
    reason = cancel_data.reason if cancel_data else None
    return InvoiceService(db).cancel(auth_context.tenant_id, invoice_id, auth_context.user_id, reason)


@invoices_router.get("/{invoice_id}/payments", response_model=List[PaymentOut])
def get_invoice_payments(
    invoice_id: UUID,
    db: db_dependency,
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """Pagos registrados sobre la factura"""
    return InvoiceService(db).get_invoice_payments(auth_context.tenant_id, invoice_id)

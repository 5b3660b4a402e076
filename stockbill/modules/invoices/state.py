"""
Máquinas de estado de la factura.

`status` (ciclo de vida) y `payment_status` (conciliación de pagos) se
guardan y validan por separado. Toda validación de transiciones pasa por
`ensure_action_allowed`; el estado de pago solo se deriva con
`resolve_payment_status`.
"""
from decimal import Decimal
import enum

from stockbill.core.exceptions import InvalidTransitionError
from stockbill.modules.invoices.models import Invoice, InvoiceStatus, PaymentStatus


class InvoiceAction(str, enum.Enum):
    UPDATE = "UPDATE"
    SEND = "SEND"
    DELETE = "DELETE"
    CANCEL = "CANCEL"
    RECORD_PAYMENT = "RECORD_PAYMENT"


TERMINAL_STATUSES = frozenset({InvoiceStatus.CANCELLED, InvoiceStatus.VOID})

ALLOWED_FROM = {
    InvoiceAction.UPDATE: frozenset({InvoiceStatus.DRAFT}),
    InvoiceAction.SEND: frozenset({InvoiceStatus.DRAFT}),
    InvoiceAction.DELETE: frozenset({InvoiceStatus.DRAFT}),
    InvoiceAction.CANCEL: frozenset(InvoiceStatus) - TERMINAL_STATUSES,
    InvoiceAction.RECORD_PAYMENT: frozenset(InvoiceStatus) - TERMINAL_STATUSES,
}

# Estado resultante de las acciones que cambian `status`
TARGET_STATUS = {
    InvoiceAction.SEND: InvoiceStatus.SENT,
    InvoiceAction.CANCEL: InvoiceStatus.CANCELLED,
}

REJECTION_MESSAGES = {
    InvoiceAction.UPDATE: "Solo se pueden modificar facturas en borrador",
    InvoiceAction.SEND: "Solo se pueden enviar facturas en borrador",
    InvoiceAction.DELETE: "Solo se pueden eliminar facturas en borrador",
    InvoiceAction.CANCEL: "La factura ya está cancelada o anulada",
    InvoiceAction.RECORD_PAYMENT: "No se pueden registrar pagos en facturas canceladas o anuladas",
}


def can_apply(status: InvoiceStatus, action: InvoiceAction) -> bool:
    return status in ALLOWED_FROM[action]


def ensure_action_allowed(invoice: Invoice, action: InvoiceAction) -> None:
    if not can_apply(invoice.status, action):
        raise InvalidTransitionError(
            REJECTION_MESSAGES[action],
            invoice_id=invoice.id,
            invoice_number=invoice.number,
            current_status=invoice.status.value,
            action=action.value
        )


def resolve_payment_status(paid: Decimal, total: Decimal) -> PaymentStatus:
    if paid <= 0:
        return PaymentStatus.UNPAID
    if paid >= total:
        return PaymentStatus.PAID
    return PaymentStatus.PARTIALLY_PAID

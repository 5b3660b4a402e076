from decimal import Decimal
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from stockbill.core.exceptions import NotFoundError, BusinessRuleViolation, PaymentExceedsBalanceError
from stockbill.database.database import tenant_query, run_in_transaction
from stockbill.common.pagination import PageParams, paginate
from stockbill.modules.invoices.models import Invoice
from stockbill.modules.invoices.state import InvoiceAction, ensure_action_allowed, resolve_payment_status
from stockbill.modules.payments.models import Payment
from stockbill.modules.payments.schemas import PaymentCreate, PaymentFilters

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Conciliación de pagos contra facturas.

    `payment_status` de la factura siempre se recalcula desde la suma de
    sus pagos en la misma transacción que inserta o elimina el pago.
    """

    def __init__(self, db: Session):
        self.db = db

    def _base_query(self, tenant_id: UUID):
        return tenant_query(self.db, Payment, tenant_id).options(
            selectinload(Payment.invoice).selectinload(Invoice.customer)
        )

    def _lock_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        invoice = tenant_query(self.db, Invoice, tenant_id).filter(
            Invoice.id == invoice_id
        ).populate_existing().with_for_update().first()

        if not invoice:
            logger.warning(f"Invoice not found for payment: {invoice_id}")
            raise NotFoundError("Factura no encontrada", invoice_id=invoice_id)
        return invoice

    def paid_total(self, tenant_id: UUID, invoice_id: UUID) -> Decimal:
        value = tenant_query(self.db, Payment, tenant_id).filter(
            Payment.invoice_id == invoice_id
        ).with_entities(func.coalesce(func.sum(Payment.amount), 0)).scalar()
        return Decimal(str(value or 0))

    def recompute_payment_status(self, tenant_id: UUID, invoice: Invoice) -> None:
        self.db.flush()
        paid = self.paid_total(tenant_id, invoice.id)
        old_status = invoice.payment_status
        invoice.payment_status = resolve_payment_status(paid, Decimal(invoice.total))

        if invoice.payment_status != old_status:
            logger.info(
                f"Invoice {invoice.number} payment status changed from "
                f"{old_status.value} to {invoice.payment_status.value} (paid {paid} of {invoice.total})"
            )

    def get_payments(self, tenant_id: UUID, filters: PaymentFilters, params: PageParams):
        logger.debug(f"Listing payments for tenant {tenant_id}, page {params.page}, limit {params.limit}")
        query = self._base_query(tenant_id)

        if filters.invoice_id:
            query = query.filter(Payment.invoice_id == filters.invoice_id)
        if filters.method:
            query = query.filter(Payment.method == filters.method)
        if filters.from_date:
            query = query.filter(Payment.payment_date >= filters.from_date)
        if filters.to_date:
            query = query.filter(Payment.payment_date <= filters.to_date)

        query = query.order_by(Payment.payment_date.desc(), Payment.created_at.desc())
        return paginate(query, params)

    def get_payment(self, tenant_id: UUID, payment_id: UUID) -> Payment:
        payment = self._base_query(tenant_id).filter(Payment.id == payment_id).first()
        if not payment:
            logger.warning(f"Payment not found: {payment_id}")
            raise NotFoundError("Pago no encontrado", payment_id=payment_id)
        return payment

    def record(self, tenant_id: UUID, data: PaymentCreate, user_id: UUID) -> Payment:
        """
        Registrar un pago sobre una factura.

        Se rechaza si el monto no es positivo, si la factura está cancelada
        o anulada, o si el monto supera el saldo pendiente.
        """
        logger.debug(f"Recording payment of {data.amount} for invoice {data.invoice_id} in tenant {tenant_id}")

        if data.amount <= 0:
            raise BusinessRuleViolation(
                "El monto del pago debe ser mayor a 0",
                invoice_id=data.invoice_id,
                amount=data.amount
            )

        def operation() -> Payment:
            invoice = self._lock_invoice(tenant_id, data.invoice_id)
            ensure_action_allowed(invoice, InvoiceAction.RECORD_PAYMENT)

            paid = self.paid_total(tenant_id, invoice.id)
            balance = Decimal(invoice.total) - paid
            if data.amount > balance:
                logger.warning(f"Payment of {data.amount} exceeds balance {balance} for invoice {invoice.number}")
                raise PaymentExceedsBalanceError(
                    f"El pago de ${data.amount} excede el saldo pendiente de ${balance}",
                    invoice_id=invoice.id,
                    amount=data.amount,
                    balance=balance,
                    total=invoice.total,
                    paid=paid
                )

            payment = Payment(
                tenant_id=tenant_id,
                invoice_id=invoice.id,
                user_id=user_id,
                amount=data.amount,
                method=data.method,
                reference=data.reference,
                notes=data.notes
            )
            if data.payment_date:
                payment.payment_date = data.payment_date

            self.db.add(payment)
            self.recompute_payment_status(tenant_id, invoice)
            return payment

        payment = run_in_transaction(self.db, operation)
        logger.info(f"Payment recorded: {payment.id} amount {data.amount} for invoice {data.invoice_id}")
        return self.get_payment(tenant_id, payment.id)

    def delete(self, tenant_id: UUID, payment_id: UUID) -> None:
        """Eliminar un pago y recalcular el estado de pago de su factura."""
        logger.debug(f"Deleting payment {payment_id} in tenant {tenant_id}")

        def operation() -> UUID:
            payment = tenant_query(self.db, Payment, tenant_id).filter(Payment.id == payment_id).first()
            if not payment:
                logger.warning(f"Payment not found: {payment_id}")
                raise NotFoundError("Pago no encontrado", payment_id=payment_id)

            invoice = self._lock_invoice(tenant_id, payment.invoice_id)
            self.db.delete(payment)
            self.recompute_payment_status(tenant_id, invoice)
            return invoice.id

        invoice_id = run_in_transaction(self.db, operation)
        logger.info(f"Payment deleted: {payment_id} from invoice {invoice_id}")

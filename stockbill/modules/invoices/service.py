from collections import defaultdict
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session, selectinload

from stockbill.core.exceptions import NotFoundError, BusinessRuleViolation, InsufficientStockError
from stockbill.database.database import tenant_query, run_in_transaction
from stockbill.common.pagination import PageParams, paginate
from stockbill.modules.company.tenant_context import TenantContext
from stockbill.modules.customers.models import Customer
from stockbill.modules.products.models import Product
from stockbill.modules.inventory.models import StockMovement, MovementType
from stockbill.modules.inventory.service import StockLedger
from stockbill.modules.invoices.models import Invoice, InvoiceItem, InvoiceStatus, PaymentStatus
from stockbill.modules.invoices.numbering import InvoiceNumberSequencer
from stockbill.modules.invoices.state import InvoiceAction, ensure_action_allowed, TARGET_STATUS
from stockbill.modules.invoices.schemas import InvoiceCreate, InvoiceUpdate, InvoiceFilters, InvoiceItemCreate
from stockbill.modules.payments.models import Payment

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_item_amounts(item: InvoiceItemCreate) -> dict:
    """
    subtotal = cantidad * precio unitario
    tax      = subtotal * tasa / 100
    total    = subtotal + tax - descuento
    """
    subtotal = to_money(Decimal(item.quantity) * item.unit_price)
    tax = to_money(subtotal * item.tax_rate / Decimal(100))
    discount = to_money(item.discount)
    total = subtotal + tax - discount

    if total < 0:
        raise BusinessRuleViolation(
            "El descuento no puede superar el valor del producto",
            product_id=item.product_id,
            discount=discount,
            subtotal_with_tax=subtotal + tax
        )

    return {
        "subtotal": subtotal,
        "tax": tax,
        "discount": discount,
        "total": total,
    }


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedger(db)
        self.sequencer = InvoiceNumberSequencer(db)

    def _base_query(self, tenant_id: UUID):
        return tenant_query(self.db, Invoice, tenant_id)

    def _detail_query(self, tenant_id: UUID):
        return self._base_query(tenant_id).options(
            selectinload(Invoice.items).selectinload(InvoiceItem.product),
            selectinload(Invoice.customer),
            selectinload(Invoice.user),
            selectinload(Invoice.payments)
        )

    def _lock_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        """Cargar la factura bloqueando su fila hasta el fin de la transacción."""
        invoice = self._base_query(tenant_id).filter(
            Invoice.id == invoice_id
        ).populate_existing().with_for_update().first()

        if not invoice:
            logger.warning(f"Invoice not found: {invoice_id}")
            raise NotFoundError("Factura no encontrada", invoice_id=invoice_id)
        return invoice

    def get_invoices(self, tenant_id: UUID, filters: InvoiceFilters, params: PageParams):
        """Obtener lista de facturas con filtros"""
        logger.debug(f"Listing invoices for tenant {tenant_id}, page {params.page}, limit {params.limit}")
        query = self._base_query(tenant_id).options(
            selectinload(Invoice.customer),
            selectinload(Invoice.user)
        )

        if filters.status:
            query = query.filter(Invoice.status == filters.status)
        if filters.payment_status:
            query = query.filter(Invoice.payment_status == filters.payment_status)
        if filters.customer_id:
            query = query.filter(Invoice.customer_id == filters.customer_id)
        if filters.from_date:
            query = query.filter(Invoice.issue_date >= filters.from_date)
        if filters.to_date:
            query = query.filter(Invoice.issue_date <= filters.to_date)

        query = query.order_by(Invoice.created_at.desc(), Invoice.number.desc())
        return paginate(query, params)

    def get_invoice(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        """Obtener factura por ID con items, cliente, usuario y pagos"""
        invoice = self._detail_query(tenant_id).filter(Invoice.id == invoice_id).first()
        if not invoice:
            logger.warning(f"Invoice not found: {invoice_id}")
            raise NotFoundError("Factura no encontrada", invoice_id=invoice_id)
        return invoice

    def get_invoice_payments(self, tenant_id: UUID, invoice_id: UUID) -> List[Payment]:
        invoice = self._base_query(tenant_id).filter(Invoice.id == invoice_id).first()
        if not invoice:
            raise NotFoundError("Factura no encontrada", invoice_id=invoice_id)

        return tenant_query(self.db, Payment, tenant_id).filter(
            Payment.invoice_id == invoice_id
        ).order_by(Payment.payment_date.asc(), Payment.created_at.asc()).all()

    def preview_next_number(self, tenant_id: UUID) -> str:
        return self.sequencer.peek_next_invoice_number(tenant_id)

    def _validate_customer(self, tenant_id: UUID, customer_id: Optional[UUID]) -> None:
        if customer_id is None:
            return
        customer = tenant_query(self.db, Customer, tenant_id).filter(Customer.id == customer_id).first()
        if not customer:
            logger.warning(f"Customer not found: {customer_id}")
            raise NotFoundError(f"Cliente no encontrado: {customer_id}", customer_id=customer_id)

    def _validate_products_and_stock(self, tenant_id: UUID, items: List[InvoiceItemCreate]) -> None:
        """
        Verificación previa de productos y stock.

        Falla rápido con el producto problemático antes de abrir la
        transacción; el descuento atómico del ledger sigue siendo la
        garantía final frente a ventas concurrentes.
        """
        requested = defaultdict(int)
        for item in items:
            requested[item.product_id] += item.quantity

        for product_id, quantity in requested.items():
            product = tenant_query(self.db, Product, tenant_id).filter(
                Product.id == product_id
            ).populate_existing().first()

            if not product:
                logger.warning(f"Product not found: {product_id}")
                raise NotFoundError(f"Producto no encontrado: {product_id}", product_id=product_id)

            if not product.is_active:
                raise BusinessRuleViolation(
                    f"El producto {product.name} está inactivo",
                    product_id=product_id
                )

            if product.stock < quantity:
                raise InsufficientStockError(
                    f"Stock insuficiente para el producto: {product.name}. "
                    f"Disponible: {product.stock}, solicitado: {quantity}",
                    product_id=product_id,
                    product_name=product.name,
                    available=product.stock,
                    requested=quantity
                )

    def create(self, tenant_id: UUID, data: InvoiceCreate, user_id: UUID) -> Invoice:
        """
        Crear factura en borrador descontando stock.

        La numeración, la factura, sus items y los movimientos SALE se
        escriben en una sola transacción: o queda todo o no queda nada.
        """
        logger.debug(f"Creating invoice for tenant {tenant_id} with {len(data.items)} item(s)")

        TenantContext(self.db, tenant_id).check_monthly_invoice_quota()
        self._validate_customer(tenant_id, data.customer_id)
        self._validate_products_and_stock(tenant_id, data.items)

        item_amounts = [calculate_item_amounts(item) for item in data.items]
        subtotal = sum((a["subtotal"] for a in item_amounts), Decimal("0"))
        tax = sum((a["tax"] for a in item_amounts), Decimal("0"))
        discount = sum((a["discount"] for a in item_amounts), Decimal("0"))
        total = sum((a["total"] for a in item_amounts), Decimal("0"))

        def operation() -> Invoice:
            invoice = Invoice(
                tenant_id=tenant_id,
                customer_id=data.customer_id,
                user_id=user_id,
                number=self.sequencer.next_invoice_number(tenant_id),
                status=InvoiceStatus.DRAFT,
                payment_status=PaymentStatus.UNPAID,
                due_date=data.due_date,
                notes=data.notes,
                subtotal=subtotal,
                tax=tax,
                discount=discount,
                total=total
            )
            self.db.add(invoice)
            self.db.flush()

            for position, (item, amounts) in enumerate(zip(data.items, item_amounts)):
                self.db.add(InvoiceItem(
                    tenant_id=tenant_id,
                    invoice_id=invoice.id,
                    product_id=item.product_id,
                    position=position,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    tax_rate=item.tax_rate,
                    **amounts
                ))

                self.ledger.adjust(
                    tenant_id=tenant_id,
                    product_id=item.product_id,
                    delta=-item.quantity,
                    movement_type=MovementType.SALE,
                    reason=f"Venta - Factura {invoice.number}",
                    invoice_id=invoice.id,
                    user_id=user_id
                )

            self.db.flush()
            return invoice

        invoice = run_in_transaction(self.db, operation)
        logger.info(f"Invoice created: {invoice.number} ({invoice.id}) total {total}")
        return self.get_invoice(tenant_id, invoice.id)

    def update(self, tenant_id: UUID, invoice_id: UUID, data: InvoiceUpdate) -> Invoice:
        logger.debug(f"Updating invoice {invoice_id} in tenant {tenant_id}")
        changes = data.model_dump(exclude_unset=True)

        def operation() -> Invoice:
            invoice = self._lock_invoice(tenant_id, invoice_id)
            ensure_action_allowed(invoice, InvoiceAction.UPDATE)
            for field, value in changes.items():
                setattr(invoice, field, value)
            return invoice

        invoice = run_in_transaction(self.db, operation)
        logger.info(f"Invoice updated: {invoice.number} ({invoice.id})")
        return self.get_invoice(tenant_id, invoice_id)

    def send(self, tenant_id: UUID, invoice_id: UUID) -> Invoice:
        """Cambiar una factura de DRAFT a SENT. No afecta stock."""
        logger.debug(f"Sending invoice {invoice_id} in tenant {tenant_id}")

        def operation() -> Invoice:
            invoice = self._lock_invoice(tenant_id, invoice_id)
            ensure_action_allowed(invoice, InvoiceAction.SEND)
            invoice.status = TARGET_STATUS[InvoiceAction.SEND]
            return invoice

        invoice = run_in_transaction(self.db, operation)
        logger.info(f"Invoice sent: {invoice.number} ({invoice.id})")
        return self.get_invoice(tenant_id, invoice_id)

    def _restore_stock(self, tenant_id: UUID, invoice: Invoice, reason: str, user_id: Optional[UUID] = None) -> None:
        for item in invoice.items:
            # Items cuyo producto fue eliminado del catálogo no tienen stock que restituir
            if item.product_id is None:
                continue
            self.ledger.adjust(
                tenant_id=tenant_id,
                product_id=item.product_id,
                delta=item.quantity,
                movement_type=MovementType.RETURN,
                reason=reason,
                invoice_id=invoice.id,
                user_id=user_id
            )

    def cancel(self, tenant_id: UUID, invoice_id: UUID, user_id: UUID, reason: Optional[str] = None) -> Invoice:
        """
        Cancelar factura restituyendo el stock de cada item.

        A diferencia de `delete`, la factura y su historial se conservan.
        """
        logger.debug(f"Cancelling invoice {invoice_id} in tenant {tenant_id}")

        def operation() -> Invoice:
            invoice = self._lock_invoice(tenant_id, invoice_id)
            ensure_action_allowed(invoice, InvoiceAction.CANCEL)

            self._restore_stock(
                tenant_id, invoice,
                reason=f"Cancelación de factura {invoice.number}",
                user_id=user_id
            )

            old_status = invoice.status
            invoice.status = TARGET_STATUS[InvoiceAction.CANCEL]
            if reason:
                note = f"[CANCELADA] {reason}"
                invoice.notes = f"{invoice.notes}\n\n{note}" if invoice.notes else note

            logger.info(f"Invoice {invoice.number} status changed from {old_status.value} to {invoice.status.value}")
            return invoice

        invoice = run_in_transaction(self.db, operation)
        logger.info(f"Invoice cancelled: {invoice.number} ({invoice.id})")
        return self.get_invoice(tenant_id, invoice_id)

    def delete(self, tenant_id: UUID, invoice_id: UUID) -> None:
        """
        Eliminar una factura en borrador deshaciendo su creación.

        Restituye el stock y borra items, movimientos y la factura misma.
        """
        logger.debug(f"Deleting invoice {invoice_id} in tenant {tenant_id}")

        def operation() -> str:
            invoice = self._lock_invoice(tenant_id, invoice_id)
            ensure_action_allowed(invoice, InvoiceAction.DELETE)

            payments = tenant_query(self.db, Payment, tenant_id).filter(
                Payment.invoice_id == invoice.id
            ).count()
            if payments:
                raise BusinessRuleViolation(
                    "No se puede eliminar una factura con pagos registrados",
                    invoice_id=invoice.id,
                    payments=payments
                )

            number = invoice.number
            self._restore_stock(
                tenant_id, invoice,
                reason=f"Eliminación de factura borrador {number}"
            )

            self.db.flush()

            movements = tenant_query(self.db, StockMovement, tenant_id).filter(
                StockMovement.invoice_id == invoice.id
            ).all()
            for movement in movements:
                self.db.delete(movement)
            for item in invoice.items:
                self.db.delete(item)
            self.db.delete(invoice)
            self.db.flush()
            return number

        number = run_in_transaction(self.db, operation)
        logger.info(f"Invoice deleted: {number} ({invoice_id})")

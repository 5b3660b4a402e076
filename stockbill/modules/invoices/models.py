from stockbill.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, UniqueConstraint, CheckConstraint, Numeric, Enum, Date, Text
from sqlalchemy.orm import relationship
from datetime import date
from decimal import Decimal
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from stockbill.common.mixins import TenantMixin, TimestampMixin, CreatedAtMixin
import enum


class InvoiceStatus(str, enum.Enum):
    DRAFT = "DRAFT"          # Borrador: stock ya descontado, editable y reversible
    SENT = "SENT"            # Enviada al cliente
    PAID = "PAID"            # Reservado; no se asigna desde el flujo de pagos
    CANCELLED = "CANCELLED"  # Cancelada, stock restituido (terminal)
    VOID = "VOID"            # Anulada (terminal)


class PaymentStatus(str, enum.Enum):
    UNPAID = "UNPAID"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class Invoice(Base, TenantMixin, TimestampMixin):
    __tablename__ = "invoices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)

    # References
    customer_id = Column(UUID(as_uuid=True), ForeignKey("customers.id"), nullable=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    # Invoice data
    number = Column(String(50), nullable=False)
    status = Column(Enum(InvoiceStatus, name="invoice_status"), nullable=False, default=InvoiceStatus.DRAFT)
    payment_status = Column(Enum(PaymentStatus, name="payment_status"), nullable=False, default=PaymentStatus.UNPAID)

    # Dates
    issue_date = Column(Date, nullable=False, default=date.today)
    due_date = Column(Date, nullable=True)

    notes = Column(Text, nullable=True)

    # Totals (calculated)
    subtotal = Column(Numeric(15, 2), nullable=False, default=0)
    tax = Column(Numeric(15, 2), nullable=False, default=0)
    discount = Column(Numeric(15, 2), nullable=False, default=0)
    total = Column(Numeric(15, 2), nullable=False, default=0)

    # Relationships
    customer = relationship("Customer")
    user = relationship("User")
    items = relationship("InvoiceItem", back_populates="invoice", order_by="InvoiceItem.position")
    payments = relationship("Payment", back_populates="invoice", order_by="Payment.payment_date")
    stock_movements = relationship("StockMovement", back_populates="invoice")

    @property
    def paid_amount(self) -> Decimal:
        return sum((p.amount for p in self.payments), Decimal("0"))

    @property
    def balance_due(self) -> Decimal:
        return Decimal(self.total or 0) - self.paid_amount

    __table_args__ = (
        UniqueConstraint("tenant_id", "number", name="uq_invoice_tenant_number"),
        CheckConstraint(
            "subtotal >= 0 AND tax >= 0 AND discount >= 0 AND total >= 0",
            name="ck_invoice_amounts_non_negative",
        ),
    )


class InvoiceItem(Base, TenantMixin, CreatedAtMixin):
    __tablename__ = "invoice_items"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=False, index=True)
    # Puede quedar en NULL si el producto se elimina del catálogo
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    position = Column(Integer, nullable=False, default=0)

    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(15, 2), nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)  # Porcentaje, ej. 19.00
    discount = Column(Numeric(15, 2), nullable=False, default=0)  # Valor absoluto
    subtotal = Column(Numeric(15, 2), nullable=False)  # quantity * unit_price
    tax = Column(Numeric(15, 2), nullable=False)       # subtotal * tax_rate / 100
    total = Column(Numeric(15, 2), nullable=False)     # subtotal + tax - discount

    # Relationships
    invoice = relationship("Invoice", back_populates="items")
    product = relationship("Product")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_invoice_item_quantity_positive"),
        CheckConstraint(
            "unit_price >= 0 AND discount >= 0 AND total >= 0",
            name="ck_invoice_item_amounts_non_negative",
        ),
    )


class InvoiceSequence(Base, TenantMixin):
    """Contador de numeración de facturas, una fila por tenant"""
    __tablename__ = "invoice_sequences"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    current_number = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("tenant_id", name="uq_invoice_sequence_tenant"),
    )

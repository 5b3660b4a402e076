from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from stockbill.core.config import settings
from stockbill.common.schemas import CamelModel, Money
from stockbill.modules.invoices.models import InvoiceStatus, PaymentStatus


# Invoice Item Schemas
class InvoiceItemCreate(CamelModel):
    product_id: UUID
    quantity: int = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    unit_price: Decimal = Field(..., ge=0, description="Precio unitario sin impuestos")
    tax_rate: Decimal = Field(
        default=Decimal(settings.DEFAULT_TAX_RATE), ge=0, le=100,
        description="Porcentaje de impuesto, ej. 19"
    )
    discount: Decimal = Field(default=Decimal("0"), ge=0, description="Descuento en valor absoluto")

    @field_validator('unit_price', 'tax_rate', 'discount')
    @classmethod
    def validate_decimal_places(cls, v):
        if v.as_tuple().exponent < -2:
            raise ValueError('El valor no puede tener más de 2 decimales')
        return v


class ItemProductSummary(CamelModel):
    id: UUID
    sku: str
    name: str


class InvoiceItemOut(CamelModel):
    id: UUID
    invoice_id: UUID
    product_id: Optional[UUID] = None
    quantity: int
    unit_price: Money
    tax_rate: Money
    discount: Money
    subtotal: Money
    tax: Money
    total: Money
    created_at: datetime
    product: Optional[ItemProductSummary] = None


# Invoice Schemas
class InvoiceCreate(CamelModel):
    customer_id: Optional[UUID] = None
    due_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)
    items: List[InvoiceItemCreate] = Field(..., min_length=1, description="Al menos un producto")


class InvoiceUpdate(CamelModel):
    """Solo notas y fecha de vencimiento; los items no cambian después de creada."""
    notes: Optional[str] = Field(None, max_length=1000)
    due_date: Optional[date] = None


class InvoiceCancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500, description="Motivo de la cancelación")


class InvoiceFilters(BaseModel):
    status: Optional[InvoiceStatus] = None
    payment_status: Optional[PaymentStatus] = None
    customer_id: Optional[UUID] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None


class InvoiceCustomerSummary(CamelModel):
    id: UUID
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None


class InvoiceUserSummary(CamelModel):
    id: UUID
    name: str = Field(validation_alias="full_name")
    email: str


class InvoiceOut(CamelModel):
    id: UUID
    tenant_id: UUID
    customer_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    number: str
    status: InvoiceStatus
    payment_status: PaymentStatus
    issue_date: date
    due_date: Optional[date] = None
    notes: Optional[str] = None
    subtotal: Money
    tax: Money
    discount: Money
    total: Money
    created_at: datetime
    updated_at: datetime


class InvoiceDetail(InvoiceOut):
    paid_amount: Money
    balance_due: Money
    items: List[InvoiceItemOut] = []
    customer: Optional[InvoiceCustomerSummary] = None
    user: Optional[InvoiceUserSummary] = None


class NextInvoiceNumber(CamelModel):
    number: str

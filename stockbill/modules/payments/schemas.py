from pydantic import BaseModel, Field, field_validator
from decimal import Decimal
from typing import Optional
from uuid import UUID
from datetime import date, datetime

from stockbill.common.schemas import CamelModel, Money
from stockbill.modules.invoices.models import InvoiceStatus, PaymentStatus
from stockbill.modules.invoices.schemas import InvoiceCustomerSummary
from stockbill.modules.payments.models import PaymentMethod


class PaymentCreate(CamelModel):
    invoice_id: UUID
    amount: Decimal = Field(..., description="Monto del pago, mayor a 0")
    method: PaymentMethod
    reference: Optional[str] = Field(None, max_length=100, description="Número de transacción, voucher, etc.")
    payment_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator('amount')
    @classmethod
    def validate_decimal_places(cls, v):
        if v.as_tuple().exponent < -2:
            raise ValueError('El monto no puede tener más de 2 decimales')
        return v


class PaymentFilters(BaseModel):
    invoice_id: Optional[UUID] = None
    method: Optional[PaymentMethod] = None
    from_date: Optional[date] = None
    to_date: Optional[date] = None


class PaymentOut(CamelModel):
    id: UUID
    tenant_id: UUID
    invoice_id: UUID
    user_id: Optional[UUID] = None
    amount: Money
    method: PaymentMethod
    reference: Optional[str] = None
    payment_date: date
    notes: Optional[str] = None
    created_at: datetime


class PaymentInvoiceSummary(CamelModel):
    id: UUID
    number: str
    total: Money
    status: InvoiceStatus
    payment_status: PaymentStatus
    customer: Optional[InvoiceCustomerSummary] = None


class PaymentDetail(PaymentOut):
    invoice: PaymentInvoiceSummary

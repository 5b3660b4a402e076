from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID
from datetime import datetime

from stockbill.common.schemas import CamelModel
from stockbill.modules.inventory.models import MovementType


class StockAdjustmentCreate(CamelModel):
    product_id: UUID
    quantity: int = Field(..., description="Delta de stock: positivo suma, negativo resta")
    reason: str = Field(..., min_length=1, max_length=255)
    notes: Optional[str] = Field(None, max_length=255)

    @field_validator('quantity')
    @classmethod
    def validate_quantity(cls, v):
        if v == 0:
            raise ValueError('La cantidad del ajuste no puede ser 0')
        return v


class MovementFilters(BaseModel):
    product_id: Optional[UUID] = None
    type: Optional[MovementType] = None
    invoice_id: Optional[UUID] = None
    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None


class MovementProductSummary(CamelModel):
    id: UUID
    sku: str
    name: str


class MovementUserSummary(CamelModel):
    id: UUID
    first_name: str
    last_name: str


class StockMovementOut(CamelModel):
    id: UUID
    tenant_id: UUID
    product_id: UUID
    invoice_id: Optional[UUID] = None
    user_id: Optional[UUID] = None
    type: MovementType
    quantity: int
    reason: Optional[str] = None
    notes: Optional[str] = None
    created_at: datetime
    product: Optional[MovementProductSummary] = None
    user: Optional[MovementUserSummary] = None

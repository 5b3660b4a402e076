from stockbill.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, Numeric, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from stockbill.common.mixins import TenantMixin, TimestampMixin

class Product(Base, TenantMixin, TimestampMixin):
    """
    Producto del catálogo.

    El CRUD de productos es externo; la columna `stock` solo la modifica
    el StockLedger (ver modules/inventory/service.py).
    """
    __tablename__ = "products"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(100), nullable=False)
    sku = Column(String(50), nullable=False)
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True)
    price_sale = Column(Numeric(15, 2), nullable=False, default=0)
    stock = Column(Integer, nullable=False, default=0)

    # Relationships
    movements = relationship("StockMovement", back_populates="product")

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_product_tenant_sku"),
        CheckConstraint("stock >= 0", name="ck_product_stock_non_negative"),
    )

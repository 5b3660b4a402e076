from stockbill.database.database import Base
from sqlalchemy import Column, Integer, String, ForeignKey, Enum, event
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from stockbill.common.mixins import TenantMixin, CreatedAtMixin
from stockbill.core.exceptions import BusinessRuleViolation
import enum


class MovementType(str, enum.Enum):
    PURCHASE = "PURCHASE"
    SALE = "SALE"
    ADJUSTMENT = "ADJUSTMENT"
    TRANSFER = "TRANSFER"
    RETURN = "RETURN"
    DAMAGED = "DAMAGED"


class StockMovement(Base, TenantMixin, CreatedAtMixin):
    """
    Registro de auditoría de un cambio de stock.

    Append-only: una vez escrito no se modifica. Solo se borra al revertir
    la creación de una factura en borrador.
    """
    __tablename__ = "stock_movements"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    product_id = Column(UUID(as_uuid=True), ForeignKey("products.id"), nullable=False, index=True)
    invoice_id = Column(UUID(as_uuid=True), ForeignKey("invoices.id"), nullable=True, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=True)

    type = Column(Enum(MovementType, name="movement_type"), nullable=False)
    quantity = Column(Integer, nullable=False)  # Delta con signo
    reason = Column(String(255), nullable=True)
    notes = Column(String(255), nullable=True)

    # Relationships
    product = relationship("Product", back_populates="movements")
    invoice = relationship("Invoice", back_populates="stock_movements")
    user = relationship("User")


@event.listens_for(StockMovement, "before_update")
def _reject_movement_update(mapper, connection, target):
    raise BusinessRuleViolation(
        "Los movimientos de stock no se pueden modificar",
        movement_id=target.id,
    )

from typing import Optional
from uuid import UUID
import logging

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from stockbill.core.exceptions import NotFoundError, InsufficientStockError
from stockbill.database.database import tenant_query, run_in_transaction
from stockbill.common.pagination import PageParams, paginate
from stockbill.modules.products.models import Product
from stockbill.modules.inventory.models import StockMovement, MovementType
from stockbill.modules.inventory.schemas import StockAdjustmentCreate, MovementFilters

logger = logging.getLogger(__name__)


class StockLedger:
    """
    Único escritor de `Product.stock` y del log de movimientos.

    Siempre se invoca dentro de una transacción abierta por quien llama;
    no hace commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def adjust(
        self,
        tenant_id: UUID,
        product_id: UUID,
        delta: int,
        movement_type: MovementType,
        reason: str,
        invoice_id: Optional[UUID] = None,
        user_id: Optional[UUID] = None,
        notes: Optional[str] = None
    ) -> StockMovement:
        """
        Aplicar `delta` al stock del producto y registrar el movimiento.

        El cambio se hace con un UPDATE condicional
        (`stock = stock + delta WHERE stock + delta >= 0`), así dos
        requests concurrentes sobre el mismo producto no pueden dejar el
        stock negativo ni perder una actualización. Cero filas afectadas
        significa producto inexistente o stock insuficiente.
        """
        result = self.db.execute(
            update(Product)
            .where(
                Product.id == product_id,
                Product.tenant_id == tenant_id,
                Product.stock + delta >= 0
            )
            .values(stock=Product.stock + delta)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            product = tenant_query(self.db, Product, tenant_id).filter(
                Product.id == product_id
            ).populate_existing().first()
            if product is None:
                logger.warning(f"Product not found during stock adjustment: {product_id}")
                raise NotFoundError(f"Producto no encontrado: {product_id}", product_id=product_id)

            logger.warning(
                f"Stock adjustment rejected for product {product_id}: "
                f"current {product.stock}, delta {delta}"
            )
            raise InsufficientStockError(
                f"Stock insuficiente para el producto: {product.name}. "
                f"Disponible: {product.stock}, ajuste: {delta}",
                product_id=product_id,
                product_name=product.name,
                available=product.stock,
                delta=delta
            )

        movement = StockMovement(
            tenant_id=tenant_id,
            product_id=product_id,
            invoice_id=invoice_id,
            user_id=user_id,
            type=movement_type,
            quantity=delta,
            reason=reason,
            notes=notes
        )
        self.db.add(movement)
        self.db.flush()

        logger.debug(f"Stock movement {movement_type.value} {delta:+d} for product {product_id}")
        return movement


class StockMovementService:
    """Consultas de movimientos y ajustes manuales de stock."""

    def __init__(self, db: Session):
        self.db = db
        self.ledger = StockLedger(db)

    def _base_query(self, tenant_id: UUID):
        return tenant_query(self.db, StockMovement, tenant_id).options(
            selectinload(StockMovement.product),
            selectinload(StockMovement.user)
        )

    def get_movements(self, tenant_id: UUID, filters: MovementFilters, params: PageParams):
        logger.debug(f"Listing stock movements for tenant {tenant_id}, page {params.page}, limit {params.limit}")
        query = self._base_query(tenant_id)

        if filters.product_id:
            query = query.filter(StockMovement.product_id == filters.product_id)
        if filters.type:
            query = query.filter(StockMovement.type == filters.type)
        if filters.invoice_id:
            query = query.filter(StockMovement.invoice_id == filters.invoice_id)
        if filters.from_date:
            query = query.filter(StockMovement.created_at >= filters.from_date)
        if filters.to_date:
            query = query.filter(StockMovement.created_at <= filters.to_date)

        query = query.order_by(StockMovement.created_at.desc())
        return paginate(query, params)

    def get_product_movements(self, tenant_id: UUID, product_id: UUID, filters: MovementFilters, params: PageParams):
        """Historial de movimientos de un producto del tenant."""
        exists = tenant_query(self.db, Product, tenant_id).filter(Product.id == product_id).first()
        if not exists:
            logger.warning(f"Product not found for movement history: {product_id}")
            raise NotFoundError("Producto no encontrado", product_id=product_id)

        filters = filters.model_copy(update={"product_id": product_id})
        return self.get_movements(tenant_id, filters, params)

    def get_movement(self, tenant_id: UUID, movement_id: UUID) -> StockMovement:
        movement = self._base_query(tenant_id).filter(StockMovement.id == movement_id).first()
        if not movement:
            logger.warning(f"Stock movement not found: {movement_id}")
            raise NotFoundError("Movimiento de stock no encontrado", movement_id=movement_id)
        return movement

    def create_adjustment(self, tenant_id: UUID, data: StockAdjustmentCreate, user_id: UUID) -> StockMovement:
        """Ajuste manual (conteo físico, mermas corregidas, etc.)."""
        logger.debug(f"Creating stock adjustment for product {data.product_id} in tenant {tenant_id}")

        movement = run_in_transaction(
            self.db,
            lambda: self.ledger.adjust(
                tenant_id=tenant_id,
                product_id=data.product_id,
                delta=data.quantity,
                movement_type=MovementType.ADJUSTMENT,
                reason=data.reason,
                user_id=user_id,
                notes=data.notes
            )
        )

        logger.info(f"Stock adjustment {data.quantity:+d} recorded for product {data.product_id} ({movement.id})")
        return self.get_movement(tenant_id, movement.id)

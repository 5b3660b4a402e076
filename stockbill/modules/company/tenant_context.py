from datetime import datetime, timezone
from typing import Optional
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from stockbill.core.exceptions import NotFoundError, QuotaExceededError
from stockbill.database.database import tenant_query
from stockbill.modules.company.models import Company

logger = logging.getLogger(__name__)


def start_of_current_month(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class TenantContext:
    """
    Tenant del llamador y sus límites de plan.

    Se construye por request a partir del tenant ya autenticado.
    """

    def __init__(self, db: Session, tenant_id: UUID):
        self.db = db
        self.tenant_id = tenant_id
        self._company: Optional[Company] = None

    @property
    def company(self) -> Company:
        if self._company is None:
            company = self.db.query(Company).filter(
                Company.id == self.tenant_id,
                Company.is_active.is_(True)
            ).first()
            if not company:
                logger.warning(f"Tenant not found or inactive: {self.tenant_id}")
                raise NotFoundError("Empresa no encontrada", tenant_id=self.tenant_id)
            self._company = company
        return self._company

    @property
    def max_invoices_month(self) -> Optional[int]:
        """Límite mensual de facturas; None si el plan es ilimitado."""
        if self.company.has_unlimited_invoices:
            return None
        return self.company.max_invoices_month

    def count_invoices_this_month(self) -> int:
        from stockbill.modules.invoices.models import Invoice

        return tenant_query(self.db, Invoice, self.tenant_id).filter(
            Invoice.created_at >= start_of_current_month()
        ).with_entities(func.count(Invoice.id)).scalar() or 0

    def check_monthly_invoice_quota(self) -> None:
        """Lanza QuotaExceededError si el tenant ya llegó a su límite del mes."""
        limit = self.max_invoices_month
        if limit is None:
            return

        used = self.count_invoices_this_month()
        if used >= limit:
            logger.warning(f"Monthly invoice limit reached for tenant {self.tenant_id}: {used}/{limit}")
            raise QuotaExceededError(
                f"Límite mensual de facturas alcanzado ({used}/{limit})",
                tenant_id=self.tenant_id,
                used=used,
                limit=limit
            )

        logger.debug(f"Invoice limit check passed: {used}/{limit}")

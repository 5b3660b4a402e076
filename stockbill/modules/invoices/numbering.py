import logging
import re
from typing import Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.orm import Session

from stockbill.core.config import settings
from stockbill.database.database import tenant_query
from stockbill.modules.invoices.models import Invoice, InvoiceSequence

logger = logging.getLogger(__name__)


def format_invoice_number(sequence: int, prefix: Optional[str] = None, padding: Optional[int] = None) -> str:
    prefix = settings.INVOICE_NUMBER_PREFIX if prefix is None else prefix
    padding = settings.INVOICE_NUMBER_PADDING if padding is None else padding
    return f"{prefix}{sequence:0{padding}d}"


def parse_invoice_number(number: str, prefix: Optional[str] = None) -> Optional[int]:
    prefix = settings.INVOICE_NUMBER_PREFIX if prefix is None else prefix
    match = re.fullmatch(re.escape(prefix) + r"(\d+)", number or "")
    return int(match.group(1)) if match else None


class InvoiceNumberSequencer:
    """
    Numeración consecutiva de facturas por tenant (INV-00001, INV-00002...).

    El contador vive en `invoice_sequences` y se incrementa con un UPDATE
    atómico dentro de la transacción de creación: la fila queda bloqueada
    hasta el commit, así dos creaciones concurrentes nunca reciben el
    mismo número. Si la transacción hace rollback el número no se consume.
    """

    def __init__(self, db: Session):
        self.db = db

    def next_invoice_number(self, tenant_id: UUID) -> str:
        result = self.db.execute(
            update(InvoiceSequence)
            .where(InvoiceSequence.tenant_id == tenant_id)
            .values(current_number=InvoiceSequence.current_number + 1)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            # Primera factura con contador: se siembra desde lo ya emitido.
            # Si otra transacción crea la fila al mismo tiempo, la restricción
            # única sobre tenant_id produce un IntegrityError reintentable.
            sequence = InvoiceSequence(
                tenant_id=tenant_id,
                current_number=self._highest_issued_number(tenant_id) + 1
            )
            self.db.add(sequence)
            self.db.flush()
            current = sequence.current_number
        else:
            current = tenant_query(self.db, InvoiceSequence, tenant_id).with_entities(
                InvoiceSequence.current_number
            ).scalar()

        number = format_invoice_number(current)
        logger.debug(f"Generated invoice number {number} for tenant {tenant_id}")
        return number

    def peek_next_invoice_number(self, tenant_id: UUID) -> str:
        """Número que recibiría la próxima factura, sin consumirlo."""
        current = tenant_query(self.db, InvoiceSequence, tenant_id).with_entities(
            InvoiceSequence.current_number
        ).scalar()
        if current is None:
            current = self._highest_issued_number(tenant_id)
        return format_invoice_number(current + 1)

    def _highest_issued_number(self, tenant_id: UUID) -> int:
        numbers = tenant_query(self.db, Invoice, tenant_id).with_entities(Invoice.number).all()
        parsed = [parse_invoice_number(number) for (number,) in numbers]
        return max((n for n in parsed if n is not None), default=0)

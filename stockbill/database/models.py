"""
Importa todos los modelos para que queden registrados en Base.metadata
(creación de tablas en desarrollo, autogenerate de Alembic y pruebas).
"""
import stockbill.modules.company.models  # noqa: F401
import stockbill.modules.auth.models  # noqa: F401
import stockbill.modules.customers.models  # noqa: F401
import stockbill.modules.products.models  # noqa: F401
import stockbill.modules.inventory.models  # noqa: F401
import stockbill.modules.invoices.models  # noqa: F401
import stockbill.modules.payments.models  # noqa: F401

from stockbill.database.database import Base

metadata = Base.metadata

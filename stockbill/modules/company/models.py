from stockbill.database.database import Base
from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid

class Company(Base):
    """Empresa (tenant). Todos los datos de negocio cuelgan de una empresa."""
    __tablename__ = "companies"

    id = Column(UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4)
    name = Column(String, unique=True, index=True, nullable=False)
    nit = Column(String(50), unique=True, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Límite de facturas por mes del plan contratado. NULL o negativo = ilimitado
    max_invoices_month = Column(Integer, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user_companies = relationship("UserCompany", back_populates="company")

    @property
    def has_unlimited_invoices(self) -> bool:
        return self.max_invoices_month is None or self.max_invoices_month < 0

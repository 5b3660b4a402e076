from stockbill.database.database import Base
from sqlalchemy import Column, String, Text
from sqlalchemy.dialects.postgresql import UUID
from uuid import uuid4
from stockbill.common.mixins import TenantMixin, TimestampMixin


class Customer(Base, TenantMixin, TimestampMixin):
    """
    Cliente de la empresa.

    El CRUD de clientes vive fuera de este servicio; aquí solo se necesita
    para validar la referencia de la factura y mostrar el resumen del cliente.
    """
    __tablename__ = "customers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    name = Column(String(200), nullable=False)
    email = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    document = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)

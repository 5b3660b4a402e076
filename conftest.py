"""
Fixtures compartidas por las pruebas.

La aplicación corre contra SQLite en memoria (una sola conexión con
StaticPool) y el esquema se recrea en cada prueba. El endpoint y la prueba
comparten la misma sesión, así que los objetos de los fixtures se
refrescan solos después de cada commit o rollback del servicio.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from stockbill.database.database import Base, SessionLocal, engine, get_db
import stockbill.database.models  # noqa: F401
from stockbill.main import app
from stockbill.modules.auth.models import User, UserCompany, UserRole
from stockbill.modules.auth.utils import create_access_token
from stockbill.modules.company.models import Company
from stockbill.modules.customers.models import Customer
from stockbill.modules.products.models import Product


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def company_factory(db_session):
    def _create(name="Tienda de Prueba S.A.S.", max_invoices_month=None, is_active=True):
        company = Company(name=name, max_invoices_month=max_invoices_month, is_active=is_active)
        db_session.add(company)
        db_session.commit()
        return company
    return _create


@pytest.fixture
def company(company_factory):
    return company_factory()


@pytest.fixture
def other_company(company_factory):
    return company_factory(name="Otra Empresa S.A.S.")


@pytest.fixture
def user_factory(db_session):
    counter = {"n": 0}

    def _create(company, role=UserRole.ADMIN, first_name="Ana", last_name="Gómez"):
        counter["n"] += 1
        user = User(
            email=f"user{counter['n']}@stockbill.test",
            first_name=first_name,
            last_name=last_name,
            is_active=True
        )
        db_session.add(user)
        db_session.flush()
        db_session.add(UserCompany(user_id=user.id, company_id=company.id, role=role.value, is_active=True))
        db_session.commit()
        return user
    return _create


@pytest.fixture
def admin_user(user_factory, company):
    return user_factory(company, UserRole.ADMIN)


@pytest.fixture
def manager_user(user_factory, company):
    return user_factory(company, UserRole.MANAGER, first_name="Mario", last_name="Ruiz")


@pytest.fixture
def employee_user(user_factory, company):
    return user_factory(company, UserRole.EMPLOYEE, first_name="Elena", last_name="Díaz")


@pytest.fixture
def auth_headers():
    def _headers(user, company):
        token = create_access_token({"sub": str(user.id)})
        return {"Authorization": f"Bearer {token}", "X-Company-ID": str(company.id)}
    return _headers


@pytest.fixture
def admin_headers(auth_headers, admin_user, company):
    return auth_headers(admin_user, company)


@pytest.fixture
def product_factory(db_session):
    def _create(company, sku="SKU-001", name="Teclado mecánico", stock=10, price=Decimal("100000.00")):
        product = Product(
            tenant_id=company.id,
            sku=sku,
            name=name,
            stock=stock,
            price_sale=price,
            is_active=True
        )
        db_session.add(product)
        db_session.commit()
        return product
    return _create


@pytest.fixture
def product(product_factory, company):
    return product_factory(company)


@pytest.fixture
def second_product(product_factory, company):
    return product_factory(company, sku="SKU-002", name="Mouse inalámbrico", stock=5, price=Decimal("50000.00"))


@pytest.fixture
def customer(db_session, company):
    customer = Customer(
        tenant_id=company.id,
        name="Cliente Uno",
        email="cliente@example.com",
        phone="310-123-4567"
    )
    db_session.add(customer)
    db_session.commit()
    return customer

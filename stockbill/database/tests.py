"""
Tests para el acceso a datos: queries por tenant y transacciones con reintento
"""
import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from stockbill.core.exceptions import ConflictError, NotFoundError
from stockbill.database.database import tenant_query, run_in_transaction, is_retryable_conflict
from stockbill.modules.company.models import Company
from stockbill.modules.products.models import Product


class FakePgError(Exception):
    def __init__(self, pgcode):
        super().__init__(f"pgcode {pgcode}")
        self.pgcode = pgcode


def integrity_error():
    return IntegrityError("INSERT ...", {}, Exception("duplicate key"))


class TestTenantQuery:

    def test_filters_by_tenant(self, db_session, company, other_company, product_factory):
        product_factory(company, sku="A-1")
        product_factory(other_company, sku="B-1")

        skus = [p.sku for p in tenant_query(db_session, Product, company.id).all()]

        assert skus == ["A-1"]

    def test_rejects_models_without_tenant(self, db_session, company):
        with pytest.raises(TypeError):
            tenant_query(db_session, Company, company.id)


class TestRunInTransaction:

    def test_commits_result(self, db_session, company, product):
        def operation():
            product.name = "Teclado inalámbrico"
            return product

        result = run_in_transaction(db_session, operation)

        assert result is product
        db_session.expire_all()
        assert product.name == "Teclado inalámbrico"

    def test_business_error_rolls_back_without_retry(self, db_session, product):
        calls = []

        def operation():
            calls.append(1)
            product.name = "Cambio descartado"
            raise NotFoundError("Factura no encontrada")

        with pytest.raises(NotFoundError):
            run_in_transaction(db_session, operation, retries=3)

        assert len(calls) == 1
        assert product.name == "Teclado mecánico"

    def test_conflict_is_retried(self, db_session):
        calls = []

        def operation():
            calls.append(1)
            if len(calls) == 1:
                raise integrity_error()
            return "ok"

        assert run_in_transaction(db_session, operation, retries=1) == "ok"
        assert len(calls) == 2

    def test_persistent_conflict_becomes_conflict_error(self, db_session):
        calls = []

        def operation():
            calls.append(1)
            raise integrity_error()

        with pytest.raises(ConflictError) as exc_info:
            run_in_transaction(db_session, operation, retries=1)

        assert len(calls) == 2
        # El mensaje del driver no llega al cliente
        assert exc_info.value.context == {}
        assert "duplicate key" not in str(exc_info.value.to_dict())

    def test_retryable_codes(self):
        assert is_retryable_conflict(integrity_error())
        assert is_retryable_conflict(OperationalError("UPDATE ...", {}, FakePgError("40001")))
        assert is_retryable_conflict(OperationalError("UPDATE ...", {}, FakePgError("40P01")))
        assert not is_retryable_conflict(OperationalError("UPDATE ...", {}, FakePgError("57014")))
        assert not is_retryable_conflict(ValueError("otro"))

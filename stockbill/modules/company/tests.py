"""
Tests para el contexto de tenant y el límite mensual de facturas
"""
import pytest
from datetime import datetime, timezone
from uuid import uuid4

from stockbill.core.exceptions import NotFoundError, QuotaExceededError
from stockbill.modules.company.tenant_context import TenantContext, start_of_current_month
from stockbill.modules.invoices.models import Invoice


def add_invoices(db_session, company, user, count):
    for n in range(count):
        db_session.add(Invoice(tenant_id=company.id, user_id=user.id, number=f"INV-{n + 1:05d}"))
    db_session.commit()


class TestTenantContext:

    def test_start_of_current_month(self):
        now = datetime(2026, 10, 18, 15, 30, 12, tzinfo=timezone.utc)
        assert start_of_current_month(now) == datetime(2026, 10, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("limit", [None, -1])
    def test_unlimited_plans(self, db_session, company_factory, limit):
        company = company_factory(max_invoices_month=limit)
        context = TenantContext(db_session, company.id)

        assert context.company.has_unlimited_invoices
        assert context.max_invoices_month is None
        context.check_monthly_invoice_quota()

    def test_unknown_tenant(self, db_session):
        with pytest.raises(NotFoundError):
            TenantContext(db_session, uuid4()).company

    def test_inactive_tenant(self, db_session, company_factory):
        company = company_factory(is_active=False)
        with pytest.raises(NotFoundError):
            TenantContext(db_session, company.id).check_monthly_invoice_quota()

    def test_counts_only_own_invoices(self, db_session, company_factory, user_factory):
        company = company_factory(name="Empresa A", max_invoices_month=3)
        other = company_factory(name="Empresa B", max_invoices_month=3)
        user = user_factory(company)
        add_invoices(db_session, company, user, 2)
        add_invoices(db_session, other, user, 3)

        context = TenantContext(db_session, company.id)

        assert context.count_invoices_this_month() == 2
        context.check_monthly_invoice_quota()

    def test_quota_reached(self, db_session, company_factory, user_factory):
        company = company_factory(max_invoices_month=2)
        add_invoices(db_session, company, user_factory(company), 2)

        with pytest.raises(QuotaExceededError) as exc_info:
            TenantContext(db_session, company.id).check_monthly_invoice_quota()

        assert exc_info.value.status_code == 403
        assert exc_info.value.context["used"] == 2
        assert exc_info.value.context["limit"] == 2

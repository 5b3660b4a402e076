"""
Tests para la conciliación de pagos
"""
import pytest
from decimal import Decimal
from uuid import uuid4

from stockbill.core.exceptions import PaymentExceedsBalanceError, InvalidTransitionError, BusinessRuleViolation
from stockbill.modules.invoices.models import PaymentStatus, InvoiceStatus
from stockbill.modules.invoices.schemas import InvoiceCreate, InvoiceItemCreate
from stockbill.modules.invoices.service import InvoiceService
from stockbill.modules.payments.models import Payment, PaymentMethod
from stockbill.modules.payments.schemas import PaymentCreate
from stockbill.modules.payments.service import PaymentService


@pytest.fixture
def invoice(db_session, company, admin_user, product):
    """Factura de 238.000: 2 x 100.000 + IVA 19%"""
    data = InvoiceCreate(items=[InvoiceItemCreate(product_id=product.id, quantity=2, unit_price=Decimal("100000"))])
    return InvoiceService(db_session).create(company.id, data, admin_user.id)


def pay(db_session, company, user, invoice, amount, method=PaymentMethod.CASH):
    data = PaymentCreate(invoice_id=invoice.id, amount=Decimal(amount), method=method)
    return PaymentService(db_session).record(company.id, data, user.id)


class TestPaymentService:

    def test_partial_then_full_payment(self, db_session, company, admin_user, invoice):
        pay(db_session, company, admin_user, invoice, "100000")
        assert invoice.payment_status == PaymentStatus.PARTIALLY_PAID

        pay(db_session, company, admin_user, invoice, "138000", PaymentMethod.NEQUI)
        assert invoice.payment_status == PaymentStatus.PAID
        # El estado del ciclo de vida no cambia al quedar pagada
        assert invoice.status == InvoiceStatus.DRAFT

    def test_payment_exceeding_balance_is_not_persisted(self, db_session, company, admin_user, invoice):
        pay(db_session, company, admin_user, invoice, "200000")

        with pytest.raises(PaymentExceedsBalanceError) as exc_info:
            pay(db_session, company, admin_user, invoice, "38000.01")

        assert exc_info.value.context["balance"] == Decimal("38000.00")
        assert db_session.query(Payment).count() == 1
        assert invoice.payment_status == PaymentStatus.PARTIALLY_PAID

    def test_non_positive_amount_is_rejected(self, db_session, company, admin_user, invoice):
        with pytest.raises(BusinessRuleViolation):
            pay(db_session, company, admin_user, invoice, "0")

        assert db_session.query(Payment).count() == 0

    def test_payment_on_cancelled_invoice_is_rejected(self, db_session, company, admin_user, invoice):
        InvoiceService(db_session).cancel(company.id, invoice.id, admin_user.id)

        with pytest.raises(InvalidTransitionError):
            pay(db_session, company, admin_user, invoice, "1000")

    def test_delete_recomputes_status(self, db_session, company, admin_user, invoice):
        first = pay(db_session, company, admin_user, invoice, "100000")
        second = pay(db_session, company, admin_user, invoice, "138000")
        service = PaymentService(db_session)

        service.delete(company.id, second.id)
        assert invoice.payment_status == PaymentStatus.PARTIALLY_PAID

        service.delete(company.id, first.id)
        assert invoice.payment_status == PaymentStatus.UNPAID

    def test_payment_status_always_matches_payment_sum(self, db_session, company, admin_user, invoice):
        service = PaymentService(db_session)
        recorded = [pay(db_session, company, admin_user, invoice, amount) for amount in ("50000", "88000", "100000")]
        service.delete(company.id, recorded[1].id)
        pay(db_session, company, admin_user, invoice, "88000")

        paid = service.paid_total(company.id, invoice.id)
        assert paid == Decimal("238000")
        assert invoice.payment_status == PaymentStatus.PAID


class TestPaymentsAPI:

    def test_full_payment_scenario(self, client, invoice, admin_headers):
        response = client.post(
            "/payments",
            json={"invoiceId": str(invoice.id), "amount": 238000, "method": "BANK_TRANSFER", "reference": "TRX-991"},
            headers=admin_headers
        )

        assert response.status_code == 201
        payment = response.json()
        assert payment["amount"] == 238000
        assert payment["invoice"]["number"] == "INV-00001"
        assert payment["invoice"]["paymentStatus"] == "PAID"

        detail = client.get(f"/invoices/{invoice.id}", headers=admin_headers).json()
        assert detail["paymentStatus"] == "PAID"
        assert detail["paidAmount"] == 238000
        assert detail["balanceDue"] == 0

        deleted = client.delete(f"/payments/{payment['id']}", headers=admin_headers)
        assert deleted.status_code == 204

        detail = client.get(f"/invoices/{invoice.id}", headers=admin_headers).json()
        assert detail["paymentStatus"] == "UNPAID"
        assert detail["balanceDue"] == 238000

    def test_exceeding_payment_returns_error_kind(self, client, invoice, admin_headers):
        response = client.post(
            "/payments",
            json={"invoiceId": str(invoice.id), "amount": "238000.01", "method": "CASH"},
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "PAYMENT_EXCEEDS_BALANCE"
        assert client.get("/payments", headers=admin_headers).json()["meta"]["total"] == 0

    def test_payment_for_unknown_invoice(self, client, company, admin_headers):
        response = client.post(
            "/payments",
            json={"invoiceId": str(uuid4()), "amount": 1000, "method": "CASH"},
            headers=admin_headers
        )

        assert response.status_code == 404

    def test_list_filters_and_invoice_payments(self, client, invoice, admin_headers):
        client.post("/payments", json={"invoiceId": str(invoice.id), "amount": 1000, "method": "CASH"}, headers=admin_headers)
        client.post("/payments", json={"invoiceId": str(invoice.id), "amount": 2000, "method": "PSE"}, headers=admin_headers)

        listed = client.get("/payments", params={"method": "PSE"}, headers=admin_headers).json()
        assert listed["meta"]["total"] == 1
        assert listed["data"][0]["amount"] == 2000

        by_invoice = client.get(f"/invoices/{invoice.id}/payments", headers=admin_headers).json()
        assert sorted(p["amount"] for p in by_invoice) == [1000, 2000]

    def test_role_permissions(self, client, company, invoice, employee_user, manager_user, auth_headers):
        employee_headers = auth_headers(employee_user, company)
        manager_headers = auth_headers(manager_user, company)
        body = {"invoiceId": str(invoice.id), "amount": 1000, "method": "CASH"}

        assert client.post("/payments", json=body, headers=employee_headers).status_code == 403
        created = client.post("/payments", json=body, headers=manager_headers)
        assert created.status_code == 201

        payment_id = created.json()["id"]
        assert client.get(f"/payments/{payment_id}", headers=employee_headers).status_code == 200
        assert client.delete(f"/payments/{payment_id}", headers=manager_headers).status_code == 403

    def test_other_tenant_cannot_see_payment(self, client, invoice, admin_headers, other_company, user_factory, auth_headers):
        payment_id = client.post(
            "/payments", json={"invoiceId": str(invoice.id), "amount": 1000, "method": "CASH"}, headers=admin_headers
        ).json()["id"]
        outsider_headers = auth_headers(user_factory(other_company), other_company)

        assert client.get(f"/payments/{payment_id}", headers=outsider_headers).status_code == 404
        assert client.delete(f"/payments/{payment_id}", headers=outsider_headers).status_code == 404

    def test_zero_total_invoice_stays_unpaid_and_rejects_payments(self, client, product, admin_headers):
        created = client.post(
            "/invoices",
            json={"items": [{"productId": str(product.id), "quantity": 1, "unitPrice": "0"}]},
            headers=admin_headers
        ).json()
        assert created["total"] == 0
        assert created["paymentStatus"] == "UNPAID"
        assert created["balanceDue"] == 0

        response = client.post(
            "/payments",
            json={"invoiceId": created["id"], "amount": "0.01", "method": "CASH"},
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "PAYMENT_EXCEEDS_BALANCE"
        detail = client.get(f"/invoices/{created['id']}", headers=admin_headers).json()
        assert detail["paymentStatus"] == "UNPAID"

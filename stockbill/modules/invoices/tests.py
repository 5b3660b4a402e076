"""
Tests para el módulo de Facturas

Cubren:
- Máquina de estados (status y payment_status)
- Numeración consecutiva por tenant
- Creación con cálculo de totales y descuento de stock
- Envío, cancelación y eliminación con restitución de stock
- Límite mensual de facturas
- Aislamiento entre tenants y permisos por rol
"""
import pytest
from decimal import Decimal
from uuid import uuid4

from stockbill.core.exceptions import (
    InvalidTransitionError, BusinessRuleViolation, QuotaExceededError, InsufficientStockError
)
from stockbill.modules.auth.models import UserRole
from stockbill.modules.auth.utils import create_access_token
from stockbill.modules.inventory.models import StockMovement, MovementType
from stockbill.modules.invoices.models import Invoice, InvoiceItem, InvoiceStatus, PaymentStatus
from stockbill.modules.invoices.numbering import (
    InvoiceNumberSequencer, format_invoice_number, parse_invoice_number
)
from stockbill.modules.invoices.schemas import InvoiceCreate, InvoiceItemCreate
from stockbill.modules.invoices.service import InvoiceService, calculate_item_amounts
from stockbill.modules.invoices.state import (
    InvoiceAction, can_apply, ensure_action_allowed, resolve_payment_status
)


def invoice_payload(*items, **extra):
    payload = {
        "items": [
            {"productId": str(product.id), "quantity": quantity, "unitPrice": str(unit_price)}
            for product, quantity, unit_price in items
        ]
    }
    payload.update(extra)
    return payload


@pytest.fixture
def create_invoice(db_session, company, admin_user):
    def _create(*items, customer_id=None):
        data = InvoiceCreate(
            customer_id=customer_id,
            items=[
                InvoiceItemCreate(product_id=product.id, quantity=quantity, unit_price=Decimal(unit_price))
                for product, quantity, unit_price in items
            ]
        )
        return InvoiceService(db_session).create(company.id, data, admin_user.id)
    return _create


# ===== TESTS DE MÁQUINA DE ESTADOS =====

class TestInvoiceStateMachine:

    def test_draft_allows_every_action(self):
        for action in InvoiceAction:
            assert can_apply(InvoiceStatus.DRAFT, action)

    def test_sent_can_only_be_cancelled_or_paid(self):
        assert can_apply(InvoiceStatus.SENT, InvoiceAction.CANCEL)
        assert can_apply(InvoiceStatus.SENT, InvoiceAction.RECORD_PAYMENT)
        assert not can_apply(InvoiceStatus.SENT, InvoiceAction.SEND)
        assert not can_apply(InvoiceStatus.SENT, InvoiceAction.UPDATE)
        assert not can_apply(InvoiceStatus.SENT, InvoiceAction.DELETE)

    @pytest.mark.parametrize("status", [InvoiceStatus.CANCELLED, InvoiceStatus.VOID])
    def test_terminal_statuses_reject_everything(self, status):
        for action in InvoiceAction:
            assert not can_apply(status, action)

    def test_rejection_carries_transition_context(self):
        invoice = Invoice(id=uuid4(), number="INV-00007", status=InvoiceStatus.SENT)

        with pytest.raises(InvalidTransitionError) as exc_info:
            ensure_action_allowed(invoice, InvoiceAction.SEND)

        assert isinstance(exc_info.value, BusinessRuleViolation)
        assert exc_info.value.context["current_status"] == "SENT"
        assert exc_info.value.context["action"] == "SEND"
        assert exc_info.value.message == "Solo se pueden enviar facturas en borrador"

    def test_resolve_payment_status(self):
        total = Decimal("238000.00")
        assert resolve_payment_status(Decimal("0"), total) == PaymentStatus.UNPAID
        assert resolve_payment_status(Decimal("100000"), total) == PaymentStatus.PARTIALLY_PAID
        assert resolve_payment_status(total, total) == PaymentStatus.PAID
        # Sin pagos una factura en cero sigue UNPAID
        assert resolve_payment_status(Decimal("0"), Decimal("0")) == PaymentStatus.UNPAID


# ===== TESTS DE NUMERACIÓN =====

class TestInvoiceNumbering:

    def test_format_and_parse(self):
        assert format_invoice_number(1) == "INV-00001"
        assert format_invoice_number(123456) == "INV-123456"
        assert parse_invoice_number("INV-00042") == 42
        assert parse_invoice_number("FAC-00042") is None

    def test_consecutive_numbers_per_tenant(self, db_session, company, other_company):
        sequencer = InvoiceNumberSequencer(db_session)

        assert sequencer.next_invoice_number(company.id) == "INV-00001"
        assert sequencer.next_invoice_number(company.id) == "INV-00002"
        assert sequencer.next_invoice_number(other_company.id) == "INV-00001"
        db_session.commit()

        assert sequencer.peek_next_invoice_number(company.id) == "INV-00003"

    def test_sequence_is_seeded_from_issued_numbers(self, db_session, company, admin_user):
        db_session.add(Invoice(tenant_id=company.id, user_id=admin_user.id, number="INV-00041"))
        db_session.commit()

        sequencer = InvoiceNumberSequencer(db_session)
        assert sequencer.peek_next_invoice_number(company.id) == "INV-00042"
        assert sequencer.next_invoice_number(company.id) == "INV-00042"

    def test_rolled_back_number_is_not_consumed(self, db_session, company):
        sequencer = InvoiceNumberSequencer(db_session)
        sequencer.next_invoice_number(company.id)
        db_session.commit()

        sequencer.next_invoice_number(company.id)
        db_session.rollback()

        assert sequencer.next_invoice_number(company.id) == "INV-00002"


# ===== TESTS DE SERVICIO =====

class TestInvoiceService:

    def test_item_amounts(self):
        item = InvoiceItemCreate(product_id=uuid4(), quantity=3, unit_price=Decimal("33333.33"), discount=Decimal("1000"))
        amounts = calculate_item_amounts(item)

        assert amounts["subtotal"] == Decimal("99999.99")
        assert amounts["tax"] == Decimal("19000.00")
        assert amounts["total"] == Decimal("117999.99")

    def test_discount_larger_than_amount_is_rejected(self):
        item = InvoiceItemCreate(product_id=uuid4(), quantity=1, unit_price=Decimal("100"), discount=Decimal("500"))
        with pytest.raises(BusinessRuleViolation):
            calculate_item_amounts(item)

    @pytest.mark.parametrize("field", ["unit_price", "tax_rate", "discount"])
    def test_money_and_rate_fields_allow_two_decimals(self, field):
        values = {"unit_price": Decimal("100"), field: Decimal("19.125")}
        with pytest.raises(ValueError):
            InvoiceItemCreate(product_id=uuid4(), quantity=1, **values)

    def test_fractional_tax_rate_matches_stored_item(self, db_session, company, admin_user, product):
        data = InvoiceCreate(items=[
            InvoiceItemCreate(product_id=product.id, quantity=1, unit_price=Decimal("100"), tax_rate=Decimal("19.13"))
        ])
        invoice = InvoiceService(db_session).create(company.id, data, admin_user.id)

        item = invoice.items[0]
        assert item.tax_rate == Decimal("19.13")
        assert item.tax == (item.subtotal * item.tax_rate / 100).quantize(Decimal("0.01"))

    def test_create_computes_totals_and_decrements_stock(self, db_session, create_invoice, product, second_product):
        invoice = create_invoice((product, 2, "100000"), (second_product, 1, "50000"))

        assert invoice.number == "INV-00001"
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.payment_status == PaymentStatus.UNPAID
        assert invoice.subtotal == Decimal("250000.00")
        assert invoice.tax == Decimal("47500.00")
        assert invoice.total == sum(item.total for item in invoice.items)
        for item in invoice.items:
            assert item.total == item.subtotal + item.tax - item.discount

        assert product.stock == 8
        assert second_product.stock == 4
        sales = db_session.query(StockMovement).filter(StockMovement.invoice_id == invoice.id).all()
        assert sorted(m.quantity for m in sales) == [-2, -1]
        assert all(m.type == MovementType.SALE for m in sales)

    def test_duplicate_lines_are_checked_together(self, db_session, create_invoice, product):
        # Cada línea por separado cabe en el stock, pero juntas no
        with pytest.raises(InsufficientStockError) as exc_info:
            create_invoice((product, 6, "100000"), (product, 6, "100000"))

        assert exc_info.value.context["requested"] == 12
        assert db_session.query(Invoice).count() == 0

    def test_failed_item_rolls_back_whole_invoice(self, db_session, monkeypatch, company, create_invoice, product):
        # Sin la verificación previa, el segundo descuento falla dentro de la transacción
        monkeypatch.setattr(InvoiceService, "_validate_products_and_stock", lambda self, tenant_id, items: None)

        with pytest.raises(InsufficientStockError):
            create_invoice((product, 6, "100000"), (product, 6, "100000"))

        assert db_session.query(Invoice).count() == 0
        assert db_session.query(InvoiceItem).count() == 0
        assert db_session.query(StockMovement).count() == 0
        assert product.stock == 10
        assert InvoiceService(db_session).preview_next_number(company.id) == "INV-00001"

    def test_quota_blocks_creation(self, db_session, company_factory, user_factory, product_factory):
        company = company_factory(name="Plan Básico", max_invoices_month=1)
        user = user_factory(company)
        product = product_factory(company)
        service = InvoiceService(db_session)
        data = InvoiceCreate(items=[InvoiceItemCreate(product_id=product.id, quantity=1, unit_price=Decimal("10"))])

        service.create(company.id, data, user.id)
        with pytest.raises(QuotaExceededError) as exc_info:
            service.create(company.id, data, user.id)

        assert exc_info.value.context == {"tenant_id": company.id, "used": 1, "limit": 1}
        assert product.stock == 9

    def test_update_only_notes_and_due_date(self, db_session, company, create_invoice, product):
        from stockbill.modules.invoices.schemas import InvoiceUpdate

        invoice = create_invoice((product, 1, "100000"))
        updated = InvoiceService(db_session).update(company.id, invoice.id, InvoiceUpdate(notes="Entregar el lunes"))

        assert updated.notes == "Entregar el lunes"
        assert updated.due_date is None
        assert updated.total == Decimal("119000.00")

    def test_cancel_keeps_invoice_and_history(self, db_session, company, admin_user, create_invoice, product):
        invoice = create_invoice((product, 4, "100000"))
        service = InvoiceService(db_session)
        service.send(company.id, invoice.id)

        cancelled = service.cancel(company.id, invoice.id, admin_user.id, reason="Cliente desistió")

        assert cancelled.status == InvoiceStatus.CANCELLED
        assert "[CANCELADA] Cliente desistió" in cancelled.notes
        assert product.stock == 10
        movements = db_session.query(StockMovement).filter(StockMovement.invoice_id == invoice.id).all()
        assert sorted((m.type, m.quantity) for m in movements) == [
            (MovementType.RETURN, 4), (MovementType.SALE, -4)
        ]

    def test_delete_is_inverse_of_create(self, db_session, company, create_invoice, product):
        invoice = create_invoice((product, 3, "100000"))
        invoice_id = invoice.id

        InvoiceService(db_session).delete(company.id, invoice_id)

        assert db_session.get(Invoice, invoice_id) is None
        assert db_session.query(InvoiceItem).count() == 0
        assert db_session.query(StockMovement).count() == 0
        assert product.stock == 10


# ===== TESTS DE API =====

class TestInvoicesAPI:

    def test_create_invoice_scenario(self, client, product, customer, admin_headers):
        response = client.post(
            "/invoices",
            json=invoice_payload((product, 2, 100000), customerId=str(customer.id), notes="Pedido web"),
            headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["number"] == "INV-00001"
        assert data["status"] == "DRAFT"
        assert data["paymentStatus"] == "UNPAID"
        assert data["subtotal"] == 200000
        assert data["tax"] == 38000
        assert data["discount"] == 0
        assert data["total"] == 238000
        assert data["balanceDue"] == 238000
        assert data["customer"]["name"] == "Cliente Uno"
        assert data["user"]["name"] == "Ana Gómez"
        assert data["items"][0]["taxRate"] == 19
        assert data["items"][0]["product"]["sku"] == "SKU-001"
        assert product.stock == 8

        movements = client.get(
            "/stock-movements", params={"invoiceId": data["id"]}, headers=admin_headers
        ).json()["data"]
        assert len(movements) == 1
        assert movements[0]["type"] == "SALE"
        assert movements[0]["quantity"] == -2

    def test_tax_rate_with_more_than_two_decimals_is_invalid(self, client, product, admin_headers):
        payload = invoice_payload((product, 1, 100))
        payload["items"][0]["taxRate"] = "19.125"

        response = client.post("/invoices", json=payload, headers=admin_headers)

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert product.stock == 10

    def test_create_with_insufficient_stock(self, client, product, admin_headers):
        response = client.post("/invoices", json=invoice_payload((product, 11, 100000)), headers=admin_headers)

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "INSUFFICIENT_STOCK"
        assert body["details"]["product_id"] == str(product.id)
        assert body["details"]["available"] == 10
        assert product.stock == 10
        assert client.get("/invoices/next-number", headers=admin_headers).json() == {"number": "INV-00001"}

    def test_create_with_unknown_product(self, client, company, product, admin_headers):
        payload = invoice_payload((product, 1, 100000))
        payload["items"].append({"productId": str(uuid4()), "quantity": 1, "unitPrice": 10})

        response = client.post("/invoices", json=payload, headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"
        assert product.stock == 10

    def test_create_with_customer_from_other_tenant(self, client, db_session, other_company, product, admin_headers):
        from stockbill.modules.customers.models import Customer

        foreign = Customer(tenant_id=other_company.id, name="Cliente ajeno")
        db_session.add(foreign)
        db_session.commit()

        response = client.post(
            "/invoices",
            json=invoice_payload((product, 1, 100000), customerId=str(foreign.id)),
            headers=admin_headers
        )

        assert response.status_code == 404
        assert product.stock == 10

    def test_create_requires_items(self, client, admin_headers):
        response = client.post("/invoices", json={"items": []}, headers=admin_headers)

        assert response.status_code == 422

    def test_quota_scenario(self, client, company_factory, user_factory, product_factory, auth_headers):
        company = company_factory(name="Plan Emprendedor", max_invoices_month=2)
        headers = auth_headers(user_factory(company), company)
        product = product_factory(company)

        for _ in range(2):
            assert client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=headers).status_code == 201

        response = client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=headers)

        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "QUOTA_EXCEEDED"
        assert body["details"]["used"] == 2
        assert body["details"]["limit"] == 2
        assert product.stock == 8
        assert client.get("/invoices/next-number", headers=headers).json()["number"] == "INV-00003"

    def test_send_twice_is_rejected(self, client, product, admin_headers):
        invoice_id = client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=admin_headers).json()["id"]

        first = client.patch(f"/invoices/{invoice_id}/send", headers=admin_headers)
        second = client.patch(f"/invoices/{invoice_id}/send", headers=admin_headers)

        assert first.status_code == 200
        assert first.json()["status"] == "SENT"
        assert second.status_code == 400
        assert second.json()["error"] == "INVALID_TRANSITION"
        assert second.json()["details"]["current_status"] == "SENT"
        assert client.get(f"/invoices/{invoice_id}", headers=admin_headers).json()["status"] == "SENT"

    def test_update_sent_invoice_is_rejected(self, client, product, admin_headers):
        invoice_id = client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=admin_headers).json()["id"]
        client.patch(f"/invoices/{invoice_id}/send", headers=admin_headers)

        response = client.patch(f"/invoices/{invoice_id}", json={"notes": "tarde"}, headers=admin_headers)

        assert response.status_code == 400

    def test_update_draft_invoice(self, client, product, admin_headers):
        invoice_id = client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=admin_headers).json()["id"]

        response = client.patch(
            f"/invoices/{invoice_id}", json={"notes": "Nueva nota", "dueDate": "2030-01-31"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["notes"] == "Nueva nota"
        assert response.json()["dueDate"] == "2030-01-31"

    def test_cancel_restores_stock(self, client, product, admin_headers):
        invoice_id = client.post("/invoices", json=invoice_payload((product, 3, 1000)), headers=admin_headers).json()["id"]
        assert product.stock == 7

        response = client.patch(
            f"/invoices/{invoice_id}/cancel", json={"reason": "Error de digitación"}, headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CANCELLED"
        assert product.stock == 10

        again = client.patch(f"/invoices/{invoice_id}/cancel", headers=admin_headers)
        assert again.status_code == 400
        assert product.stock == 10

    def test_delete_draft_restores_stock(self, client, product, admin_headers):
        invoice_id = client.post("/invoices", json=invoice_payload((product, 3, 1000)), headers=admin_headers).json()["id"]

        response = client.delete(f"/invoices/{invoice_id}", headers=admin_headers)

        assert response.status_code == 204
        assert product.stock == 10
        assert client.get(f"/invoices/{invoice_id}", headers=admin_headers).status_code == 404

    def test_delete_sent_invoice_is_rejected(self, client, product, admin_headers):
        invoice_id = client.post("/invoices", json=invoice_payload((product, 3, 1000)), headers=admin_headers).json()["id"]
        client.patch(f"/invoices/{invoice_id}/send", headers=admin_headers)

        response = client.delete(f"/invoices/{invoice_id}", headers=admin_headers)

        assert response.status_code == 400
        assert product.stock == 7

    def test_delete_draft_with_payments_is_rejected(self, client, product, admin_headers):
        invoice_id = client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=admin_headers).json()["id"]
        client.post("/payments", json={"invoiceId": invoice_id, "amount": 500, "method": "CASH"}, headers=admin_headers)

        response = client.delete(f"/invoices/{invoice_id}", headers=admin_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "BUSINESS_RULE_VIOLATION"
        assert product.stock == 9

    def test_list_invoices_with_filters(self, client, product, admin_headers):
        first = client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=admin_headers).json()
        client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=admin_headers)
        client.patch(f"/invoices/{first['id']}/send", headers=admin_headers)

        response = client.get("/invoices", params={"limit": 1}, headers=admin_headers)
        body = response.json()
        assert body["meta"] == {"total": 2, "page": 1, "limit": 1, "totalPages": 2}

        sent = client.get("/invoices", params={"status": "SENT"}, headers=admin_headers).json()
        assert [i["number"] for i in sent["data"]] == ["INV-00001"]

    def test_other_tenant_cannot_see_invoice(
        self, client, company, other_company, product, admin_headers, user_factory, auth_headers
    ):
        invoice_id = client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=admin_headers).json()["id"]
        outsider_headers = auth_headers(user_factory(other_company), other_company)

        assert client.get(f"/invoices/{invoice_id}", headers=outsider_headers).status_code == 404
        assert client.patch(f"/invoices/{invoice_id}/cancel", headers=outsider_headers).status_code == 404
        assert client.get("/invoices", headers=outsider_headers).json()["meta"]["total"] == 0
        assert product.stock == 9

    def test_user_without_membership_is_forbidden(self, client, company, other_company, user_factory, auth_headers):
        outsider = user_factory(other_company)

        response = client.get("/invoices", headers=auth_headers(outsider, company))

        assert response.status_code == 403

    def test_missing_token_is_unauthorized(self, client, company):
        response = client.get("/invoices", headers={"X-Company-ID": str(company.id)})

        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHORIZED"

    def test_context_token_with_invalid_tenant_is_unauthorized(self, client, admin_user):
        token = create_access_token({
            "sub": str(admin_user.id), "type": "context", "tenant_id": "nope", "user_role": "ADMIN"
        })

        response = client.get("/invoices", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401
        assert response.json()["error"] == "UNAUTHORIZED"

    def test_context_token_selects_tenant(self, client, company, admin_user):
        token = create_access_token({
            "sub": str(admin_user.id), "type": "context", "tenant_id": str(company.id), "user_role": "ADMIN"
        })

        response = client.get("/invoices", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200

    def test_invalid_company_header(self, client, admin_user, auth_headers, company):
        headers = auth_headers(admin_user, company)
        headers["X-Company-ID"] = "no-es-un-uuid"

        response = client.get("/invoices", headers=headers)

        assert response.status_code == 400

    def test_role_permissions(self, client, company, product, employee_user, manager_user, admin_headers, auth_headers):
        employee_headers = auth_headers(employee_user, company)
        manager_headers = auth_headers(manager_user, company)

        assert client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=employee_headers).status_code == 403
        assert client.get("/invoices", headers=employee_headers).status_code == 200

        created = client.post("/invoices", json=invoice_payload((product, 1, 1000)), headers=manager_headers)
        assert created.status_code == 201
        invoice_id = created.json()["id"]

        assert client.delete(f"/invoices/{invoice_id}", headers=manager_headers).status_code == 403
        assert client.patch(f"/invoices/{invoice_id}/cancel", headers=manager_headers).status_code == 403
        assert client.patch(f"/invoices/{invoice_id}/send", headers=manager_headers).status_code == 200

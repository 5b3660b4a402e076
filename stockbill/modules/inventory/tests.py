"""
Tests para el ledger de stock y los movimientos de inventario
"""
import pytest
from uuid import uuid4

from stockbill.core.exceptions import NotFoundError, InsufficientStockError, BusinessRuleViolation
from stockbill.modules.auth.models import UserRole
from stockbill.modules.inventory.models import StockMovement, MovementType
from stockbill.modules.inventory.service import StockLedger


class TestStockLedger:

    def test_adjust_decrements_stock_and_logs_movement(self, db_session, company, product, admin_user):
        movement = StockLedger(db_session).adjust(
            tenant_id=company.id,
            product_id=product.id,
            delta=-3,
            movement_type=MovementType.SALE,
            reason="Venta mostrador",
            user_id=admin_user.id
        )
        db_session.commit()

        assert product.stock == 7
        assert movement.quantity == -3
        assert movement.type == MovementType.SALE
        movements = db_session.query(StockMovement).filter(StockMovement.product_id == product.id).all()
        assert len(movements) == 1

    def test_adjust_to_exactly_zero_is_allowed(self, db_session, company, product):
        StockLedger(db_session).adjust(company.id, product.id, -10, MovementType.SALE, "Venta total")
        db_session.commit()

        assert product.stock == 0

    def test_adjust_below_zero_is_rejected(self, db_session, company, product):
        with pytest.raises(InsufficientStockError) as exc_info:
            StockLedger(db_session).adjust(company.id, product.id, -11, MovementType.SALE, "Venta")
        db_session.rollback()

        assert exc_info.value.context["available"] == 10
        assert exc_info.value.context["delta"] == -11
        assert product.stock == 10
        assert db_session.query(StockMovement).count() == 0

    def test_adjust_unknown_product(self, db_session, company):
        with pytest.raises(NotFoundError):
            StockLedger(db_session).adjust(company.id, uuid4(), 1, MovementType.ADJUSTMENT, "Conteo")
        db_session.rollback()

    def test_adjust_product_from_other_tenant_is_not_found(self, db_session, other_company, product):
        with pytest.raises(NotFoundError):
            StockLedger(db_session).adjust(other_company.id, product.id, -1, MovementType.SALE, "Venta")
        db_session.rollback()

        assert product.stock == 10

    def test_movements_are_immutable(self, db_session, company, product):
        movement = StockLedger(db_session).adjust(company.id, product.id, 2, MovementType.PURCHASE, "Compra")
        db_session.commit()

        movement.reason = "Otro motivo"
        with pytest.raises(BusinessRuleViolation):
            db_session.flush()
        db_session.rollback()

        assert movement.reason == "Compra"


class TestStockMovementsAPI:

    def test_create_adjustment(self, client, db_session, product, admin_headers):
        response = client.post(
            "/stock-movements",
            json={"productId": str(product.id), "quantity": 5, "reason": "Conteo físico"},
            headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["type"] == "ADJUSTMENT"
        assert data["quantity"] == 5
        assert data["product"]["sku"] == "SKU-001"
        assert product.stock == 15

    def test_negative_adjustment_beyond_stock_is_rejected(self, client, product, admin_headers):
        response = client.post(
            "/stock-movements",
            json={"productId": str(product.id), "quantity": -20, "reason": "Merma"},
            headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "INSUFFICIENT_STOCK"
        assert product.stock == 10

    def test_zero_adjustment_is_invalid(self, client, product, admin_headers):
        response = client.post(
            "/stock-movements",
            json={"productId": str(product.id), "quantity": 0, "reason": "Nada"},
            headers=admin_headers
        )

        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_employee_cannot_adjust_stock(self, client, company, product, user_factory, auth_headers):
        employee = user_factory(company, UserRole.EMPLOYEE)
        response = client.post(
            "/stock-movements",
            json={"productId": str(product.id), "quantity": 1, "reason": "Conteo"},
            headers=auth_headers(employee, company)
        )

        assert response.status_code == 403
        assert response.json()["error"] == "FORBIDDEN"

    def test_list_and_filter_movements(self, client, db_session, company, product, second_product, admin_headers):
        ledger = StockLedger(db_session)
        ledger.adjust(company.id, product.id, 4, MovementType.PURCHASE, "Compra")
        ledger.adjust(company.id, second_product.id, -1, MovementType.DAMAGED, "Producto dañado")
        db_session.commit()

        response = client.get("/stock-movements", headers=admin_headers)
        assert response.status_code == 200
        body = response.json()
        assert body["meta"] == {"total": 2, "page": 1, "limit": 10, "totalPages": 1}

        response = client.get("/stock-movements", params={"type": "DAMAGED"}, headers=admin_headers)
        data = response.json()["data"]
        assert len(data) == 1
        assert data[0]["productId"] == str(second_product.id)

    def test_get_movement_from_other_tenant_is_not_found(
        self, client, db_session, company, other_company, product, user_factory, auth_headers
    ):
        movement = StockLedger(db_session).adjust(company.id, product.id, 1, MovementType.PURCHASE, "Compra")
        db_session.commit()
        outsider = user_factory(other_company, UserRole.ADMIN)

        response = client.get(f"/stock-movements/{movement.id}", headers=auth_headers(outsider, other_company))

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_product_movement_history(self, client, db_session, company, product, second_product, admin_headers):
        ledger = StockLedger(db_session)
        ledger.adjust(company.id, product.id, 4, MovementType.PURCHASE, "Compra")
        ledger.adjust(company.id, product.id, -1, MovementType.DAMAGED, "Producto dañado")
        ledger.adjust(company.id, second_product.id, 2, MovementType.PURCHASE, "Compra")
        db_session.commit()

        response = client.get(f"/products/{product.id}/movements", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["meta"]["total"] == 2
        assert {m["productId"] for m in body["data"]} == {str(product.id)}

        damaged = client.get(f"/products/{product.id}/movements", params={"type": "DAMAGED"}, headers=admin_headers)
        assert damaged.json()["meta"]["total"] == 1

    def test_product_movement_history_unknown_product(self, client, company, admin_headers):
        response = client.get(f"/products/{uuid4()}/movements", headers=admin_headers)

        assert response.status_code == 404
        assert response.json()["message"] == "Producto no encontrado"

    def test_product_movement_history_from_other_tenant_is_not_found(
        self, client, db_session, company, other_company, product, user_factory, auth_headers
    ):
        StockLedger(db_session).adjust(company.id, product.id, 1, MovementType.PURCHASE, "Compra")
        db_session.commit()
        outsider = user_factory(other_company, UserRole.ADMIN)

        response = client.get(f"/products/{product.id}/movements", headers=auth_headers(outsider, other_company))

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

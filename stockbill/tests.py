"""
Tests de la aplicación: endpoints públicos y formato de errores
"""


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["message"] == "StockBill API is running"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "environment": "test"}


def test_error_envelope(client, admin_headers):
    response = client.get("/invoices/00000000-0000-0000-0000-000000000000", headers=admin_headers)

    assert response.status_code == 404
    assert response.json() == {
        "error": "NOT_FOUND",
        "message": "Factura no encontrada",
        "status_code": 404,
        "details": {"invoice_id": "00000000-0000-0000-0000-000000000000"},
    }


def test_validation_envelope(client, admin_headers):
    response = client.get("/invoices", params={"page": 0}, headers=admin_headers)

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "VALIDATION_ERROR"
    assert body["details"]["errors"][0]["field"] == "query.page"

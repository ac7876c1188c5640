"""Checkout, order retrieval and back-office order management."""

import base64

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from restaurante.models import Order, OrderLine, OrderStatus
from restaurante.services.order_service import OrderService

PNG = b"\x89PNG\r\n\x1a\nreceipt"
PNG_DATA_URL = "data:image/png;base64," + base64.b64encode(PNG).decode()


def cart_payload(catalog, **overrides):
    pastor, suadero, horchata = catalog["dishes"]
    payload = {
        "carrito": [
            {"id": pastor.id, "cantidad": 2},
            {"id": horchata.id, "cantidad": 1},
        ],
        "total": 71.0,
        "metodo_pago": "local",
        "cliente_ref": "mesa-4",
    }
    payload.update(overrides)
    return payload


async def count(session_maker, model, *criteria):
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    async with session_maker() as session:
        return await session.scalar(query)


# =============================================================================
# CHECKOUT
# =============================================================================

async def test_anonymous_order(client, catalog, session_maker):
    response = await client.post("/api/pedidos", json=cart_payload(catalog))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["client_ref"] == "mesa-4"
    assert body["user"] is None

    async with session_maker() as session:
        order = await session.get(Order, body["order_id"])
        assert order.status is OrderStatus.PENDING
        assert order.user_id is None
        assert float(order.total) == 71.0
    assert await count(session_maker, OrderLine, OrderLine.order_id == body["order_id"]) == 2


async def test_signed_in_order_with_receipt(client, catalog, shopper, shopper_headers, admin_headers):
    pastor, suadero, horchata = catalog["dishes"]
    payload = {
        "carrito": [
            {"id": pastor.id, "cantidad": 1},
            {"id": suadero.id, "cantidad": 2},
            {"id": horchata.id, "cantidad": 3},
        ],
        "total": 145.5,
        "metodo_pago": "transferencia",
        "comprobanteBase64": PNG_DATA_URL,
    }

    response = await client.post("/api/pedidos", json=payload, headers=shopper_headers)
    assert response.status_code == 201
    body = response.json()
    assert body["user"]["id"] == shopper.id
    assert body["client_ref"] is None
    order_id = body["order_id"]

    response = await client.get(f"/api/pedidos/{order_id}", headers=admin_headers)
    assert response.status_code == 200
    order = response.json()
    assert order["user_id"] == shopper.id
    assert order["payment_method"] == "transferencia"
    assert order["receipt"] == PNG_DATA_URL
    assert [(line["name"], line["quantity"]) for line in order["lines"]] == [
        ("Taco al pastor", 1),
        ("Taco de suadero", 2),
        ("Horchata", 3),
    ]

    response = await client.get(f"/api/pedidos/{order_id}/comprobante", headers=admin_headers)
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content == PNG


async def test_quantity_defaults_to_one(client, catalog):
    pastor = catalog["dishes"][0]
    payload = cart_payload(catalog, carrito=[{"dish_id": pastor.id}], total=25.5)

    response = await client.post("/api/pedidos", json=payload)
    assert response.status_code == 201


async def test_receipt_without_mime_is_rejected(client, catalog):
    payload = cart_payload(catalog, metodo_pago="transferencia", comprobanteBase64=base64.b64encode(PNG).decode())

    response = await client.post("/api/pedidos", json=payload)
    assert response.status_code == 400


async def test_receipt_with_declared_mime(client, catalog, admin_headers):
    payload = cart_payload(
        catalog,
        metodo_pago="transferencia",
        comprobanteBase64=base64.b64encode(b"%PDF-1.4").decode(),
        comprobanteMime="application/pdf",
    )
    order_id = (await client.post("/api/pedidos", json=payload)).json()["order_id"]

    response = await client.get(f"/api/pedidos/{order_id}/comprobante", headers=admin_headers)
    assert response.headers["content-type"] == "application/pdf"
    assert response.content == b"%PDF-1.4"


@pytest.mark.parametrize("overrides", [
    {"carrito": []},
    {"total": None},
    {"total": 0},
    {"metodo_pago": None},
    {"metodo_pago": "bitcoin"},
    {"metodo_pago": "transferencia"},
    {"cliente_ref": None},
    {"carrito": [{"id": 9999, "cantidad": 1}]},
    {"carrito": [{"cantidad": 1}]},
    {"carrito": [{"id": 1, "cantidad": 0}]},
    {"total": 50.0},
    {"metodo_pago": "transferencia", "comprobanteBase64": "%%%"},
])
async def test_rejected_checkouts_write_nothing(client, catalog, session_maker, overrides):
    response = await client.post("/api/pedidos", json=cart_payload(catalog, **overrides))

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert await count(session_maker, Order) == 0


async def test_order_cannot_have_two_parties(client, catalog, shopper_headers, session_maker):
    response = await client.post("/api/pedidos", json=cart_payload(catalog), headers=shopper_headers)

    assert response.status_code == 400
    assert await count(session_maker, Order) == 0


async def test_invalid_token_is_not_treated_as_anonymous(client, catalog):
    response = await client.post(
        "/api/pedidos",
        json=cart_payload(catalog),
        headers={"Authorization": "Bearer broken"},
    )
    assert response.status_code == 401


async def test_failure_between_header_and_lines_rolls_back(client, catalog, session_maker, monkeypatch):
    async def broken_insert(self, order, lines):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(OrderService, "_insert_lines", broken_insert)

    response = await client.post("/api/pedidos", json=cart_payload(catalog))

    assert response.status_code == 500
    assert response.json()["error"] == "Error al crear pedido"
    assert await count(session_maker, Order) == 0
    assert await count(session_maker, OrderLine) == 0


# =============================================================================
# BACK OFFICE
# =============================================================================

async def test_orders_listed_newest_first(client, catalog, admin_headers):
    ids = []
    for ref in ("a", "b", "c"):
        response = await client.post("/api/pedidos", json=cart_payload(catalog, cliente_ref=ref))
        ids.append(response.json()["order_id"])

    response = await client.get("/api/pedidos", headers=admin_headers)
    assert response.status_code == 200
    assert [o["id"] for o in response.json()] == list(reversed(ids))


@pytest.mark.parametrize("method, sent, stored", [
    ("put", "en_proceso", "en_proceso"),
    ("put", "pagado", "en_proceso"),
    ("patch", "completado", "realizado"),
    ("patch", "cancelado", "cancelado"),
])
async def test_status_updates(client, catalog, admin_headers, method, sent, stored):
    order_id = (await client.post("/api/pedidos", json=cart_payload(catalog))).json()["order_id"]

    response = await getattr(client, method)(
        f"/api/pedidos/{order_id}/estado", json={"estado": sent}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json() == {"id": order_id, "status": stored}

    order = (await client.get(f"/api/pedidos/{order_id}", headers=admin_headers)).json()
    assert order["status"] == stored


async def test_invalid_status(client, catalog, admin_headers):
    order_id = (await client.post("/api/pedidos", json=cart_payload(catalog))).json()["order_id"]

    response = await client.put(f"/api/pedidos/{order_id}/estado", json={"estado": "entregado"}, headers=admin_headers)
    assert response.status_code == 400


async def test_status_of_missing_order(client, admin_headers):
    response = await client.put("/api/pedidos/999/estado", json={"estado": "cancelado"}, headers=admin_headers)
    assert response.status_code == 404


async def test_delete_order_cascades_lines(client, catalog, admin_headers, session_maker):
    order_id = (await client.post("/api/pedidos", json=cart_payload(catalog))).json()["order_id"]

    response = await client.delete(f"/api/pedidos/{order_id}", headers=admin_headers)
    assert response.status_code == 200
    assert await count(session_maker, OrderLine, OrderLine.order_id == order_id) == 0

    response = await client.delete(f"/api/pedidos/{order_id}", headers=admin_headers)
    assert response.status_code == 404


async def test_missing_order_and_receipt(client, catalog, admin_headers):
    assert (await client.get("/api/pedidos/999", headers=admin_headers)).status_code == 404

    order_id = (await client.post("/api/pedidos", json=cart_payload(catalog))).json()["order_id"]
    response = await client.get(f"/api/pedidos/{order_id}/comprobante", headers=admin_headers)
    assert response.status_code == 404


@pytest.mark.parametrize("method, path", [
    ("get", "/api/pedidos"),
    ("get", "/api/pedidos/1"),
    ("get", "/api/pedidos/1/comprobante"),
    ("delete", "/api/pedidos/1"),
])
async def test_order_admin_requires_admin(client, shopper_headers, method, path):
    assert (await getattr(client, method)(path)).status_code == 401
    assert (await getattr(client, method)(path, headers=shopper_headers)).status_code == 403

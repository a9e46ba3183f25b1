from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import func, select

from licores.orders import crud as orders_crud
from licores.orders.models import Order

from conftest import register_client, login, run_db


def order_payload(product, customer_id=None, total="99999"):
    return {
        "customer_id": customer_id,
        "shipping_address": "Calle 80 # 20-15",
        "total_amount": total,
        "items": [
            {"product_id": product["id"], "quantity": 2, "price": "45000", "warehouse_id": "main"},
            {"product_id": product["id"], "quantity": 1, "price": "44000"},
        ],
    }


def create_order(client, headers, product, customer_id=None, total="99999"):
    r = client.post("/orders", json=order_payload(product, customer_id, total), headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_create_order_keeps_items_and_caller_total(client, office_headers, customer, product):
    profile, _ = customer
    order = create_order(client, office_headers, product, customer_id=profile["id"])

    assert order["status"] == "pendiente"
    assert order["customer_id"] == profile["id"]
    assert order["customer"]["name"] == "Carla Cliente"
    assert len(order["items"]) == 2
    # El total es el enviado, no la suma de los items (134000)
    assert Decimal(order["total_amount"]) == Decimal("99999")
    subtotals = sorted(Decimal(i["subtotal"]) for i in order["items"])
    assert subtotals == [Decimal("44000"), Decimal("90000")]
    assert {i["product_name"] for i in order["items"]} == {product["name"]}


def test_order_without_items_rejected(client, office_headers, customer):
    profile, _ = customer
    r = client.post(
        "/orders",
        json={"customer_id": profile["id"], "total_amount": "10", "items": []},
        headers=office_headers,
    )
    assert r.status_code == 422


def test_failed_items_leave_no_order(client, db_manager, office_headers, customer, product):
    profile, _ = customer
    payload = order_payload(product, profile["id"])
    payload["items"][1]["warehouse_id"] = "99"

    r = client.post("/orders", json=payload, headers=office_headers)
    assert r.status_code == 400
    assert r.json()["kind"] == "ORDER_ITEMS_FAILED"

    async def count_orders(db):
        return (await db.execute(select(func.count(Order.id)))).scalar()
    assert run_db(db_manager, count_orders) == 0


def test_customer_orders_are_own(client, office_headers, customer, product):
    profile, customer_headers = customer
    other = register_client(client, "otro@licores.co", name="Otro")

    # Un cliente no puede comprar a nombre de otro
    mine = create_order(client, customer_headers, product, customer_id=other["id"])
    assert mine["customer_id"] == profile["id"]
    theirs = create_order(client, office_headers, product, customer_id=other["id"])

    listing = client.get("/orders", headers=customer_headers).json()
    assert [o["id"] for o in listing["data"]] == [mine["id"]]

    everything = client.get("/orders", headers=office_headers).json()
    assert everything["meta"]["total"] == 2

    assert client.get(f"/orders/{theirs['id']}", headers=customer_headers).status_code == 403
    assert client.get(f"/orders/{mine['id']}", headers=customer_headers).status_code == 200


def test_orders_search_by_customer(client, office_headers, customer, product):
    profile, _ = customer
    create_order(client, office_headers, product, customer_id=profile["id"])

    found = client.get("/orders", params={"search": "carla"}, headers=office_headers).json()
    assert found["meta"]["total"] == 1
    assert client.get("/orders", params={"search": "nadie"}, headers=office_headers).json()["data"] == []


def test_status_update_assigns_delivery(client, office_headers, customer, courier, product):
    profile, _ = customer
    courier_profile, courier_headers = courier
    order = create_order(client, office_headers, product, customer_id=profile["id"])

    r = client.patch(
        f"/orders/{order['id']}/status",
        json={"status": "enviado", "delivery_person_id": courier_profile["id"]},
        headers=office_headers,
    )
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "enviado"
    assert r.json()["delivery_person_id"] == courier_profile["id"]
    assert r.json()["delivery_person_name"] == "Diego Domicilios"

    deliveries = client.get("/orders/deliveries", headers=courier_headers).json()
    assert len(deliveries) == 1
    assert deliveries[0]["order_id"] == order["id"]
    assert deliveries[0]["status"] == "enviado"
    assert deliveries[0]["actual_delivery"] is None

    # El domiciliario cierra su propia entrega
    r = client.patch(f"/orders/{order['id']}/status", json={"status": "entregado"}, headers=courier_headers)
    assert r.status_code == 200
    delivery = client.get("/orders/deliveries", headers=office_headers).json()[0]
    assert delivery["status"] == "entregado"
    assert delivery["actual_delivery"] is not None


def test_courier_cannot_update_unassigned_order(client, office_headers, customer, courier, product):
    profile, _ = customer
    _, courier_headers = courier
    order = create_order(client, office_headers, product, customer_id=profile["id"])

    r = client.patch(f"/orders/{order['id']}/status", json={"status": "entregado"}, headers=courier_headers)
    assert r.status_code == 403


def test_status_update_any_transition(client, office_headers, customer, product):
    profile, _ = customer
    order = create_order(client, office_headers, product, customer_id=profile["id"])

    for status in ("cancelado", "pendiente", "en proceso"):
        r = client.patch(f"/orders/{order['id']}/status", json={"status": status}, headers=office_headers)
        assert r.json()["status"] == status

    r = client.patch(f"/orders/{order['id']}/status", json={"status": "perdido"}, headers=office_headers)
    assert r.status_code == 422
    r = client.patch("/orders/no-existe/status", json={"status": "enviado"}, headers=office_headers)
    assert r.status_code == 404


def test_invoice_lifecycle(client, office_headers, customer, product):
    profile, customer_headers = customer
    order = create_order(client, office_headers, product, customer_id=profile["id"], total="119000")

    r = client.post("/orders/invoices", json={"order_id": order["id"], "due_days": 15}, headers=office_headers)
    assert r.status_code == 201, r.text
    invoice = r.json()
    assert invoice["invoice_number"] == "FAC-000001"
    assert invoice["status"] == "pendiente"
    assert Decimal(invoice["total_amount"]) == Decimal("119000")
    assert Decimal(invoice["tax_amount"]) == Decimal("19000")
    assert Decimal(invoice["subtotal"]) == Decimal("100000")
    assert date.fromisoformat(invoice["due_date"]) - date.fromisoformat(invoice["issue_date"]) == timedelta(days=15)

    r = client.post("/orders/invoices", json={"order_id": order["id"]}, headers=office_headers)
    assert r.status_code == 400
    assert r.json()["kind"] == "INVOICE_EXISTS"

    # El cliente ve su factura pero no puede pagarla desde aquí
    own = client.get("/orders/invoices", headers=customer_headers).json()
    assert [i["id"] for i in own] == [invoice["id"]]
    assert client.post(f"/orders/invoices/{invoice['id']}/pay", headers=customer_headers).status_code == 403

    r = client.post(f"/orders/invoices/{invoice['id']}/pay", headers=office_headers)
    assert r.status_code == 200
    assert r.json()["status"] == "pagada"
    assert r.json()["paid_at"] is not None

    listed = client.get("/orders/invoices", params={"status": "pagada"}, headers=office_headers).json()
    assert [i["id"] for i in listed] == [invoice["id"]]


def test_invoice_numbers_are_sequential(client, office_headers, customer, product):
    profile, _ = customer
    numbers = []
    for _ in range(2):
        order = create_order(client, office_headers, product, customer_id=profile["id"])
        r = client.post("/orders/invoices", json={"order_id": order["id"]}, headers=office_headers)
        numbers.append(r.json()["invoice_number"])
    assert numbers == ["FAC-000001", "FAC-000002"]


def test_invoice_for_missing_or_cancelled_order(client, office_headers, customer, product):
    profile, _ = customer
    r = client.post("/orders/invoices", json={"order_id": "no-existe"}, headers=office_headers)
    assert r.status_code == 404
    assert r.json()["kind"] == "ORDER_NOT_FOUND"

    order = create_order(client, office_headers, product, customer_id=profile["id"])
    client.patch(f"/orders/{order['id']}/status", json={"status": "cancelado"}, headers=office_headers)
    r = client.post("/orders/invoices", json={"order_id": order["id"]}, headers=office_headers)
    assert r.json()["kind"] == "INVALID_STATUS"


def test_invoice_pdf(client, office_headers, customer, product):
    profile, customer_headers = customer
    order = create_order(client, office_headers, product, customer_id=profile["id"])
    invoice = client.post("/orders/invoices", json={"order_id": order["id"]}, headers=office_headers).json()

    r = client.get(f"/orders/invoices/{invoice['id']}/pdf", headers=customer_headers)
    assert r.status_code == 200
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")

    other = register_client(client, "otro@licores.co")
    other_headers = login(client, "otro@licores.co")
    assert client.get(f"/orders/invoices/{invoice['id']}/pdf", headers=other_headers).status_code == 403
    assert other["role"] == "cliente"


def test_mark_overdue_invoices(client, db_manager, office_headers, customer, product):
    profile, _ = customer
    order = create_order(client, office_headers, product, customer_id=profile["id"])
    invoice = client.post("/orders/invoices", json={"order_id": order["id"], "due_days": 10}, headers=office_headers).json()

    # Aún no vence
    assert client.post("/orders/invoices/mark-overdue", headers=office_headers).json() == {"updated": 0}

    async def mark(db):
        return await orders_crud.mark_overdue_invoices(db, today=date.today() + timedelta(days=11))
    assert run_db(db_manager, mark) == 1

    listed = client.get("/orders/invoices", headers=office_headers).json()
    assert listed[0]["status"] == "vencida"

    # Una factura vencida se puede pagar
    r = client.post(f"/orders/invoices/{invoice['id']}/pay", headers=office_headers)
    assert r.json()["status"] == "pagada"


def test_order_for_inactive_product_rejected(client, db_manager, admin_headers, office_headers, customer, product):
    profile, _ = customer
    assert client.delete(f"/inventory/products/{product['id']}", headers=admin_headers).status_code == 204

    r = client.post("/orders", json=order_payload(product, profile["id"]), headers=office_headers)
    assert r.status_code == 404
    assert r.json()["kind"] == "PRODUCT_NOT_FOUND"

    payload = order_payload(product, profile["id"])
    payload["items"][0]["product_id"] = "producto-inexistente"
    assert client.post("/orders", json=payload, headers=office_headers).json()["kind"] == "PRODUCT_NOT_FOUND"

    async def count_orders(db):
        return (await db.execute(select(func.count(Order.id)))).scalar()
    assert run_db(db_manager, count_orders) == 0


def test_delivery_person_must_be_courier(client, office_headers, customer, product):
    profile, _ = customer
    order = create_order(client, office_headers, product, customer_id=profile["id"])

    r = client.patch(
        f"/orders/{order['id']}/status",
        json={"status": "enviado", "delivery_person_id": profile["id"]},
        headers=office_headers,
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "INVALID_DELIVERY_PERSON"

    unchanged = client.get(f"/orders/{order['id']}", headers=office_headers).json()
    assert unchanged["status"] == "pendiente"
    assert unchanged["delivery_person_id"] is None
    assert client.get("/orders/deliveries", headers=office_headers).json() == []


def test_cancelled_order_cancels_invoice(client, office_headers, customer, product):
    profile, _ = customer
    order = create_order(client, office_headers, product, customer_id=profile["id"])
    invoice = client.post("/orders/invoices", json={"order_id": order["id"]}, headers=office_headers).json()

    r = client.patch(f"/orders/{order['id']}/status", json={"status": "cancelado"}, headers=office_headers)
    assert r.status_code == 200

    listed = client.get("/orders/invoices", params={"status": "cancelada"}, headers=office_headers).json()
    assert [i["id"] for i in listed] == [invoice["id"]]

    r = client.post(f"/orders/invoices/{invoice['id']}/pay", headers=office_headers)
    assert r.status_code == 400
    assert r.json()["kind"] == "INVALID_STATUS"


def test_cancelling_paid_order_keeps_invoice_paid(client, office_headers, customer, product):
    profile, _ = customer
    order = create_order(client, office_headers, product, customer_id=profile["id"])
    invoice = client.post("/orders/invoices", json={"order_id": order["id"]}, headers=office_headers).json()
    client.post(f"/orders/invoices/{invoice['id']}/pay", headers=office_headers)

    client.patch(f"/orders/{order['id']}/status", json={"status": "cancelado"}, headers=office_headers)
    listed = client.get("/orders/invoices", headers=office_headers).json()
    assert listed[0]["status"] == "pagada"

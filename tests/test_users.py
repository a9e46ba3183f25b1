from conftest import create_staff, login, register_client


def test_get_all_users_empty_for_non_admin(client, admin_headers, customer, office_headers):
    _, customer_headers = customer

    r = client.get("/users", headers=customer_headers)
    assert r.status_code == 200
    assert r.json() == []

    assert client.get("/users", headers=office_headers).json() == []


def test_get_all_users_for_admin(client, admin_headers, customer, courier):
    r = client.get("/users", headers=admin_headers)
    assert r.status_code == 200
    emails = {u["email"] for u in r.json()}
    assert emails == {"admin@licores.co", "cliente@licores.co", "domicilios@licores.co"}


def test_only_admin_creates_staff(client, customer):
    _, customer_headers = customer
    r = client.post(
        "/users",
        params={"role": "bodeguero"},
        json={"email": "x@licores.co", "name": "X", "password": "clave-segura", "address": "-"},
        headers=customer_headers,
    )
    assert r.status_code == 403


def test_customers_and_delivery_people(client, admin_headers, office_headers, customer, courier):
    customers = client.get("/orders/customers", headers=office_headers).json()
    assert [c["email"] for c in customers] == ["cliente@licores.co"]

    people = client.get("/orders/delivery-people", headers=office_headers).json()
    assert [p["email"] for p in people] == ["domicilios@licores.co"]


def test_user_updates_own_profile(client, customer):
    profile, headers = customer
    r = client.patch(f"/users/{profile['id']}", json={"phone": "3001234567"}, headers=headers)
    assert r.status_code == 200
    assert r.json()["phone"] == "3001234567"
    assert r.json()["role"] == "cliente"


def test_user_cannot_change_own_role(client, customer):
    profile, headers = customer
    r = client.patch(f"/users/{profile['id']}", json={"role": "admin"}, headers=headers)
    assert r.status_code == 403
    assert r.json()["kind"] == "FORBIDDEN"


def test_admin_changes_role(client, admin_headers, customer):
    profile, customer_headers = customer
    assert client.get("/orders/customers", headers=customer_headers).status_code == 403

    r = client.patch(f"/users/{profile['id']}", json={"role": "oficinista"}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["role"] == "oficinista"

    # El rol nuevo aplica de inmediato, sin volver a ingresar
    assert client.get("/orders/customers", headers=customer_headers).status_code == 200
    assert client.get("/auth/me", headers=customer_headers).json()["role"] == "oficinista"


def test_user_cannot_read_other_profiles(client, admin_headers):
    a = register_client(client, "ana@licores.co", name="Ana")
    register_client(client, "beto@licores.co", name="Beto")
    beto = login(client, "beto@licores.co")

    assert client.get(f"/users/{a['id']}", headers=beto).status_code == 403
    assert client.get(f"/users/{a['id']}", headers=admin_headers).json()["name"] == "Ana"
    assert client.get("/users/no-existe", headers=admin_headers).status_code == 404


def test_staff_created_with_role(client, admin_headers):
    user = create_staff(client, admin_headers, "bodeguero", "bruno@licores.co")
    assert user["role"] == "bodeguero"


def test_null_fields_leave_profile_unchanged(client, customer):
    profile, headers = customer
    r = client.patch(f"/users/{profile['id']}", json={"name": None, "phone": "3109876543"}, headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["name"] == "Carla Cliente"
    assert r.json()["phone"] == "3109876543"

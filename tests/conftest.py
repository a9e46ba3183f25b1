"""
Fixtures comunes: una base SQLite nueva por prueba y clientes HTTP
autenticados con cada rol.
"""
import os

# Debe quedar configurado antes de importar la aplicación
os.environ["ENV_MODE"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ADMIN_EMAIL"] = "admin@licores.co"
os.environ["ADMIN_PASSWORD"] = "admin-secreto"

import asyncio

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import NullPool

from licores_common.database import DatabaseManager
from licores.main import create_app

ADMIN_EMAIL = os.environ["ADMIN_EMAIL"]
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]
DEFAULT_PASSWORD = "clave-segura"


def login(client, email, password=DEFAULT_PASSWORD):
    """Ingresa y devuelve los headers de autorización."""
    r = client.post("/auth/login", data={"username": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def create_staff(client, admin_headers, role, email, name=None, password=DEFAULT_PASSWORD):
    r = client.post(
        "/users",
        params={"role": role},
        json={"email": email, "name": name or email.split("@")[0], "password": password, "address": "Bogotá"},
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    return r.json()


def register_client(client, email, name="Cliente", address="Calle 10 # 5-20", password=DEFAULT_PASSWORD):
    r = client.post(
        "/auth/register",
        json={"email": email, "name": name, "password": password, "address": address},
    )
    assert r.status_code == 201, r.text
    return r.json()


def run_db(db_manager, work):
    """Ejecuta `work(db)` con una sesión propia, fuera del cliente HTTP."""
    async def _run():
        async with db_manager.session_factory() as db:
            return await work(db)
    return asyncio.run(_run())


@pytest.fixture
def db_manager(tmp_path):
    return DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'licores_test.db'}", poolclass=NullPool)


@pytest.fixture
def client(db_manager):
    app = create_app(db_manager)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers(client):
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture
def office_headers(client, admin_headers):
    create_staff(client, admin_headers, "oficinista", "oficina@licores.co", name="Olga Oficina")
    return login(client, "oficina@licores.co")


@pytest.fixture
def warehouse_headers(client, admin_headers):
    create_staff(client, admin_headers, "bodeguero", "bodega@licores.co", name="Bruno Bodega")
    return login(client, "bodega@licores.co")


@pytest.fixture
def courier(client, admin_headers):
    """Domiciliario: (perfil, headers)."""
    user = create_staff(client, admin_headers, "domiciliario", "domicilios@licores.co", name="Diego Domicilios")
    return user, login(client, "domicilios@licores.co")


@pytest.fixture
def customer(client):
    """Cliente registrado: (perfil, headers)."""
    user = register_client(client, "cliente@licores.co", name="Carla Cliente")
    return user, login(client, "cliente@licores.co")


@pytest.fixture
def product(client, admin_headers):
    r = client.post(
        "/inventory/products",
        json={
            "sku": "AGU-750",
            "name": "Aguardiente Antioqueño 750ml",
            "category": "Aguardiente",
            "brand": "FLA",
            "price": "45000",
            "cost": "30000",
            "min_stock": 5,
            "stock": {"main": 20, "1": 3},
        },
        headers=admin_headers,
    )
    assert r.status_code == 201, r.text
    return r.json()

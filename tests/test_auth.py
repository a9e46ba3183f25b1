from datetime import datetime, timedelta

from sqlalchemy import func, select, update

from licores.auth import crud as auth_crud
from licores.auth import services as auth_services
from licores.auth.models import AuthSession
from licores_common import security

from conftest import ADMIN_EMAIL, ADMIN_PASSWORD, DEFAULT_PASSWORD, login, register_client, run_db


def count_sessions(db_manager):
    async def work(db):
        return (await db.execute(select(func.count(AuthSession.id)))).scalar()
    return run_db(db_manager, work)


def test_invalid_sign_in_creates_no_session(client, db_manager):
    register_client(client, "carla@licores.co")
    before = count_sessions(db_manager)

    r = client.post("/auth/login", data={"username": "carla@licores.co", "password": "equivocada"})
    assert r.status_code == 401
    assert r.json()["kind"] == "INVALID_CREDENTIALS"
    assert r.json()["detail"] == "Credenciales inválidas. Verifica tu email y contraseña."

    r = client.post("/auth/login", data={"username": "nadie@licores.co", "password": "equivocada"})
    assert r.status_code == 401
    assert r.json()["kind"] == "INVALID_CREDENTIALS"

    assert count_sessions(db_manager) == before


def test_valid_sign_in_resolves_profile(client):
    profile = register_client(client, "carla@licores.co", name="Carla", address="Cra 7 # 45-10")

    r = client.post("/auth/login", data={"username": "carla@licores.co", "password": DEFAULT_PASSWORD})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["id"] == profile["id"]
    assert body["user"]["role"] == "cliente"

    headers = {"Authorization": f"Bearer {body['access_token']}"}
    session = client.get("/auth/session", headers=headers).json()
    assert session["session"]["user_id"] == profile["id"]
    assert session["user"]["email"] == "carla@licores.co"

    me = client.get("/auth/me", headers=headers).json()
    assert me["name"] == "Carla"
    assert me["last_login"] is not None


def test_register_fixes_role_to_cliente(client):
    profile = register_client(client, "carla@licores.co")
    assert profile["role"] == "cliente"


def test_register_duplicate_email(client):
    register_client(client, "carla@licores.co")
    r = client.post(
        "/auth/register",
        json={"email": "carla@licores.co", "name": "Otra", "password": DEFAULT_PASSWORD, "address": "x"},
    )
    assert r.status_code == 400
    assert r.json()["kind"] == "USER_ALREADY_REGISTERED"
    assert r.json()["detail"] == "Este email ya está registrado."


def test_session_without_token_is_empty(client):
    r = client.get("/auth/session")
    assert r.status_code == 200
    assert r.json() == {"session": None, "user": None}

    r = client.get("/auth/session", headers={"Authorization": "Bearer basura"})
    assert r.json() == {"session": None, "user": None}


def test_sign_out_revokes_session(client):
    register_client(client, "carla@licores.co")
    headers = login(client, "carla@licores.co")
    assert client.get("/auth/me", headers=headers).status_code == 200

    assert client.post("/auth/logout", headers=headers).status_code == 204

    assert client.get("/auth/me", headers=headers).status_code == 401
    assert client.get("/auth/session", headers=headers).json()["session"] is None


def test_protected_endpoint_requires_token(client):
    assert client.get("/auth/me").status_code == 401


def test_lockout_after_repeated_failures(client):
    register_client(client, "carla@licores.co")
    for _ in range(auth_services.MAX_LOGIN_ATTEMPTS):
        r = client.post("/auth/login", data={"username": "carla@licores.co", "password": "equivocada"})
        assert r.status_code == 401

    r = client.post("/auth/login", data={"username": "carla@licores.co", "password": DEFAULT_PASSWORD})
    assert r.status_code == 429
    assert r.json()["kind"] == "RATE_LIMITED"


def test_email_confirmation_required(client, monkeypatch):
    monkeypatch.setattr(auth_services, "REQUIRE_EMAIL_CONFIRMATION", True)
    profile = register_client(client, "carla@licores.co")

    r = client.post("/auth/login", data={"username": "carla@licores.co", "password": DEFAULT_PASSWORD})
    assert r.status_code == 403
    assert r.json()["kind"] == "EMAIL_NOT_CONFIRMED"
    assert r.json()["detail"] == "Email no confirmado. Verifica tu bandeja de entrada."

    admin = login(client, ADMIN_EMAIL, ADMIN_PASSWORD)
    assert client.post(f"/auth/confirm/{profile['id']}", headers=admin).status_code == 204

    login(client, "carla@licores.co")


def test_profile_write_failure_keeps_identity(client, monkeypatch):
    async def broken_create_user(db, user_data):
        raise RuntimeError("tabla users no disponible")

    monkeypatch.setattr(auth_crud, "create_user", broken_create_user)
    r = client.post(
        "/auth/register",
        json={"email": "huerfano@licores.co", "name": "Hugo", "password": DEFAULT_PASSWORD, "address": "Calle 1"},
    )
    assert r.status_code == 500
    assert r.json()["kind"] == "PROFILE_WRITE_FAILED"
    monkeypatch.undo()

    # La identidad quedó creada y el perfil se resuelve desde sus metadatos
    headers = login(client, "huerfano@licores.co")
    me = client.get("/auth/me", headers=headers).json()
    assert me["name"] == "Hugo"
    assert me["role"] == "cliente"
    assert me["address"] == "Calle 1"


def test_sign_in_survives_last_login_failure(client, monkeypatch):
    profile = register_client(client, "carla@licores.co", name="Carla")

    async def broken_set_last_login(db, user_id):
        raise RuntimeError("bloqueo en users")

    monkeypatch.setattr(auth_crud, "set_last_login", broken_set_last_login)
    r = client.post("/auth/login", data={"username": "carla@licores.co", "password": DEFAULT_PASSWORD})
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["user"]["id"] == profile["id"]
    assert body["user"]["name"] == "Carla"
    assert body["user"]["last_login"] is None
    monkeypatch.undo()

    # La sesión abierta antes del fallo sigue siendo válida
    headers = {"Authorization": f"Bearer {body['access_token']}"}
    me = client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == "carla@licores.co"


def test_sign_out_twice_is_harmless(client, db_manager):
    register_client(client, "carla@licores.co")
    headers = login(client, "carla@licores.co")
    session_id = client.get("/auth/session", headers=headers).json()["session"]["id"]

    async def sign_out_twice(db):
        first = await auth_services.AuthService.sign_out(db, session_id)
        revoked_at = (await auth_crud.get_session(db, session_id)).revoked_at
        second = await auth_services.AuthService.sign_out(db, session_id)
        session = await auth_crud.get_session(db, session_id)
        await db.refresh(session)
        return first, second, revoked_at, session.revoked_at

    first, second, revoked_at, revoked_again = run_db(db_manager, sign_out_twice)
    assert first is True and second is True
    assert revoked_at is not None
    # El segundo cierre no mueve la marca del primero
    assert revoked_again == revoked_at
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_expired_session_row_is_empty(client, db_manager):
    register_client(client, "carla@licores.co")
    headers = login(client, "carla@licores.co")
    token = headers["Authorization"].split()[1]

    async def expire_sessions(db):
        await db.execute(update(AuthSession).values(expires_at=datetime.utcnow() - timedelta(minutes=1)))
        await db.commit()
    run_db(db_manager, expire_sessions)

    async def current(db):
        return await auth_services.AuthService.get_current_session(db, token)
    assert run_db(db_manager, current) == (None, None)
    assert client.get("/auth/session", headers=headers).json() == {"session": None, "user": None}
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_token_without_session_id_is_empty(client, db_manager):
    profile = register_client(client, "carla@licores.co")
    token = security.create_access_token(
        data={"sub": "carla@licores.co", "role": "cliente", "user_id": profile["id"]},
    )

    async def current(db):
        return await auth_services.AuthService.get_current_session(db, token)
    assert run_db(db_manager, current) == (None, None)
    headers = {"Authorization": f"Bearer {token}"}
    assert client.get("/auth/session", headers=headers).json() == {"session": None, "user": None}

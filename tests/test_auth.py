from datetime import timedelta

import main
import security
from conftest import auth_headers


def register(client, **overrides):
    body = {"email": "esi@example.com", "password": "walnut2024", "fullName": "Esi Owusu"}
    body.update(overrides)
    return client.post("/auth/register", json=body)


def test_register_creates_customer(client):
    resp = register(client, email="Esi@Example.com")
    assert resp.status_code == 201
    body = resp.json()
    assert body["email"] == "esi@example.com"
    assert body["role"] == "customer"
    assert "password_hash" not in body


def test_register_duplicate_email(client):
    register(client)
    resp = register(client)
    assert resp.status_code == 400
    assert resp.json()["detail"] == "User already exists"


def test_register_rejects_weak_password(client):
    resp = register(client, password="onlyletters")
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Password must contain a number"


def test_register_rejects_bad_email(client):
    assert register(client, email="esi-at-example").status_code == 400


def test_login_returns_token_and_cookie(client):
    register(client)
    resp = client.post("/auth/login", json={"email": "esi@example.com", "password": "walnut2024"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["token_type"] == "bearer"
    assert body["user"]["email"] == "esi@example.com"
    assert "token=" in resp.headers["set-cookie"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
    assert me.json()["full_name"] == "Esi Owusu"


def test_login_wrong_password(client):
    register(client)
    resp = client.post("/auth/login", json={"email": "esi@example.com", "password": "wrong-pass1"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid credentials"


def test_login_is_rate_limited(client, monkeypatch):
    monkeypatch.setattr(main.login_limiter, "max_requests", 3)
    codes = [
        client.post("/auth/login", json={"email": "esi@example.com", "password": "x"}).status_code for _ in range(4)
    ]
    assert codes == [401, 401, 401, 429]


def test_me_requires_credentials(client):
    assert client.get("/auth/me").status_code == 401


def test_expired_token_rejected(client, customer):
    token = security.create_access_token({"sub": str(customer.id), "role": "customer"}, timedelta(minutes=-1))
    assert client.get("/auth/me", headers={"Authorization": f"Bearer {token}"}).status_code == 401


def test_decode_user_id_never_raises():
    assert security.decode_user_id(None) is None
    assert security.decode_user_id("garbage") is None
    assert security.decode_user_id(security.create_access_token({"role": "customer"})) is None


def test_admin_routes_need_admin_role(client, customer):
    resp = client.get("/admin/orders", headers=auth_headers(customer))
    assert resp.status_code == 403


def test_seed_admin_only_once(client):
    body = {"email": "owner@example.com", "password": "owner2024", "fullName": "Owner"}
    assert client.post("/auth/seed-admin", json=body).status_code == 201
    again = client.post("/auth/seed-admin", json=dict(body, email="other@example.com"))
    assert again.status_code == 403

    login = client.post("/auth/login", json={"email": "owner@example.com", "password": "owner2024"})
    assert login.json()["user"]["role"] == "admin"
    assert "adminToken=" in login.headers["set-cookie"]

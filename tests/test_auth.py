from datetime import timedelta

import pytest
from jose import JWTError

from medicab.auth import TokenService, get_password_hash, verify_password
from conftest import bearer


def test_password_hash_round_trip():
    hashed = get_password_hash("s3cret")
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)


def test_token_round_trip_keeps_subject_and_role():
    tokens = TokenService("secret")
    payload = tokens.verify(tokens.issue(7, "clinician"))
    assert payload["user"] == 7
    assert payload["grade"] == "clinician"
    assert payload["exp"] - payload["iat"] == 6 * 3600


def test_token_without_role_defaults_to_user():
    tokens = TokenService("secret")
    assert tokens.verify(tokens.issue(1, None))["grade"] == "user"


def test_expired_token_fails_verification_but_can_be_inspected():
    tokens = TokenService("secret")
    token = tokens.issue(3, "admin", expires_delta=timedelta(hours=-7))
    with pytest.raises(JWTError):
        tokens.verify(token)
    assert tokens.inspect(token)["grade"] == "admin"


def test_tampered_signature_fails():
    tokens = TokenService("secret")
    token = tokens.issue(3, "user")
    signing_input, signature = token.rsplit(".", 1)
    tampered = f"{signing_input}.{'B' if signature[0] == 'A' else 'A'}{signature[1:]}"
    with pytest.raises(JWTError):
        tokens.verify(tampered)
    with pytest.raises(JWTError):
        TokenService("other-secret").inspect(token)


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        TokenService("")


def test_login_returns_token(client, admin, tokens):
    response = client.post("/users/login", json={"username": "admin", "password": "secret"})
    assert response.status_code == 200
    body = response.json()
    assert body["user"]["username"] == "admin"
    payload = tokens.verify(body["token"])
    assert payload["user"] == admin.id
    assert payload["grade"] == "admin"


def test_login_with_wrong_password(client, admin):
    response = client.post("/users/login", json={"username": "admin", "password": "nope"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid credentials"}


def test_login_writes_audit_line(client, admin, settings):
    client.post("/users/login", json={"username": "admin", "password": "secret"})
    with open(f"{settings.log_dir}/audit.log") as audit:
        assert "logged in" in audit.read()


def test_missing_token_is_401(client):
    response = client.get("/users/me")
    assert response.status_code == 401
    assert response.json() == {"error": "Missing token"}


def test_invalid_token_is_403(client):
    response = client.get("/users/me", headers=bearer("not-a-token"))
    assert response.status_code == 403
    assert response.json() == {"error": "Invalid token"}


def test_expired_token_is_403(client, staff, tokens):
    token = tokens.issue(staff.id, "user", expires_delta=timedelta(seconds=-1))
    response = client.get("/users/isverify", headers=bearer(token))
    assert response.status_code == 403


def test_me(client, clinician_headers):
    response = client.get("/users/me", headers=clinician_headers)
    assert response.status_code == 200
    assert response.json()["role"] == "clinician"


def test_register_requires_admin(client, user_headers):
    response = client.post(
        "/users/register", json={"username": "new", "password": "pw"}, headers=user_headers
    )
    assert response.status_code == 403
    assert response.json()["error"] == "Admin access required."


def test_admin_registers_and_new_user_logs_in(client, admin_headers):
    response = client.post(
        "/users/register",
        json={"username": "nurse", "password": "pw", "role": "clinician"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    assert response.json()["insert_id"]

    login = client.post("/users/login", json={"username": "nurse", "password": "pw"})
    assert login.status_code == 200


def test_register_rejects_unknown_role_and_duplicates(client, admin_headers):
    bad_role = client.post(
        "/users/register", json={"username": "x", "password": "pw", "role": "root"}, headers=admin_headers
    )
    assert bad_role.status_code == 400

    duplicate = client.post(
        "/users/register", json={"username": "admin", "password": "pw"}, headers=admin_headers
    )
    assert duplicate.status_code == 400
    assert duplicate.json() == {"error": "Username already exists"}


def test_admin_edits_and_deletes_user(client, admin_headers, staff):
    edit = client.put(f"/users/{staff.id}", json={"role": "clinician"}, headers=admin_headers)
    assert edit.status_code == 200

    users = client.get("/users/", headers=admin_headers).json()
    assert {u["username"]: u["role"] for u in users}["desk"] == "clinician"

    delete = client.delete(f"/users/{staff.id}", headers=admin_headers)
    assert delete.status_code == 200
    assert client.delete(f"/users/{staff.id}", headers=admin_headers).status_code == 404


def test_request_validation_error_shape(client):
    response = client.post("/users/login", json={"username": "admin"})
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request data"
    assert isinstance(body["detail"], list)

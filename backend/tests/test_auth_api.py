from __future__ import annotations

import pytest

from tests.testkit import ApiError, login, register_user


def test_register_login_and_current_user(api, identity_factory):
    user = register_user(api, identity_factory, prefix="auth")
    assert user["user"]["role"] == "E-BASIC"
    assert user["user"]["cpf"] == user["cpf"]

    me = api.call("GET", "/user", token=user["token"])
    assert me["id"] == user["id"]
    assert me["email"] == user["email"]
    assert "password_hash" not in me


def test_register_rejects_duplicates(api, identity_factory):
    user = register_user(api, identity_factory, prefix="dup")

    with pytest.raises(ApiError) as same_cpf:
        register_user(api, identity_factory, prefix="dup_cpf", cpf=user["cpf"])
    assert same_cpf.value.status_code == 400
    assert "CPF" in same_cpf.value.payload["detail"]

    with pytest.raises(ApiError) as same_email:
        api.call(
            "POST",
            "/register",
            body={
                "username": identity_factory.next_username("dup"),
                "email": user["email"],
                "password": "Senha_123",
                "cpf": identity_factory.next_cpf(),
            },
        )
    assert same_email.value.status_code == 400


def test_login_with_wrong_password(api, identity_factory):
    user = register_user(api, identity_factory, prefix="badpwd")
    with pytest.raises(ApiError) as err:
        login(api, user["email"], "errada_123")
    assert err.value.status_code == 400


def test_second_login_invalidates_first_session(api, identity_factory):
    user = register_user(api, identity_factory, prefix="single")
    first = user["token"]
    second = login(api, user["email"], user["password"])

    assert api.call("GET", "/user", token=second)["id"] == user["id"]
    with pytest.raises(ApiError) as replaced:
        api.call("GET", "/user", token=first)
    assert replaced.value.status_code == 401
    assert "outro dispositivo" in replaced.value.payload["detail"]

    status = api.call("GET", "/session-status", token=first)
    assert status["authenticated"] is False
    status = api.call("GET", "/session-status", token=second)
    assert status["authenticated"] is True
    assert status["user_id"] == user["id"]


def test_logout_revokes_session(api, identity_factory):
    user = register_user(api, identity_factory, prefix="logout")
    api.call("POST", "/logout", token=user["token"])
    with pytest.raises(ApiError) as err:
        api.call("GET", "/user", token=user["token"])
    assert err.value.status_code == 401


def test_invalid_token_and_missing_token(api):
    with pytest.raises(ApiError) as bad:
        api.call("GET", "/user", token="not-a-jwt")
    assert bad.value.status_code == 401
    assert api.call("GET", "/session-status")["authenticated"] is False


def test_password_recovery_with_cpf(api, identity_factory):
    user = register_user(api, identity_factory, prefix="recover")

    with pytest.raises(ApiError) as wrong_cpf:
        api.call("POST", "/recover-password", body={"identifier": user["email"], "cpf": "00000000000"})
    assert wrong_cpf.value.status_code == 400

    with pytest.raises(ApiError) as unknown:
        api.call("POST", "/recover-password", body={"identifier": "ninguem@example.com", "cpf": user["cpf"]})
    assert unknown.value.status_code == 404

    out = api.call("POST", "/recover-password", body={"identifier": user["username"], "cpf": user["cpf"]})
    assert out["ok"] is True
    assert out["reset_token"]

    api.call("POST", "/reset-password", body={"token": out["reset_token"], "password": "NovaSenha_1"})
    with pytest.raises(ApiError) as old_session:
        api.call("GET", "/user", token=user["token"])
    assert old_session.value.status_code == 401

    with pytest.raises(ApiError) as reused:
        api.call("POST", "/reset-password", body={"token": out["reset_token"], "password": "Outra_123"})
    assert reused.value.status_code == 400

    assert login(api, user["email"], "NovaSenha_1")


def test_password_recovery_can_be_disabled(api, identity_factory):
    user = register_user(api, identity_factory, prefix="norecover")
    other = register_user(api, identity_factory, prefix="norecover_other")

    with pytest.raises(ApiError) as forbidden:
        api.call(
            "PATCH",
            f"/users/{user['id']}/password-recovery",
            token=other["token"],
            body={"disable_password_recovery": True},
        )
    assert forbidden.value.status_code == 403

    updated = api.call(
        "PATCH",
        f"/users/{user['id']}/password-recovery",
        token=user["token"],
        body={"disable_password_recovery": True},
    )
    assert updated["disable_password_recovery"] is True

    with pytest.raises(ApiError) as disabled:
        api.call("POST", "/recover-password", body={"identifier": user["email"], "cpf": user["cpf"]})
    assert disabled.value.status_code == 403


def test_websocket_auth_handshake(api, identity_factory):
    user = register_user(api, identity_factory, prefix="ws")
    with api.client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "auth", "token": user["token"]})
        assert ws.receive_json() == {"type": "auth_result", "success": True, "userId": user["id"]}

        ws.send_json({"type": "auth", "token": "garbage"})
        failed = ws.receive_json()
        assert failed["success"] is False


def test_health_and_security_headers(api):
    resp = api.client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from tests.testkit import ApiError, login, register_user


def _iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def test_admin_lists_and_creates_users(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="listed")
    listed = api.call("GET", "/users", token=admin["token"])
    assert [u["id"] for u in listed] == [admin["id"], user["id"]]

    created = api.call(
        "POST",
        "/users",
        token=admin["token"],
        body={
            "username": identity_factory.next_username("made"),
            "email": identity_factory.next_email("made"),
            "password": "Senha_123",
            "cpf": "123.456.789-01",
            "role": "E-TOOL",
            "pro_days": 30,
        },
    )
    assert created["role"] == "E-TOOL"
    assert created["cpf"] == "12345678901"
    expiry = _iso(created["role_expiry_date"])
    assert datetime.now(timezone.utc) + timedelta(days=29) < expiry < datetime.now(timezone.utc) + timedelta(days=31)

    with pytest.raises(ApiError) as duplicate:
        api.call(
            "POST",
            "/users",
            token=admin["token"],
            body={
                "username": identity_factory.next_username("dup"),
                "email": user["email"],
                "password": "Senha_123",
            },
        )
    assert duplicate.value.status_code == 400


def test_role_and_pro_days_updates(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="promote")

    promoted = api.call("PATCH", f"/users/{user['id']}", token=admin["token"], body={"role": "E-MASTER", "pro_days": 10})
    assert promoted["role"] == "E-MASTER"
    first_expiry = _iso(promoted["role_expiry_date"])

    stacked = api.call("PATCH", f"/users/{user['id']}", token=admin["token"], body={"pro_days": 5})
    assert stacked["role"] == "E-MASTER"
    assert _iso(stacked["role_expiry_date"]) - first_expiry == timedelta(days=5)

    demoted = api.call("PATCH", f"/users/{user['id']}", token=admin["token"], body={"role": "E-BASIC"})
    assert demoted["role"] == "E-BASIC"
    assert demoted["role_expiry_date"] is None

    with pytest.raises(ApiError) as bad_role:
        api.call("PATCH", f"/users/{user['id']}", token=admin["token"], body={"role": "E-PLATINUM"})
    assert bad_role.value.status_code == 422

    with pytest.raises(ApiError) as missing:
        api.call("PATCH", "/users/999999", token=admin["token"], body={"role": "E-TOOL"})
    assert missing.value.status_code == 404


def test_delete_users(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="doomed")

    with pytest.raises(ApiError) as self_delete:
        api.call("DELETE", f"/users/{admin['id']}", token=admin["token"])
    assert self_delete.value.status_code == 400

    api.call("DELETE", f"/users/{user['id']}", token=admin["token"])
    assert [u["id"] for u in api.call("GET", "/users", token=admin["token"])] == [admin["id"]]

    with pytest.raises(ApiError) as stale_token:
        api.call("GET", "/user", token=user["token"])
    assert stale_token.value.status_code == 401


def test_admin_password_reset_revokes_sessions(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="reset_by_admin")
    api.call("PATCH", f"/users/{user['id']}/reset-password", token=admin["token"], body={"password": "Nova_456"})

    with pytest.raises(ApiError) as revoked:
        api.call("GET", "/user", token=user["token"])
    assert revoked.value.status_code == 401

    with pytest.raises(ApiError) as old_password:
        login(api, user["email"], user["password"])
    assert old_password.value.status_code == 400

    token = login(api, user["email"], "Nova_456")
    assert api.call("GET", "/user", token=token)["id"] == user["id"]


def test_password_recovery_toggle_is_owner_or_admin(api, identity_factory):
    owner = register_user(api, identity_factory, prefix="toggle_owner")
    other = register_user(api, identity_factory, prefix="toggle_other")

    out = api.call(
        "PATCH",
        f"/users/{owner['id']}/password-recovery",
        token=owner["token"],
        body={"disable_password_recovery": True},
    )
    assert out["disable_password_recovery"] is True

    with pytest.raises(ApiError) as foreign:
        api.call(
            "PATCH",
            f"/users/{owner['id']}/password-recovery",
            token=other["token"],
            body={"disable_password_recovery": False},
        )
    assert foreign.value.status_code == 403


def test_non_admin_cannot_manage_users(api, identity_factory):
    user = register_user(api, identity_factory, prefix="plain")
    for method, path, body in (
        ("GET", "/users", None),
        ("PATCH", f"/users/{user['id']}", {"role": "E-MASTER"}),
        ("DELETE", f"/users/{user['id']}", None),
    ):
        with pytest.raises(ApiError) as err:
            api.call(method, path, token=user["token"], body=body)
        assert err.value.status_code == 403

from __future__ import annotations

from datetime import timedelta

import pytest
import sqlalchemy as sa

from eprojects.core.security import as_utc, now_utc
from eprojects.models.course import Course
from eprojects.models.promo import PromoCode, PromoUsage
from eprojects.models.user import User
from eprojects.services import promos
from eprojects.services.entitlements import check_course_access
from eprojects.services.promos import redeem_code, redeem_course_code, redeem_role_code
from tests.testkit import ApiError, create_course, create_promo, register_user


def _seed_user(db, username: str, role: str = "E-BASIC") -> User:
    user = User(username=username, email=f"{username}@example.com", password_hash="x", role=role)
    db.add(user)
    db.commit()
    return user


def _seed_promo(db, **overrides) -> PromoCode:
    data = {"code": "TOOL30", "promo_type": "role", "target_role": "E-TOOL", "days": 30, "max_uses": 5}
    data.update(overrides)
    promo = PromoCode(**data)
    db.add(promo)
    db.commit()
    return promo


def _usage_count(db, promo_id: int) -> int:
    return db.execute(sa.select(sa.func.count(PromoUsage.id)).where(PromoUsage.promo_id == promo_id)).scalar_one()


def test_role_code_applies_target_role_and_counts_use(db):
    user = _seed_user(db, "ana")
    promo = _seed_promo(db, code="MASTER60", target_role="E-MASTER", days=60)

    result = redeem_role_code(db, user, "MASTER60")
    db.commit()

    assert result.success is True
    assert result.role == "E-MASTER"
    assert user.role == "E-MASTER"
    assert as_utc(user.role_expiry_date) > now_utc() + timedelta(days=59)
    db.refresh(promo)
    assert promo.used_count == 1


def test_same_user_cannot_redeem_twice(db):
    user = _seed_user(db, "bruno")
    promo = _seed_promo(db)
    assert redeem_role_code(db, user, "TOOL30").success is True
    db.commit()

    again = redeem_role_code(db, user, "TOOL30")
    assert again.success is False
    assert again.reason == "already_used"
    db.refresh(promo)
    assert promo.used_count == 1


def test_concurrent_duplicate_hits_unique_constraint(db, monkeypatch):
    user = _seed_user(db, "carla")
    promo = _seed_promo(db)
    assert redeem_role_code(db, user, "TOOL30").success is True
    db.commit()

    # Simulate a second request that passed the pre-check before the first one committed.
    monkeypatch.setattr(promos, "_already_used", lambda *_args, **_kwargs: False)
    result = redeem_role_code(db, user, "TOOL30")

    assert result.success is False
    assert result.reason == "already_used"
    assert _usage_count(db, promo.id) == 1
    assert db.get(PromoCode, promo.id).used_count == 1


def test_counter_guard_stops_over_redemption(db, monkeypatch):
    first = _seed_user(db, "davi")
    second = _seed_user(db, "elis")
    promo = _seed_promo(db, max_uses=1)
    assert redeem_role_code(db, first, "TOOL30").success is True
    db.commit()

    # Both requests read used_count=0 before either incremented it.
    monkeypatch.setattr(promos, "_validate_common", lambda *_args, **_kwargs: None)
    result = redeem_role_code(db, second, "TOOL30")

    assert result.success is False
    assert result.reason == "limit_reached"
    assert _usage_count(db, promo.id) == 1
    assert db.get(User, second.id).role == "E-BASIC"


@pytest.mark.parametrize(
    "overrides,reason",
    [
        ({"is_active": False}, "invalid"),
        ({"used_count": 5}, "limit_reached"),
        ({"expiry_date": now_utc() - timedelta(days=1)}, "expired"),
    ],
)
def test_unusable_codes_are_rejected(db, overrides, reason):
    user = _seed_user(db, "fabio")
    _seed_promo(db, **overrides)
    result = redeem_role_code(db, user, "TOOL30")
    assert result.success is False
    assert result.reason == reason
    assert db.get(User, user.id).role == "E-BASIC"


def test_unknown_code_is_invalid(db):
    user = _seed_user(db, "gabi")
    assert redeem_code(db, user, "NOPE").reason == "invalid"


def test_course_code_grants_window_and_checks_course(db):
    user = _seed_user(db, "helena")
    course = Course(title="CAD", instructor="Prof", duration="3h", category="mechanical", requires_promo_code=True)
    other = Course(title="CLP", instructor="Prof", duration="3h", category="electrical", requires_promo_code=True)
    db.add_all([course, other])
    db.commit()
    _seed_promo(db, code="CAD15", promo_type="course", target_role=None, course_id=course.id, days=15)

    wrong = redeem_course_code(db, user, "CAD15", other.id)
    assert wrong.success is False
    assert wrong.reason == "wrong_course"

    role_attempt = redeem_role_code(db, user, "CAD15")
    assert role_attempt.reason == "wrong_type"

    at = now_utc()
    ok = redeem_code(db, user, "CAD15", now=at)
    db.commit()
    assert ok.success is True
    assert ok.course_id == course.id
    assert db.get(User, user.id).role == "E-BASIC"

    assert check_course_access(db, user, course, now=at + timedelta(days=15)).has_access is True
    assert check_course_access(db, user, course, now=at + timedelta(days=15, minutes=1)).has_access is False


def test_promo_api_flow(api, admin, identity_factory):
    create_promo(api, admin["token"], "API-TOOL", target_role="E-TOOL", days=10, max_uses=2)
    user = register_user(api, identity_factory, prefix="promo_api")
    other = register_user(api, identity_factory, prefix="promo_api_other")
    late = register_user(api, identity_factory, prefix="promo_api_late")

    out = api.call("POST", "/promocodes/use", token=user["token"], body={"code": "API-TOOL"})
    assert out["success"] is True
    assert out["role"] == "E-TOOL"
    assert out["days"] == 10

    with pytest.raises(ApiError) as dup:
        api.call("POST", "/promocodes/use", token=user["token"], body={"code": "API-TOOL"})
    assert dup.value.status_code == 409

    second = api.call("POST", "/promocodes/use", token=other["token"], body={"code": "API-TOOL"})
    assert second["success"] is True

    with pytest.raises(ApiError) as exhausted:
        api.call("POST", "/promocodes/use", token=late["token"], body={"code": "API-TOOL"})
    assert exhausted.value.status_code == 400

    codes = api.call("GET", "/promocodes", token=admin["token"])
    assert codes[0]["used_count"] == 2


def test_promo_admin_validation(api, admin, identity_factory):
    with pytest.raises(ApiError) as missing_role:
        api.call(
            "POST",
            "/promocodes",
            token=admin["token"],
            body={"code": "SEMPAPEL", "promo_type": "role", "days": 5},
        )
    assert missing_role.value.status_code == 422

    course = create_course(api, admin["token"], requires_promo_code=True)
    promo = create_promo(api, admin["token"], "CURSO-API", promo_type="course", target_role=None, course_id=course["id"], days=15)
    assert promo["course_id"] == course["id"]
    assert promo["target_role"] is None

    with pytest.raises(ApiError) as duplicate:
        create_promo(api, admin["token"], "CURSO-API", promo_type="course", target_role=None, course_id=course["id"])
    assert duplicate.value.status_code == 400

    toggled = api.call("PATCH", f"/promocodes/{promo['id']}/toggle", token=admin["token"])
    assert toggled["is_active"] is False

    user = register_user(api, identity_factory, prefix="promo_inactive")
    with pytest.raises(ApiError) as inactive:
        api.call("POST", "/promocodes/use", token=user["token"], body={"code": "CURSO-API", "course_id": course["id"]})
    assert inactive.value.status_code == 400

    with pytest.raises(ApiError) as forbidden:
        api.call("GET", "/promocodes", token=user["token"])
    assert forbidden.value.status_code == 403

    api.call("DELETE", f"/promocodes/{promo['id']}", token=admin["token"])
    assert api.call("GET", "/promocodes", token=admin["token"]) == []


def test_register_with_promo_code(api, admin, identity_factory):
    create_promo(api, admin["token"], "BEMVINDO", target_role="E-MASTER", days=7)
    user = register_user(api, identity_factory, prefix="promo_reg", promo_code="BEMVINDO")
    assert user["promo"]["success"] is True
    assert user["user"]["role"] == "E-MASTER"

    bad = register_user(api, identity_factory, prefix="promo_reg_bad", promo_code="NAOEXISTE")
    assert bad["promo"]["success"] is False
    assert bad["user"]["role"] == "E-BASIC"

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
import sqlalchemy as sa

from eprojects.core.security import now_utc
from eprojects.models.course import Course, CoursePurchase
from eprojects.models.notification import Notification
from eprojects.models.user import User
from eprojects.services.expiry import run_expiry_sweep, run_expiry_sweep_once
from eprojects.services.notifications import list_notifications_for_user
from tests.testkit import ApiError, register_user, set_role


def _seed(db):
    now = now_utc()
    expired_tool = User(username="expirado", email="e@example.com", password_hash="x", role="E-TOOL", role_expiry_date=now - timedelta(hours=1))
    active_master = User(username="ativo", email="a@example.com", password_hash="x", role="E-MASTER", role_expiry_date=now + timedelta(days=3))
    open_ended = User(username="semprazo", email="s@example.com", password_hash="x", role="E-TOOL", role_expiry_date=None)
    admin = User(username="admin", email="adm@example.com", password_hash="x", role="admin", role_expiry_date=now - timedelta(days=1))
    course = Course(title="Curso", instructor="Prof", duration="1h", category="mechanical", price=Decimal("10"))
    db.add_all([expired_tool, active_master, open_ended, admin, course])
    db.flush()
    db.add_all(
        [
            CoursePurchase(user_id=active_master.id, course_id=course.id, price=Decimal("10"), expires_at=now - timedelta(minutes=5), active=True),
            CoursePurchase(user_id=open_ended.id, course_id=course.id, price=Decimal("10"), expires_at=now + timedelta(days=5), active=True),
        ]
    )
    db.commit()
    return expired_tool, active_master, open_ended, admin


def test_sweep_downgrades_and_deactivates(db):
    expired_tool, active_master, open_ended, admin = _seed(db)

    stats = run_expiry_sweep(db)
    db.commit()

    assert stats.deactivated_purchases == 1
    assert [u.user_id for u in stats.downgraded_users] == [expired_tool.id]
    assert stats.downgraded_users[0].previous_role == "E-TOOL"

    db.expire_all()
    assert db.get(User, expired_tool.id).role == "E-BASIC"
    assert db.get(User, expired_tool.id).role_expiry_date is None
    assert db.get(User, active_master.id).role == "E-MASTER"
    assert db.get(User, open_ended.id).role == "E-TOOL"
    assert db.get(User, admin.id).role == "admin"

    active = db.execute(sa.select(CoursePurchase.active).order_by(CoursePurchase.id)).scalars().all()
    assert active == [False, True]


def test_sweep_notifies_the_downgraded_user_only(db):
    expired_tool, active_master, _, _ = _seed(db)
    run_expiry_sweep(db)
    db.commit()

    rows = db.execute(sa.select(Notification)).scalars().all()
    assert len(rows) == 1
    assert rows[0].target_role == "individual"
    assert rows[0].user_id == expired_tool.id
    assert rows[0].type == "warning"

    assert len(list_notifications_for_user(db, db.get(User, expired_tool.id))) == 1
    assert list_notifications_for_user(db, db.get(User, active_master.id)) == []


def test_sweep_is_idempotent(db):
    _seed(db)
    run_expiry_sweep(db)
    db.commit()

    second = run_expiry_sweep(db)
    db.commit()
    assert second.deactivated_purchases == 0
    assert second.downgraded_count == 0
    assert db.execute(sa.select(sa.func.count(Notification.id))).scalar_one() == 1


def test_sweep_once_uses_its_own_session(session_factory, db):
    _seed(db)
    stats = run_expiry_sweep_once(session_factory)
    assert stats is not None
    assert stats.downgraded_count == 1


def test_admin_sweep_endpoints(api, admin, identity_factory, session_factory):
    user = register_user(api, identity_factory, prefix="sweep")
    set_role(api, admin["token"], user["id"], "E-TOOL", pro_days=30)

    with pytest.raises(ApiError) as forbidden:
        api.call("POST", "/admin/force-expiration-check", token=user["token"])
    assert forbidden.value.status_code == 403

    out = api.call("POST", "/admin/force-expiration-check", token=admin["token"])
    assert out["ok"] is True
    assert out["downgraded_count"] == 0

    db = session_factory()
    try:
        db.get(User, user["id"]).role_expiry_date = now_utc() - timedelta(minutes=1)
        db.commit()
    finally:
        db.close()

    plans = api.call("POST", "/admin/check-expired-plans", token=admin["token"])
    assert plans["deactivated_purchases"] == 0
    assert plans["downgraded_count"] == 1
    assert plans["downgraded_users"][0]["username"] == user["username"]
    assert api.call("GET", "/user", token=user["token"])["role"] == "E-BASIC"

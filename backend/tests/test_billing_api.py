from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from eprojects.core.config import settings
from eprojects.models.billing import StripePayment
from eprojects.models.course import Course
from eprojects.models.user import User
from eprojects.services import billing
from eprojects.services.billing_provider import verify_stripe_signature
from tests.testkit import (
    WEBHOOK_SECRET,
    ApiError,
    FakeStripe,
    create_course,
    register_user,
    set_role,
    sign_webhook_payload,
)


@pytest.fixture()
def stripe_fake(monkeypatch) -> FakeStripe:
    fake = FakeStripe()
    monkeypatch.setattr(billing, "get_provider_adapter", lambda: fake)
    return fake


def _set_prices(api, admin_token: str, tool: str = "20.00", master: str = "50.00"):
    api.call("POST", "/admin/plan-prices", token=admin_token, body={"plan_type": "E-TOOL", "monthly_price": tool})
    api.call("POST", "/admin/plan-prices", token=admin_token, body={"plan_type": "E-MASTER", "monthly_price": master})


def _intent_event(event_id: str, intent) -> dict:
    return {
        "id": event_id,
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": intent.id,
                "object": "payment_intent",
                "status": "succeeded",
                "amount": intent.amount_cents,
                "customer": intent.customer_id,
                "metadata": intent.metadata,
            }
        },
    }


def _post_webhook(api, event: dict, *, secret: str = WEBHOOK_SECRET, signature: str | None = None):
    raw = json.dumps(event).encode("utf-8")
    header = signature if signature is not None else sign_webhook_payload(raw, secret)
    return api.call("POST", "/stripe/webhook", raw=raw, headers={"Stripe-Signature": header})


def _iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def test_signature_helpers_round_trip():
    raw = b'{"id":"evt_1"}'
    header = sign_webhook_payload(raw, "whsec_x")
    assert verify_stripe_signature(raw, header, "whsec_x", 300) is True
    assert verify_stripe_signature(raw + b" ", header, "whsec_x", 300) is False
    assert verify_stripe_signature(raw, header, "whsec_other", 300) is False
    stale = sign_webhook_payload(raw, "whsec_x", timestamp=1_000_000)
    assert verify_stripe_signature(raw, stale, "whsec_x", 300) is False
    assert verify_stripe_signature(raw, None, "whsec_x", 300) is False
    assert verify_stripe_signature(raw, "not-a-signature", "whsec_x", 300) is False


def test_plan_offers_depend_on_role(api, admin, identity_factory):
    user = register_user(api, identity_factory, prefix="offers")
    assert api.call("GET", "/upgrade/plans", token=user["token"]) == []

    _set_prices(api, admin["token"])
    prices = api.call("GET", "/upgrade/plans/prices")
    assert {k: float(v) for k, v in prices["prices"].items()} == {"E-MASTER": 50.0, "E-TOOL": 20.0}

    basic_offers = api.call("GET", "/upgrade/plans", token=user["token"])
    assert [o["plan_type"] for o in basic_offers] == ["E-TOOL", "E-MASTER"]
    assert all(o["discounted"] is False for o in basic_offers)

    set_role(api, admin["token"], user["id"], "E-TOOL", pro_days=30)
    tool_offers = api.call("GET", "/upgrade/plans", token=user["token"])
    assert [o["plan_type"] for o in tool_offers] == ["E-MASTER"]
    assert tool_offers[0]["discounted"] is True
    assert tool_offers[0]["price_cents"] == 4000

    set_role(api, admin["token"], user["id"], "E-MASTER", pro_days=30)
    assert api.call("GET", "/upgrade/plans", token=user["token"]) == []


def test_plan_price_validation(api, admin, identity_factory):
    with pytest.raises(ApiError) as zero:
        api.call("POST", "/admin/plan-prices", token=admin["token"], body={"plan_type": "E-TOOL", "monthly_price": "0"})
    assert zero.value.status_code == 422

    user = register_user(api, identity_factory, prefix="prices_noadmin")
    with pytest.raises(ApiError) as forbidden:
        api.call("POST", "/admin/plan-prices", token=user["token"], body={"plan_type": "E-TOOL", "monthly_price": "10"})
    assert forbidden.value.status_code == 403


def test_plan_upgrade_through_confirm(api, admin, identity_factory, stripe_fake):
    _set_prices(api, admin["token"])
    user = register_user(api, identity_factory, prefix="upgrade")
    intruder = register_user(api, identity_factory, prefix="upgrade_intruder")

    intent = api.call(
        "POST",
        "/upgrade/create-payment-intent",
        token=user["token"],
        body={"plan_type": "E-TOOL", "months": 3},
    )
    assert intent["amount_cents"] == 6000
    assert intent["currency"] == settings.STRIPE_CURRENCY
    stored = stripe_fake.intents[intent["payment_intent_id"]]
    assert stored.metadata["durationDays"] == "90"
    assert stored.metadata["userId"] == str(user["id"])

    with pytest.raises(ApiError) as pending:
        api.call("POST", "/upgrade/confirm-payment", token=user["token"], body={"payment_intent_id": intent["payment_intent_id"]})
    assert pending.value.status_code == 400

    stripe_fake.succeed(intent["payment_intent_id"])

    with pytest.raises(ApiError) as not_owner:
        api.call("POST", "/upgrade/confirm-payment", token=intruder["token"], body={"payment_intent_id": intent["payment_intent_id"]})
    assert not_owner.value.status_code == 403

    out = api.call("POST", "/upgrade/confirm-payment", token=user["token"], body={"payment_intent_id": intent["payment_intent_id"]})
    assert out["kind"] == "plan_upgrade"
    assert out["duplicate"] is False
    assert out["role"] == "E-TOOL"
    assert _iso(out["role_expiry_date"]) > datetime.now(timezone.utc) + timedelta(days=89)

    again = api.call("POST", "/upgrade/confirm-payment", token=user["token"], body={"payment_intent_id": intent["payment_intent_id"]})
    assert again["duplicate"] is True
    me = api.call("GET", "/user", token=user["token"])
    assert _iso(me["role_expiry_date"]) < datetime.now(timezone.utc) + timedelta(days=91)


def test_cannot_buy_same_or_lower_plan(api, admin, identity_factory, stripe_fake):
    _set_prices(api, admin["token"])
    user = register_user(api, identity_factory, prefix="upgrade_lower")
    set_role(api, admin["token"], user["id"], "E-MASTER", pro_days=10)

    with pytest.raises(ApiError) as err:
        api.call("POST", "/upgrade/create-payment-intent", token=user["token"], body={"plan_type": "E-TOOL", "months": 1})
    assert err.value.status_code == 400

    with pytest.raises(ApiError) as months:
        api.call("POST", "/upgrade/create-payment-intent", token=user["token"], body={"plan_type": "E-MASTER", "months": 13})
    assert months.value.status_code == 422


def test_upgrade_without_stripe_is_unavailable(api, admin, identity_factory):
    _set_prices(api, admin["token"])
    user = register_user(api, identity_factory, prefix="upgrade_nostripe")
    with pytest.raises(ApiError) as err:
        api.call("POST", "/upgrade/create-payment-intent", token=user["token"], body={"plan_type": "E-TOOL", "months": 1})
    assert err.value.status_code == 503


def test_course_purchase_through_webhook(api, admin, identity_factory, stripe_fake):
    user = register_user(api, identity_factory, prefix="buyer")
    course = create_course(api, admin["token"], title="Termodinâmica", price="0.10")

    purchase = api.call("POST", f"/courses/{course['id']}/purchase", token=user["token"])
    assert purchase["amount_cents"] == 50
    intent = stripe_fake.succeed(purchase["payment_intent_id"])

    out = _post_webhook(api, _intent_event("evt_course_1", intent))
    assert out["processed"] is True
    assert out["status"] == "processed"

    access = api.call("GET", f"/courses/{course['id']}/access", token=user["token"])
    assert access["reason"] == "purchased"
    assert access["has_purchased"] is True

    titles = [n["title"] for n in api.call("GET", "/notifications", token=user["token"])]
    assert "Compra de curso concluída" in titles

    replay = _post_webhook(api, _intent_event("evt_course_1", intent))
    assert replay["duplicate"] is True

    redelivered = _post_webhook(api, _intent_event("evt_course_2", intent))
    assert redelivered["duplicate"] is False
    assert redelivered["processed"] is False
    assert redelivered["status"] == "ignored"

    with pytest.raises(ApiError) as bought:
        api.call("POST", f"/courses/{course['id']}/purchase", token=user["token"])
    assert bought.value.status_code == 400


def test_webhook_rejects_bad_signatures(api):
    event = {"id": "evt_bad", "type": "payment_intent.succeeded", "data": {"object": {}}}
    with pytest.raises(ApiError) as wrong_secret:
        _post_webhook(api, event, secret="whsec_wrong")
    assert wrong_secret.value.status_code == 400

    with pytest.raises(ApiError) as missing:
        _post_webhook(api, event, signature="")
    assert missing.value.status_code == 400


def test_webhook_requires_configured_secret(api, monkeypatch):
    monkeypatch.setattr(settings, "STRIPE_WEBHOOK_SECRET", None)
    with pytest.raises(ApiError) as err:
        _post_webhook(api, {"id": "evt_x", "type": "ping"})
    assert err.value.status_code == 503


def test_webhook_records_unhandled_and_failed_events(api):
    ignored = _post_webhook(api, {"id": "evt_ping", "type": "charge.refunded", "data": {"object": {}}})
    assert ignored["status"] == "ignored"

    broken = _post_webhook(
        api,
        {
            "id": "evt_broken",
            "type": "payment_intent.succeeded",
            "data": {"object": {"id": "pi_x", "status": "succeeded", "amount": 100, "metadata": {"type": "other"}}},
        },
    )
    assert broken["status"] == "error"
    assert broken["processed"] is False


def test_subscription_cancellation_downgrades(api, admin, identity_factory, session_factory):
    user = register_user(api, identity_factory, prefix="subscriber")
    set_role(api, admin["token"], user["id"], "E-MASTER", pro_days=30)
    db = session_factory()
    try:
        db.get(User, user["id"]).stripe_subscription_id = "sub_123"
        db.commit()
    finally:
        db.close()

    active = _post_webhook(
        api,
        {"id": "evt_sub_1", "type": "customer.subscription.updated", "data": {"object": {"id": "sub_123", "status": "active"}}},
    )
    assert active["status"] == "ignored"

    out = _post_webhook(
        api,
        {"id": "evt_sub_2", "type": "customer.subscription.deleted", "data": {"object": {"id": "sub_123", "status": "canceled"}}},
    )
    assert out["processed"] is True

    me = api.call("GET", "/user", token=user["token"])
    assert me["role"] == "E-BASIC"
    assert me["role_expiry_date"] is None
    titles = [n["title"] for n in api.call("GET", "/notifications", token=user["token"])]
    assert "Assinatura Expirada" in titles


def test_admin_course_price(api, admin):
    course = create_course(api, admin["token"])
    out = api.call("POST", "/admin/course-prices", token=admin["token"], body={"course_id": course["id"], "price": "39.90"})
    assert float(out["price"]) == pytest.approx(39.9)

    with pytest.raises(ApiError) as missing:
        api.call("POST", "/admin/course-prices", token=admin["token"], body={"course_id": 999_999, "price": "1.00"})
    assert missing.value.status_code == 404


def test_failed_grant_leaves_payment_retryable(api, admin, identity_factory, session_factory, stripe_fake):
    user = register_user(api, identity_factory, prefix="lost_course")
    course = create_course(api, admin["token"], title="Concreto Armado", price="30.00")
    purchase = api.call("POST", f"/courses/{course['id']}/purchase", token=user["token"])
    intent = stripe_fake.succeed(purchase["payment_intent_id"])
    api.call("DELETE", f"/courses/{course['id']}", token=admin["token"])

    failed = _post_webhook(api, _intent_event("evt_lost", intent))
    assert failed["status"] == "error"
    assert failed["processed"] is False

    db = session_factory()
    try:
        assert db.query(StripePayment).count() == 0
    finally:
        db.close()

    with pytest.raises(ApiError) as missing_course:
        api.call("POST", "/upgrade/confirm-payment", token=user["token"], body={"payment_intent_id": intent.id})
    assert missing_course.value.status_code == 404

    db = session_factory()
    try:
        db.add(
            Course(
                id=course["id"],
                title="Concreto Armado",
                instructor="Prof. Silva",
                duration="10h",
                category="civil",
                price=Decimal("30.00"),
            )
        )
        db.commit()
    finally:
        db.close()

    retried = _post_webhook(api, _intent_event("evt_lost", intent))
    assert retried["duplicate"] is False
    assert retried["processed"] is True
    assert retried["status"] == "processed"

    access = api.call("GET", f"/courses/{course['id']}/access", token=user["token"])
    assert access["reason"] == "purchased"

import logging
from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from eprojects.api.deps import get_current_user, require_admin
from eprojects.core.config import settings
from eprojects.db.session import get_db
from eprojects.schemas.billing import (
    ConfirmPaymentIn,
    ConfirmPaymentOut,
    CoursePriceIn,
    CoursePriceOut,
    PaymentIntentOut,
    PlanOfferOut,
    PlanPaymentIntentIn,
    PlanPriceIn,
    PlanPriceOut,
    PlanPricesOut,
    StripeWebhookOut,
)
from eprojects.services.billing import (
    confirm_payment,
    create_plan_payment_intent,
    get_plan_offers,
    get_plan_prices,
    ingest_stripe_event,
    set_course_price,
    set_plan_price,
)
from eprojects.services.billing_provider import verify_stripe_webhook_request, webhook_secret_configured

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/upgrade/plans", response_model=list[PlanOfferOut])
def upgrade_plans(db: Session = Depends(get_db), current=Depends(get_current_user)):
    return [PlanOfferOut(**asdict(offer)) for offer in get_plan_offers(db, current.role)]


@router.get("/upgrade/plans/prices", response_model=PlanPricesOut)
def upgrade_plan_prices(db: Session = Depends(get_db)):
    return PlanPricesOut(prices=get_plan_prices(db))


@router.post("/upgrade/create-payment-intent", response_model=PaymentIntentOut)
def upgrade_payment_intent(payload: PlanPaymentIntentIn, db: Session = Depends(get_db), current=Depends(get_current_user)):
    try:
        intent = create_plan_payment_intent(db, user=current, plan_type=payload.plan_type, months=payload.months)
    except NotImplementedError as exc:
        db.rollback()
        raise HTTPException(503, str(exc))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    return PaymentIntentOut(
        payment_intent_id=intent.id,
        client_secret=intent.client_secret,
        amount_cents=intent.amount_cents,
        currency=settings.STRIPE_CURRENCY,
    )


@router.post("/upgrade/confirm-payment", response_model=ConfirmPaymentOut)
def upgrade_confirm_payment(payload: ConfirmPaymentIn, db: Session = Depends(get_db), current=Depends(get_current_user)):
    try:
        result = confirm_payment(db, user=current, payment_intent_id=payload.payment_intent_id)
        db.commit()
    except NotImplementedError as exc:
        db.rollback()
        raise HTTPException(503, str(exc))
    except PermissionError:
        db.rollback()
        raise HTTPException(403, "Acesso negado")
    except LookupError as exc:
        db.rollback()
        raise HTTPException(404, str(exc))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    except IntegrityError:
        db.rollback()
        logger.info("payment %s already processed concurrently", payload.payment_intent_id)
        raise HTTPException(409, "Pagamento já processado")
    return ConfirmPaymentOut(
        kind=result.kind,
        duplicate=result.duplicate,
        role=result.role,
        role_expiry_date=result.role_expiry_date,
        course_id=result.course_id,
    )


@router.post("/stripe/webhook", response_model=StripeWebhookOut)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    if not webhook_secret_configured():
        raise HTTPException(503, "Webhook do Stripe não configurado")
    raw = await request.body()
    if not verify_stripe_webhook_request(request.headers, raw):
        logger.warning("stripe webhook rejected: invalid signature")
        raise HTTPException(400, "Assinatura de webhook inválida")

    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(400, "Payload JSON inválido")

    if not isinstance(payload, dict):
        raise HTTPException(400, "Payload JSON inválido")

    try:
        out = ingest_stripe_event(db, payload=payload)
        db.commit()
        return StripeWebhookOut(**out)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    except IntegrityError:
        db.rollback()
        logger.info("stripe event %s already processed concurrently", payload.get("id"))
        return StripeWebhookOut(event_id=str(payload.get("id") or ""), duplicate=True, processed=False, status="ignored")


@router.post("/admin/plan-prices", response_model=PlanPriceOut)
def admin_plan_price(payload: PlanPriceIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        row = set_plan_price(db, actor_user_id=current.id, plan_type=payload.plan_type, monthly_price=payload.monthly_price)
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(row)
    return PlanPriceOut(plan_type=row.plan_type, monthly_price=row.monthly_price)


@router.post("/admin/course-prices", response_model=CoursePriceOut)
def admin_course_price(payload: CoursePriceIn, db: Session = Depends(get_db), current=Depends(require_admin)):
    try:
        course = set_course_price(db, actor_user_id=current.id, course_id=payload.course_id, price=payload.price)
    except LookupError as exc:
        db.rollback()
        raise HTTPException(404, str(exc))
    except ValueError as exc:
        db.rollback()
        raise HTTPException(400, str(exc))
    db.commit()
    db.refresh(course)
    return CoursePriceOut(course_id=course.id, price=course.price)

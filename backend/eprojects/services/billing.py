from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

import sqlalchemy as sa
from sqlalchemy.orm import Session

from eprojects.core.config import settings
from eprojects.core.security import now_utc
from eprojects.models.billing import BillingWebhookEvent, PlanPrice, StripePayment
from eprojects.models.course import Course, CoursePurchase
from eprojects.models.user import User
from eprojects.services.audit import audit
from eprojects.services.billing_provider import (
    BillingProviderAdapter,
    PaymentIntentRequest,
    PaymentIntentResponse,
    get_provider_adapter,
    payment_intent_from_object,
)
from eprojects.services.entitlements import (
    BASIC_ROLE,
    MASTER_ROLE,
    PAID_ROLES,
    TOOL_ROLE,
    check_course_access,
    check_course_purchase_active,
    role_rank,
)
from eprojects.services.notifications import notify_user
from eprojects.services.pro_status import extend_pro_status

logger = logging.getLogger(__name__)

PROVIDER = "stripe"
DOWNGRADE_SUBSCRIPTION_STATUSES = {"canceled", "unpaid", "past_due"}
SUBSCRIPTION_EVENTS = {"customer.subscription.deleted", "customer.subscription.updated"}

_PLAN_COPY = {
    TOOL_ROLE: ("Plano E-TOOL", "Acesso às ferramentas exclusivas E-TOOL"),
    MASTER_ROLE: ("Plano E-MASTER", "Acesso completo a todas as ferramentas e cursos disponíveis"),
}


@dataclass(frozen=True)
class PlanOffer:
    plan_type: str
    name: str
    description: str
    monthly_price: Decimal
    price_cents: int
    days: int
    min_months: int
    max_months: int
    discounted: bool = False


@dataclass(frozen=True)
class PaymentApplication:
    kind: str
    user_id: int
    duplicate: bool = False
    role: str | None = None
    role_expiry_date: datetime | None = None
    course_id: int | None = None


def _to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _charge_amount(amount: Decimal) -> Decimal:
    minimum = Decimal(str(settings.STRIPE_MIN_AMOUNT))
    return amount if amount >= minimum else minimum


def get_plan_prices(db: Session) -> dict[str, Decimal]:
    rows = db.execute(sa.select(PlanPrice).order_by(PlanPrice.plan_type)).scalars()
    return {row.plan_type: Decimal(str(row.monthly_price)) for row in rows}


def get_plan_offers(db: Session, role: str) -> list[PlanOffer]:
    """Plans above the viewer's role; E-TOOL holders get the upgrade discount on E-MASTER."""
    prices = get_plan_prices(db)
    if role == BASIC_ROLE:
        candidates = [TOOL_ROLE, MASTER_ROLE]
        discount = Decimal("0")
    elif role == TOOL_ROLE:
        candidates = [MASTER_ROLE]
        discount = Decimal(str(settings.PLAN_UPGRADE_DISCOUNT))
    else:
        return []

    out: list[PlanOffer] = []
    for plan_type in candidates:
        if plan_type not in prices:
            continue
        monthly = (prices[plan_type] * (Decimal("1") - discount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        name, description = _PLAN_COPY[plan_type]
        out.append(
            PlanOffer(
                plan_type=plan_type,
                name=name,
                description=description,
                monthly_price=monthly,
                price_cents=_to_cents(monthly),
                days=settings.PLAN_DAYS_PER_MONTH,
                min_months=1,
                max_months=settings.PLAN_MAX_MONTHS,
                discounted=discount > 0,
            )
        )
    return out


def set_plan_price(db: Session, *, actor_user_id: int, plan_type: str, monthly_price: Decimal) -> PlanPrice:
    if plan_type not in PAID_ROLES:
        raise ValueError("Tipo de plano inválido. Deve ser 'E-TOOL' ou 'E-MASTER'")
    if monthly_price <= 0:
        raise ValueError("Preço mensal deve ser maior que zero")
    row = db.execute(sa.select(PlanPrice).where(PlanPrice.plan_type == plan_type)).scalar_one_or_none()
    if row is None:
        row = PlanPrice(plan_type=plan_type, monthly_price=monthly_price)
        db.add(row)
    else:
        row.monthly_price = monthly_price
        row.updated_at = now_utc()
    db.flush()
    audit(db, actor_user_id, "plan_price", plan_type, "updated", {"monthly_price": str(monthly_price)})
    return row


def set_course_price(db: Session, *, actor_user_id: int, course_id: int, price: Decimal | None) -> Course:
    course = db.get(Course, course_id)
    if course is None:
        raise LookupError("Curso não encontrado")
    if price is not None and price < 0:
        raise ValueError("Preço do curso inválido")
    course.price = price
    course.updated_at = now_utc()
    db.flush()
    audit(db, actor_user_id, "course", course_id, "price_updated", {"price": (str(price) if price is not None else None)})
    return course


def _ensure_customer(db: Session, user: User, adapter: BillingProviderAdapter) -> str:
    if user.stripe_customer_id:
        return user.stripe_customer_id
    customer_id = adapter.create_customer(email=user.email, name=user.username, user_id=user.id)
    user.stripe_customer_id = customer_id
    db.flush()
    return customer_id


def create_plan_payment_intent(
    db: Session,
    *,
    user: User,
    plan_type: str,
    months: int,
    adapter: BillingProviderAdapter | None = None,
) -> PaymentIntentResponse:
    if months < 1 or months > settings.PLAN_MAX_MONTHS:
        raise ValueError(f"Duração inválida. Escolha entre 1 e {settings.PLAN_MAX_MONTHS} meses")
    if plan_type not in PAID_ROLES:
        raise ValueError("Plano não encontrado")
    if user.role == "admin" or role_rank(plan_type) <= role_rank(user.role):
        raise ValueError("Você não pode fazer upgrade para um plano de nível inferior ou igual ao seu plano atual")

    offer = next((o for o in get_plan_offers(db, user.role) if o.plan_type == plan_type), None)
    if offer is None:
        raise ValueError("Plano não encontrado")

    adapter = adapter or get_provider_adapter()
    total = _charge_amount(offer.monthly_price * months)
    days = months * settings.PLAN_DAYS_PER_MONTH
    customer_id = _ensure_customer(db, user, adapter)
    intent = adapter.create_payment_intent(
        PaymentIntentRequest(
            amount_cents=_to_cents(total),
            currency=settings.STRIPE_CURRENCY,
            customer_id=customer_id,
            metadata={
                "type": "plan_upgrade",
                "upgradeType": "role",
                "planType": plan_type,
                "userId": str(user.id),
                "months": str(months),
                "durationDays": str(days),
                "monthlyPrice": str(offer.monthly_price),
                "totalPrice": str(total),
            },
        )
    )
    logger.info("plan payment intent created user_id=%s plan=%s months=%s intent=%s", user.id, plan_type, months, intent.id)
    return intent


def create_course_payment_intent(
    db: Session,
    *,
    user: User,
    course: Course,
    adapter: BillingProviderAdapter | None = None,
) -> PaymentIntentResponse:
    if course.is_free:
        raise ValueError("Este curso não está disponível para compra")
    if course.is_hidden and user.role != "admin":
        raise LookupError("Curso não encontrado")
    if check_course_purchase_active(db, user.id, course.id):
        raise ValueError("Você já adquiriu este curso")
    if check_course_access(db, user, course).has_access:
        raise ValueError("Você já tem acesso a este curso")

    adapter = adapter or get_provider_adapter()
    amount = _charge_amount(Decimal(str(course.price)))
    customer_id = _ensure_customer(db, user, adapter)
    intent = adapter.create_payment_intent(
        PaymentIntentRequest(
            amount_cents=_to_cents(amount),
            currency=settings.STRIPE_CURRENCY,
            customer_id=customer_id,
            metadata={
                "type": "course_purchase",
                "courseId": str(course.id),
                "userId": str(user.id),
            },
        )
    )
    logger.info("course payment intent created user_id=%s course_id=%s intent=%s", user.id, course.id, intent.id)
    return intent


def _metadata_int(metadata: dict[str, str], key: str) -> int | None:
    try:
        value = int(metadata.get(key) or 0)
    except ValueError:
        return None
    return value or None


def apply_successful_payment(db: Session, intent: PaymentIntentResponse, now: datetime | None = None) -> PaymentApplication:
    """Grant what a succeeded payment intent paid for, at most once per intent.

    A concurrent duplicate surfaces as an IntegrityError on the payment ledger
    and must be rolled back by the caller.
    """
    at = now or now_utc()
    metadata = intent.metadata or {}
    user_id = _metadata_int(metadata, "userId")
    if metadata.get("upgradeType") == "role" or metadata.get("type") == "plan_upgrade":
        kind = "plan_upgrade"
    elif metadata.get("type") == "course_purchase":
        kind = "course_purchase"
    else:
        raise ValueError("Tipo de pagamento não reconhecido")
    if not user_id:
        raise ValueError("Metadados de pagamento inválidos")

    existing = db.execute(
        sa.select(StripePayment).where(StripePayment.payment_intent_id == intent.id)
    ).scalar_one_or_none()
    if existing is not None:
        return PaymentApplication(kind=existing.kind, user_id=user_id, duplicate=True)

    user = db.get(User, user_id)
    if user is None:
        raise LookupError("Usuário não encontrado")

    # Nothing is written until the grant is known to be applicable.
    plan_type = None
    course = None
    if kind == "plan_upgrade":
        plan_type = metadata.get("planType")
        if plan_type not in PAID_ROLES:
            raise ValueError("Tipo de plano inválido")
    else:
        course_id = _metadata_int(metadata, "courseId")
        course = db.get(Course, course_id) if course_id else None
        if course is None:
            raise LookupError("Curso não encontrado")

    amount = (Decimal(intent.amount_cents) / 100).quantize(Decimal("0.01"))
    db.add(StripePayment(payment_intent_id=intent.id, user_id=user_id, kind=kind, amount=amount, processed_at=at))
    db.flush()

    if intent.customer_id and not user.stripe_customer_id:
        user.stripe_customer_id = intent.customer_id

    if kind == "plan_upgrade":
        days = _metadata_int(metadata, "durationDays") or settings.PLAN_DAYS_PER_MONTH
        extend_pro_status(db, user, days, target_role=plan_type, now=at)
        audit(db, None, "stripe_payment", intent.id, "plan_upgrade_applied", {"user_id": user_id, "plan_type": plan_type, "days": days})
        logger.info("plan upgrade applied user_id=%s plan=%s days=%s intent=%s", user_id, plan_type, days, intent.id)
        return PaymentApplication(kind=kind, user_id=user_id, role=user.role, role_expiry_date=user.role_expiry_date)

    db.add(
        CoursePurchase(
            user_id=user_id,
            course_id=course.id,
            price=amount,
            stripe_payment_id=intent.id,
            purchased_at=at,
            expires_at=at + timedelta(days=settings.COURSE_PURCHASE_DAYS),
            active=True,
        )
    )
    notify_user(
        db,
        user_id=user_id,
        title="Compra de curso concluída",
        message=(
            f'Sua compra do curso "{course.title}" foi concluída com sucesso. '
            f"Você já tem acesso ao conteúdo por {settings.COURSE_PURCHASE_DAYS} dias!"
        ),
        type="success",
        link=f"/course/{course.id}",
    )
    db.flush()
    audit(db, None, "stripe_payment", intent.id, "course_purchase_applied", {"user_id": user_id, "course_id": course.id})
    logger.info("course purchase applied user_id=%s course_id=%s intent=%s", user_id, course.id, intent.id)
    return PaymentApplication(kind=kind, user_id=user_id, course_id=course.id)


def confirm_payment(
    db: Session,
    *,
    user: User,
    payment_intent_id: str,
    adapter: BillingProviderAdapter | None = None,
) -> PaymentApplication:
    adapter = adapter or get_provider_adapter()
    intent = adapter.retrieve_payment_intent(payment_intent_id)
    if intent.status != "succeeded":
        raise ValueError("Pagamento não concluído com sucesso")
    if intent.metadata.get("userId") != str(user.id):
        raise PermissionError("Acesso negado")
    return apply_successful_payment(db, intent)


def downgrade_for_subscription(db: Session, subscription: dict) -> User | None:
    status = str(subscription.get("status") or "")
    subscription_id = str(subscription.get("id") or "")
    if status not in DOWNGRADE_SUBSCRIPTION_STATUSES or not subscription_id:
        return None
    user = db.execute(sa.select(User).where(User.stripe_subscription_id == subscription_id)).scalar_one_or_none()
    if user is None or user.role not in PAID_ROLES:
        return None

    previous_role = user.role
    user.role = BASIC_ROLE
    user.role_expiry_date = None
    outcome = "cancelada" if status == "canceled" else "expirou"
    notify_user(
        db,
        user_id=user.id,
        title="Assinatura Expirada",
        message=(
            f"Sua assinatura {previous_role} foi {outcome} e sua conta foi revertida para E-BASIC. "
            "Para continuar usando as funcionalidades avançadas, renove sua assinatura."
        ),
        type="warning",
    )
    db.flush()
    logger.info("subscription %s downgraded user_id=%s from=%s", status, user.id, previous_role)
    return user


def ingest_stripe_event(db: Session, *, payload: dict):
    event_id = str(payload.get("id") or "").strip()
    event_type = str(payload.get("type") or "").strip()
    if not event_id or not event_type:
        raise ValueError("Evento de webhook inválido")

    existing = db.execute(
        sa.select(BillingWebhookEvent).where(
            BillingWebhookEvent.provider == PROVIDER,
            BillingWebhookEvent.event_id == event_id,
        )
    ).scalar_one_or_none()
    if existing is not None and existing.status != "error":
        return {
            "event_id": event_id,
            "duplicate": True,
            "processed": existing.status in ("processed", "ignored"),
            "status": existing.status,
        }

    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    obj = data.get("object") if isinstance(data.get("object"), dict) else {}

    if existing is not None:
        # Redelivery of an event that failed before: process it again.
        row = existing
        row.payload = payload
        row.status = "received"
    else:
        row = BillingWebhookEvent(provider=PROVIDER, event_id=event_id, event_type=event_type, payload=payload, status="received")
        db.add(row)
    db.flush()

    processed = False
    final_status = "ignored"
    error_message = None
    try:
        if event_type == "payment_intent.succeeded":
            result = apply_successful_payment(db, payment_intent_from_object(obj))
            row.user_id = result.user_id
            processed = not result.duplicate
            final_status = "processed" if processed else "ignored"
        elif event_type in SUBSCRIPTION_EVENTS:
            user = downgrade_for_subscription(db, obj)
            if user is not None:
                row.user_id = user.id
                processed = True
                final_status = "processed"
    except (ValueError, LookupError) as exc:
        final_status = "error"
        error_message = str(exc)[:1000]
        logger.warning("stripe event %s (%s) failed: %s", event_id, event_type, error_message)

    row.status = final_status
    row.error_message = error_message
    row.processed_at = now_utc()
    db.flush()
    return {
        "event_id": event_id,
        "duplicate": False,
        "processed": processed,
        "status": final_status,
    }

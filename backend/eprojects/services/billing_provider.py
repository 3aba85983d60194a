from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import stripe

from eprojects.core.config import settings


@dataclass(frozen=True)
class PaymentIntentRequest:
    amount_cents: int
    currency: str
    customer_id: str | None
    metadata: dict[str, str]


@dataclass(frozen=True)
class PaymentIntentResponse:
    id: str
    status: str
    amount_cents: int
    client_secret: str | None = None
    customer_id: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class BillingProviderAdapter(Protocol):
    provider_code: str

    def create_customer(self, *, email: str, name: str, user_id: int) -> str:
        ...

    def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntentResponse:
        ...

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResponse:
        ...


def _field(obj, key: str):
    try:
        return obj[key]
    except (KeyError, TypeError):
        return None


def payment_intent_from_object(obj) -> PaymentIntentResponse:
    """Build a response from a Stripe PaymentIntent object or its webhook dict form."""
    metadata = _field(obj, "metadata") or {}
    if hasattr(metadata, "to_dict"):
        metadata = metadata.to_dict()
    customer = _field(obj, "customer")
    if customer is not None and not isinstance(customer, str):
        customer = _field(customer, "id")
    return PaymentIntentResponse(
        id=str(_field(obj, "id") or ""),
        status=str(_field(obj, "status") or ""),
        amount_cents=int(_field(obj, "amount") or 0),
        client_secret=_field(obj, "client_secret"),
        customer_id=(str(customer) if customer else None),
        metadata={str(k): str(v) for k, v in dict(metadata).items()},
    )


class StripeBillingProvider:
    provider_code = "stripe"

    def __init__(self, api_key: str):
        self.api_key = api_key

    def create_customer(self, *, email: str, name: str, user_id: int) -> str:
        customer = stripe.Customer.create(
            api_key=self.api_key,
            email=email,
            name=name,
            metadata={"userId": str(user_id)},
        )
        return str(_field(customer, "id"))

    def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntentResponse:
        intent = stripe.PaymentIntent.create(
            api_key=self.api_key,
            amount=request.amount_cents,
            currency=request.currency,
            customer=request.customer_id,
            metadata=request.metadata,
        )
        return payment_intent_from_object(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResponse:
        intent = stripe.PaymentIntent.retrieve(payment_intent_id, api_key=self.api_key)
        return payment_intent_from_object(intent)


class NoopBillingProvider:
    provider_code = "none"

    def create_customer(self, *, email: str, name: str, user_id: int) -> str:
        raise NotImplementedError("Stripe não está configurado neste ambiente")

    def create_payment_intent(self, request: PaymentIntentRequest) -> PaymentIntentResponse:
        raise NotImplementedError("Stripe não está configurado neste ambiente")

    def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResponse:
        raise NotImplementedError("Stripe não está configurado neste ambiente")


def get_provider_adapter() -> BillingProviderAdapter:
    if settings.STRIPE_SECRET_KEY:
        return StripeBillingProvider(settings.STRIPE_SECRET_KEY)
    return NoopBillingProvider()


def verify_stripe_signature(raw_body: bytes, signature_header: str | None, secret: str, max_age_seconds: int) -> bool:
    if not signature_header:
        return False
    try:
        payload = raw_body.decode("utf-8")
    except UnicodeDecodeError:
        return False
    try:
        stripe.WebhookSignature.verify_header(payload, signature_header, secret, tolerance=max_age_seconds)
    except stripe.SignatureVerificationError:
        return False
    return True


def webhook_secret_configured() -> bool:
    return bool(settings.STRIPE_WEBHOOK_SECRET)


def verify_stripe_webhook_request(headers, raw_body: bytes) -> bool:
    secret = settings.STRIPE_WEBHOOK_SECRET
    if not secret:
        return False
    sig = headers.get("stripe-signature")
    return verify_stripe_signature(raw_body, sig, secret, int(settings.STRIPE_WEBHOOK_MAX_AGE_SECONDS))

from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field

PlanType = Literal["E-TOOL", "E-MASTER"]


class PlanOfferOut(BaseModel):
    plan_type: PlanType
    name: str
    description: str
    monthly_price: Decimal
    price_cents: int
    days: int
    min_months: int
    max_months: int
    discounted: bool = False


class PlanPricesOut(BaseModel):
    prices: dict[str, Decimal]


class PlanPaymentIntentIn(BaseModel):
    plan_type: PlanType
    months: int = Field(default=1, ge=1, le=12)


class PaymentIntentOut(BaseModel):
    payment_intent_id: str
    client_secret: str | None = None
    amount_cents: int
    currency: str


class ConfirmPaymentIn(BaseModel):
    payment_intent_id: str = Field(..., min_length=3, max_length=255)


class ConfirmPaymentOut(BaseModel):
    ok: bool = True
    kind: Literal["plan_upgrade", "course_purchase"]
    duplicate: bool = False
    role: str | None = None
    role_expiry_date: datetime | None = None
    course_id: int | None = None


class StripeWebhookOut(BaseModel):
    ok: bool = True
    provider: Literal["stripe"] = "stripe"
    event_id: str
    duplicate: bool
    processed: bool
    status: Literal["received", "processed", "ignored", "error"]


class PlanPriceIn(BaseModel):
    plan_type: PlanType
    monthly_price: Decimal = Field(..., gt=0)


class PlanPriceOut(BaseModel):
    plan_type: PlanType
    monthly_price: Decimal


class CoursePriceIn(BaseModel):
    course_id: int
    price: Decimal | None = Field(default=None, ge=0)


class CoursePriceOut(BaseModel):
    course_id: int
    price: Decimal | None = None

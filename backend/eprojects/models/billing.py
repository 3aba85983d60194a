import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from eprojects.core.security import now_utc
from eprojects.db.base import Base


class PlanPrice(Base):
    __tablename__ = "plan_prices"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    plan_type: Mapped[str] = mapped_column(sa.String(20), unique=True, nullable=False)
    monthly_price: Mapped[sa.Numeric] = mapped_column(sa.Numeric(10, 2), nullable=False)
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint("plan_type in ('E-TOOL','E-MASTER')", name="ck_plan_prices_plan_type"),
    )


class StripePayment(Base):
    __tablename__ = "stripe_payments"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    payment_intent_id: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    user_id: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    kind: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    amount: Mapped[sa.Numeric] = mapped_column(sa.Numeric(10, 2), nullable=False)
    processed_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint("kind in ('plan_upgrade','course_purchase')", name="ck_stripe_payments_kind"),
    )


class BillingWebhookEvent(Base):
    __tablename__ = "billing_webhook_events"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    provider: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="stripe", server_default="stripe")
    event_id: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    event_type: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    user_id: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    payload: Mapped[dict] = mapped_column(sa.JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="received", server_default="received")
    error_message: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    received_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())
    processed_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('received','processed','ignored','error')",
            name="ck_billing_webhook_events_status",
        ),
        sa.UniqueConstraint("provider", "event_id", name="uq_billing_webhook_events_provider_event_id"),
        sa.Index("ix_billing_webhook_events_status_received", "status", "received_at"),
    )

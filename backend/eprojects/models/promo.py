import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from eprojects.core.security import now_utc
from eprojects.db.base import Base


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(sa.String(64), unique=True, nullable=False)
    promo_type: Mapped[str] = mapped_column(sa.String(10), nullable=False, default="role", server_default="role")
    target_role: Mapped[str | None] = mapped_column(sa.String(20), nullable=True)
    course_id: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=True)
    days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    max_uses: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=1, server_default="1")
    used_count: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0, server_default="0")
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True, server_default=sa.true())
    expiry_date: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    created_by: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint("promo_type in ('role','course')", name="ck_promo_codes_type"),
        sa.CheckConstraint("days > 0", name="ck_promo_codes_days"),
        sa.CheckConstraint("max_uses > 0", name="ck_promo_codes_max_uses"),
        sa.CheckConstraint("used_count >= 0 and used_count <= max_uses", name="ck_promo_codes_used_count"),
    )


class PromoUsage(Base):
    __tablename__ = "promo_usage"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    promo_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    used_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.UniqueConstraint("promo_id", "user_id", name="uq_promo_usage_promo_user"),
        sa.Index("ix_promo_usage_user", "user_id"),
    )

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from eprojects.core.security import now_utc
from eprojects.db.base import Base


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    message: Mapped[str] = mapped_column(sa.Text, nullable=False)
    type: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="info", server_default="info")
    link: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    target_role: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="all", server_default="all")
    user_id: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True)
    is_read: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    created_by: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())
    expires_at: Mapped[sa.DateTime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        sa.CheckConstraint("type in ('info','warning','success','error','chat')", name="ck_notifications_type"),
        sa.CheckConstraint(
            "target_role in ('all','E-BASIC','E-TOOL','E-MASTER','admin','individual')",
            name="ck_notifications_target_role",
        ),
        sa.Index("ix_notifications_user_created", "user_id", "created_at"),
        sa.Index("ix_notifications_target_role", "target_role"),
    )

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eprojects.core.security import now_utc
from eprojects.db.base import Base


class ChatThread(Base):
    __tablename__ = "chat_threads"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    subject: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(10), nullable=False, default="open", server_default="open")
    is_user_unread: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    is_admin_unread: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True, server_default=sa.true())
    last_message_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint("status in ('open','closed')", name="ck_chat_threads_status"),
        sa.Index("ix_chat_threads_user_last", "user_id", "last_message_at"),
    )

    messages = relationship(
        "ChatMessage",
        back_populates="thread",
        cascade="all, delete-orphan",
        order_by="ChatMessage.created_at",
    )


class ChatMessage(Base):
    __tablename__ = "chat_messages"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    thread_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("chat_threads.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    message: Mapped[str] = mapped_column(sa.Text, nullable=False)
    is_admin_message: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.Index("ix_chat_messages_thread_created", "thread_id", "created_at"),
    )

    thread = relationship("ChatThread", back_populates="messages")

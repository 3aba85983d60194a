import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from eprojects.core.security import now_utc
from eprojects.db.base import Base


class Tool(Base):
    __tablename__ = "tools"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False, default="", server_default="")
    category: Mapped[str] = mapped_column(sa.String(30), nullable=False)
    access_level: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="E-BASIC", server_default="E-BASIC")
    link_type: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="external", server_default="external")
    link: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    custom_html: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    show_in_iframe: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    restricted_cpfs: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    average_rating: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0, server_default="0")
    total_ratings: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0, server_default="0")
    created_by: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint(
            "category in ('mechanical','electrical','textile','informatics','chemical')",
            name="ck_tools_category",
        ),
        sa.CheckConstraint("access_level in ('E-BASIC','E-TOOL','E-MASTER')", name="ck_tools_access_level"),
        sa.CheckConstraint("link_type in ('internal','external','custom')", name="ck_tools_link_type"),
        sa.Index("ix_tools_category", "category"),
    )


class ToolRating(Base):
    __tablename__ = "tool_ratings"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    tool_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("tools.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    rating: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint("rating between 1 and 5", name="ck_tool_ratings_rating"),
        sa.UniqueConstraint("tool_id", "user_id", name="uq_tool_ratings_tool_user"),
    )

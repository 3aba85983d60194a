import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from eprojects.core.security import now_utc
from eprojects.db.base import Base


class Course(Base):
    __tablename__ = "courses"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False, default="", server_default="")
    instructor: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    duration: Mapped[str] = mapped_column(sa.String(60), nullable=False)
    level: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="beginner", server_default="beginner")
    category: Mapped[str] = mapped_column(sa.String(60), nullable=False)
    image_url: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    price: Mapped[sa.Numeric | None] = mapped_column(sa.Numeric(10, 2), nullable=True)
    requires_promo_code: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    is_hidden: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False, server_default=sa.false())
    created_by: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())
    updated_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint("level in ('beginner','intermediate','advanced')", name="ck_courses_level"),
    )

    lessons = relationship("Lesson", back_populates="course", cascade="all, delete-orphan", order_by="Lesson.order")
    materials = relationship("Material", back_populates="course", cascade="all, delete-orphan", order_by="Material.id")

    @property
    def is_free(self) -> bool:
        return self.price is None or self.price <= 0


class Lesson(Base):
    __tablename__ = "lessons"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False, default="", server_default="")
    video_url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    video_source: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="youtube", server_default="youtube")
    order: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint("video_source in ('youtube','drive')", name="ck_lessons_video_source"),
        sa.Index("ix_lessons_course_order", "course_id", "order"),
    )

    course = relationship("Course", back_populates="lessons")


class Material(Base):
    __tablename__ = "materials"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    course_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    lesson_id: Mapped[int | None] = mapped_column(sa.Integer, sa.ForeignKey("lessons.id", ondelete="SET NULL"), nullable=True)
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    description: Mapped[str] = mapped_column(sa.Text, nullable=False, default="", server_default="")
    file_url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    file_type: Mapped[str] = mapped_column(sa.String(20), nullable=False)
    icon_type: Mapped[str] = mapped_column(sa.String(20), nullable=False, default="file", server_default="file")
    downloadable: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True, server_default=sa.true())
    created_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())

    __table_args__ = (
        sa.CheckConstraint(
            "file_type in ('pdf','doc','xls','ppt','zip','img','link','object')",
            name="ck_materials_file_type",
        ),
        sa.CheckConstraint("icon_type in ('file','link','object')", name="ck_materials_icon_type"),
    )

    course = relationship("Course", back_populates="materials")


class CoursePurchase(Base):
    __tablename__ = "course_purchases"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    course_id: Mapped[int] = mapped_column(sa.Integer, sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False)
    price: Mapped[sa.Numeric] = mapped_column(sa.Numeric(10, 2), nullable=False)
    stripe_payment_id: Mapped[str | None] = mapped_column(sa.Text, unique=True, nullable=True)
    purchased_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False, default=now_utc, server_default=sa.func.now())
    expires_at: Mapped[sa.DateTime] = mapped_column(sa.DateTime(timezone=True), nullable=False)
    active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True, server_default=sa.true())

    __table_args__ = (
        sa.Index("ix_course_purchases_user_course", "user_id", "course_id"),
        sa.Index("ix_course_purchases_active_expiry", "active", "expires_at"),
    )

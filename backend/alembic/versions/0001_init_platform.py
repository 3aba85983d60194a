"""platform schema: users, sessions, tools, courses, promos, billing, chat

Revision ID: 0001_init_platform
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init_platform"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = False):
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(80), nullable=False, unique=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.Text(), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="E-BASIC"),
        _ts("role_expiry_date", nullable=True),
        sa.Column("cpf", sa.String(11), nullable=True, unique=True),
        sa.Column("disable_password_recovery", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("reset_token", sa.Text(), nullable=True),
        _ts("reset_token_expiry", nullable=True),
        sa.Column("stripe_customer_id", sa.Text(), nullable=True),
        sa.Column("stripe_subscription_id", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("last_login_at", nullable=True),
        sa.CheckConstraint("role in ('E-BASIC','E-TOOL','E-MASTER','admin')", name="ck_user_role"),
    )
    op.create_index("ix_users_role_expiry", "users", ["role", "role_expiry_date"])

    op.create_table(
        "active_sessions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_id", sa.String(64), nullable=False, unique=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        _ts("last_activity"),
        _ts("created_at"),
    )
    op.create_index("ix_active_sessions_user", "active_sessions", ["user_id"])

    op.create_table(
        "tools",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("category", sa.String(30), nullable=False),
        sa.Column("access_level", sa.String(20), nullable=False, server_default="E-BASIC"),
        sa.Column("link_type", sa.String(20), nullable=False, server_default="external"),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("custom_html", sa.Text(), nullable=True),
        sa.Column("show_in_iframe", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("restricted_cpfs", sa.Text(), nullable=True),
        sa.Column("average_rating", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_ratings", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint(
            "category in ('mechanical','electrical','textile','informatics','chemical')",
            name="ck_tools_category",
        ),
        sa.CheckConstraint("access_level in ('E-BASIC','E-TOOL','E-MASTER')", name="ck_tools_access_level"),
        sa.CheckConstraint("link_type in ('internal','external','custom')", name="ck_tools_link_type"),
    )
    op.create_index("ix_tools_category", "tools", ["category"])

    op.create_table(
        "tool_ratings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tool_id", sa.Integer(), sa.ForeignKey("tools.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("rating between 1 and 5", name="ck_tool_ratings_rating"),
        sa.UniqueConstraint("tool_id", "user_id", name="uq_tool_ratings_tool_user"),
    )

    op.create_table(
        "courses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("instructor", sa.String(120), nullable=False),
        sa.Column("duration", sa.String(60), nullable=False),
        sa.Column("level", sa.String(20), nullable=False, server_default="beginner"),
        sa.Column("category", sa.String(60), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("price", sa.Numeric(10, 2), nullable=True),
        sa.Column("requires_promo_code", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_hidden", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("level in ('beginner','intermediate','advanced')", name="ck_courses_level"),
    )

    op.create_table(
        "lessons",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("video_url", sa.Text(), nullable=False),
        sa.Column("video_source", sa.String(20), nullable=False, server_default="youtube"),
        sa.Column("order", sa.Integer(), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("video_source in ('youtube','drive')", name="ck_lessons_video_source"),
    )
    op.create_index("ix_lessons_course_order", "lessons", ["course_id", "order"])

    op.create_table(
        "materials",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("lesson_id", sa.Integer(), sa.ForeignKey("lessons.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("file_url", sa.Text(), nullable=False),
        sa.Column("file_type", sa.String(20), nullable=False),
        sa.Column("icon_type", sa.String(20), nullable=False, server_default="file"),
        sa.Column("downloadable", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("created_at"),
        sa.CheckConstraint(
            "file_type in ('pdf','doc','xls','ppt','zip','img','link','object')",
            name="ck_materials_file_type",
        ),
        sa.CheckConstraint("icon_type in ('file','link','object')", name="ck_materials_icon_type"),
    )

    op.create_table(
        "course_purchases",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("stripe_payment_id", sa.Text(), nullable=True, unique=True),
        _ts("purchased_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    )
    op.create_index("ix_course_purchases_user_course", "course_purchases", ["user_id", "course_id"])
    op.create_index("ix_course_purchases_active_expiry", "course_purchases", ["active", "expires_at"])

    op.create_table(
        "promo_codes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(64), nullable=False, unique=True),
        sa.Column("promo_type", sa.String(10), nullable=False, server_default="role"),
        sa.Column("target_role", sa.String(20), nullable=True),
        sa.Column("course_id", sa.Integer(), sa.ForeignKey("courses.id", ondelete="CASCADE"), nullable=True),
        sa.Column("days", sa.Integer(), nullable=False),
        sa.Column("max_uses", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("expiry_date", nullable=True),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("promo_type in ('role','course')", name="ck_promo_codes_type"),
        sa.CheckConstraint("days > 0", name="ck_promo_codes_days"),
        sa.CheckConstraint("max_uses > 0", name="ck_promo_codes_max_uses"),
        sa.CheckConstraint("used_count >= 0 and used_count <= max_uses", name="ck_promo_codes_used_count"),
    )

    op.create_table(
        "promo_usage",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("promo_id", sa.Integer(), sa.ForeignKey("promo_codes.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        _ts("used_at"),
        sa.UniqueConstraint("promo_id", "user_id", name="uq_promo_usage_promo_user"),
    )
    op.create_index("ix_promo_usage_user", "promo_usage", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False, server_default="info"),
        sa.Column("link", sa.Text(), nullable=True),
        sa.Column("target_role", sa.String(20), nullable=False, server_default="all"),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at"),
        _ts("expires_at", nullable=True),
        sa.CheckConstraint("type in ('info','warning','success','error','chat')", name="ck_notifications_type"),
        sa.CheckConstraint(
            "target_role in ('all','E-BASIC','E-TOOL','E-MASTER','admin','individual')",
            name="ck_notifications_target_role",
        ),
    )
    op.create_index("ix_notifications_user_created", "notifications", ["user_id", "created_at"])
    op.create_index("ix_notifications_target_role", "notifications", ["target_role"])

    op.create_table(
        "chat_threads",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subject", sa.String(200), nullable=False),
        sa.Column("status", sa.String(10), nullable=False, server_default="open"),
        sa.Column("is_user_unread", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_admin_unread", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("last_message_at"),
        _ts("created_at"),
        sa.CheckConstraint("status in ('open','closed')", name="ck_chat_threads_status"),
    )
    op.create_index("ix_chat_threads_user_last", "chat_threads", ["user_id", "last_message_at"])

    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("thread_id", sa.Integer(), sa.ForeignKey("chat_threads.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("is_admin_message", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        _ts("created_at"),
    )
    op.create_index("ix_chat_messages_thread_created", "chat_messages", ["thread_id", "created_at"])

    op.create_table(
        "plan_prices",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("plan_type", sa.String(20), nullable=False, unique=True),
        sa.Column("monthly_price", sa.Numeric(10, 2), nullable=False),
        _ts("updated_at"),
        sa.CheckConstraint("plan_type in ('E-TOOL','E-MASTER')", name="ck_plan_prices_plan_type"),
    )

    op.create_table(
        "stripe_payments",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("payment_intent_id", sa.String(255), nullable=False, unique=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        _ts("processed_at"),
        sa.CheckConstraint("kind in ('plan_upgrade','course_purchase')", name="ck_stripe_payments_kind"),
    )

    op.create_table(
        "billing_webhook_events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("provider", sa.String(20), nullable=False, server_default="stripe"),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("event_type", sa.String(255), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("status", sa.String(20), nullable=False, server_default="received"),
        sa.Column("error_message", sa.Text(), nullable=True),
        _ts("received_at"),
        _ts("processed_at", nullable=True),
        sa.CheckConstraint(
            "status IN ('received','processed','ignored','error')",
            name="ck_billing_webhook_events_status",
        ),
        sa.UniqueConstraint("provider", "event_id", name="uq_billing_webhook_events_provider_event_id"),
    )
    op.create_index(
        "ix_billing_webhook_events_status_received",
        "billing_webhook_events",
        ["status", "received_at"],
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("entity_type", sa.Text(), nullable=False),
        sa.Column("entity_id", sa.Text(), nullable=False),
        sa.Column("action", sa.Text(), nullable=False),
        sa.Column("data", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        _ts("created_at"),
    )
    op.create_index("ix_audit_entity", "audit_log", ["entity_type", "entity_id"])
    op.create_index("ix_audit_actor_created", "audit_log", ["actor_user_id", "created_at"])


def downgrade():
    op.drop_index("ix_audit_actor_created", table_name="audit_log")
    op.drop_index("ix_audit_entity", table_name="audit_log")
    op.drop_table("audit_log")

    op.drop_index("ix_billing_webhook_events_status_received", table_name="billing_webhook_events")
    op.drop_table("billing_webhook_events")
    op.drop_table("stripe_payments")
    op.drop_table("plan_prices")

    op.drop_index("ix_chat_messages_thread_created", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_chat_threads_user_last", table_name="chat_threads")
    op.drop_table("chat_threads")

    op.drop_index("ix_notifications_target_role", table_name="notifications")
    op.drop_index("ix_notifications_user_created", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_promo_usage_user", table_name="promo_usage")
    op.drop_table("promo_usage")
    op.drop_table("promo_codes")

    op.drop_index("ix_course_purchases_active_expiry", table_name="course_purchases")
    op.drop_index("ix_course_purchases_user_course", table_name="course_purchases")
    op.drop_table("course_purchases")
    op.drop_table("materials")
    op.drop_index("ix_lessons_course_order", table_name="lessons")
    op.drop_table("lessons")
    op.drop_table("courses")

    op.drop_table("tool_ratings")
    op.drop_index("ix_tools_category", table_name="tools")
    op.drop_table("tools")

    op.drop_index("ix_active_sessions_user", table_name="active_sessions")
    op.drop_table("active_sessions")

    op.drop_index("ix_users_role_expiry", table_name="users")
    op.drop_table("users")

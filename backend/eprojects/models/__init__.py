from eprojects.models.user import User, ActiveSession
from eprojects.models.tool import Tool, ToolRating
from eprojects.models.course import Course, Lesson, Material, CoursePurchase
from eprojects.models.promo import PromoCode, PromoUsage
from eprojects.models.notification import Notification
from eprojects.models.chat import ChatThread, ChatMessage
from eprojects.models.audit_log import AuditLog
from eprojects.models.billing import (
    BillingWebhookEvent,
    PlanPrice,
    StripePayment,
)

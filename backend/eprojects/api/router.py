from fastapi import APIRouter
from eprojects.modules.admin import api as admin
from eprojects.modules.auth import api as auth
from eprojects.modules.billing import api as billing
from eprojects.modules.chat import api as chat
from eprojects.modules.courses import api as courses
from eprojects.modules.notifications import api as notifications
from eprojects.modules.promocodes import api as promocodes
from eprojects.modules.tools import api as tools
from eprojects.modules.users import api as users

router = APIRouter()
router.include_router(auth.router, prefix="", tags=["auth"])
router.include_router(users.router, prefix="/users", tags=["users"])
router.include_router(tools.router, prefix="/tools", tags=["tools"])
router.include_router(courses.router, prefix="/courses", tags=["courses"])
router.include_router(promocodes.router, prefix="/promocodes", tags=["promocodes"])
router.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
router.include_router(chat.router, prefix="/chat", tags=["chat"])
router.include_router(billing.router, prefix="", tags=["billing"])
router.include_router(admin.router, prefix="/admin", tags=["admin"])

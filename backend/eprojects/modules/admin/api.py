import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from eprojects.api.deps import require_admin
from eprojects.db.session import get_db
from eprojects.schemas.admin import DowngradedUserOut, ExpirySweepOut
from eprojects.services.audit import audit
from eprojects.services.expiry import SweepStats, downgrade_expired_roles, run_expiry_sweep

logger = logging.getLogger(__name__)

router = APIRouter()


def _sweep_out(stats: SweepStats) -> ExpirySweepOut:
    return ExpirySweepOut(
        deactivated_purchases=stats.deactivated_purchases,
        downgraded_count=stats.downgraded_count,
        downgraded_users=[
            DowngradedUserOut(user_id=u.user_id, username=u.username, previous_role=u.previous_role)
            for u in stats.downgraded_users
        ],
    )


@router.post("/force-expiration-check", response_model=ExpirySweepOut)
def force_expiration_check(db: Session = Depends(get_db), current=Depends(require_admin)):
    logger.info("manual expiry sweep requested by admin user_id=%s", current.id)
    stats = run_expiry_sweep(db)
    audit(
        db,
        current.id,
        "expiry_sweep",
        current.id,
        "manual_run",
        {"deactivated_purchases": stats.deactivated_purchases, "downgraded": stats.downgraded_count},
    )
    db.commit()
    return _sweep_out(stats)


@router.post("/check-expired-plans", response_model=ExpirySweepOut)
def check_expired_plans(db: Session = Depends(get_db), current=Depends(require_admin)):
    stats = SweepStats(downgraded_users=downgrade_expired_roles(db))
    audit(db, current.id, "expiry_sweep", current.id, "plans_checked", {"downgraded": stats.downgraded_count})
    db.commit()
    return _sweep_out(stats)

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

import sqlalchemy as sa
from sqlalchemy.orm import Session, sessionmaker

from eprojects.core.security import now_utc
from eprojects.models.course import CoursePurchase
from eprojects.models.user import User
from eprojects.services.entitlements import BASIC_ROLE, PAID_ROLES
from eprojects.services.notifications import notify_user

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DowngradedUser:
    user_id: int
    username: str
    previous_role: str


@dataclass
class SweepStats:
    deactivated_purchases: int = 0
    downgraded_users: list[DowngradedUser] = field(default_factory=list)

    @property
    def downgraded_count(self) -> int:
        return len(self.downgraded_users)


def expired_roles_predicate(now: datetime):
    return sa.and_(
        User.role.in_(PAID_ROLES),
        User.role_expiry_date.is_not(None),
        User.role_expiry_date < now,
    )


def deactivate_expired_purchases(db: Session, now: datetime | None = None) -> int:
    at = now or now_utc()
    result = db.execute(
        sa.update(CoursePurchase)
        .where(CoursePurchase.active.is_(True), CoursePurchase.expires_at < at)
        .values(active=False)
        .execution_options(synchronize_session=False)
    )
    return int(result.rowcount or 0)


def downgrade_expired_roles(db: Session, now: datetime | None = None) -> list[DowngradedUser]:
    at = now or now_utc()
    users = list(db.execute(sa.select(User).where(expired_roles_predicate(at)).order_by(User.id)).scalars())
    out: list[DowngradedUser] = []
    for user in users:
        previous_role = user.role
        user.role = BASIC_ROLE
        user.role_expiry_date = None
        notify_user(
            db,
            user_id=user.id,
            title="Plano Expirado",
            message=(
                f"Seu upgrade para {previous_role} expirou e sua conta foi revertida para E-BASIC. "
                "Para continuar usando as funcionalidades avançadas, adquira um novo plano ou use um código promocional."
            ),
            type="warning",
        )
        out.append(DowngradedUser(user_id=user.id, username=user.username, previous_role=previous_role))
        logger.info("role expired user_id=%s username=%s from=%s", user.id, user.username, previous_role)
    db.flush()
    return out


def run_expiry_sweep(db: Session, now: datetime | None = None) -> SweepStats:
    at = now or now_utc()
    stats = SweepStats()
    stats.deactivated_purchases = deactivate_expired_purchases(db, now=at)
    stats.downgraded_users = downgrade_expired_roles(db, now=at)
    logger.info(
        "expiry sweep done deactivated_purchases=%s downgraded_users=%s",
        stats.deactivated_purchases,
        stats.downgraded_count,
    )
    return stats


def run_expiry_sweep_once(session_factory: sessionmaker) -> SweepStats | None:
    """Run one sweep in its own transaction. Errors are logged and swallowed."""
    db = session_factory()
    try:
        stats = run_expiry_sweep(db)
        db.commit()
        return stats
    except Exception:
        db.rollback()
        logger.exception("expiry sweep failed")
        return None
    finally:
        db.close()


class ExpirySweeper:
    def __init__(self, session_factory: sessionmaker, interval_seconds: int):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task | None = None

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            await asyncio.to_thread(run_expiry_sweep_once, self.session_factory)

    def start(self):
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info("expiry sweeper started interval_seconds=%s", self.interval_seconds)

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("expiry sweeper stopped")

"""
Company invitation housekeeping.

Pending invitations past expires_at are marked expired, and pending
invitations without a token (left behind by an interrupted invite) are
deleted. Runs per company on demand and for every company as a daily
scheduled job (APScheduler).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import async_session_maker
from app.models.company import CompanyInvitation

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    expired: int = 0
    deleted: int = 0


def new_invitation_token() -> str:
    return str(uuid.uuid4())


def invitation_expiry(ttl_days: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(days=ttl_days)


def is_expired(invitation: CompanyInvitation, now: Optional[datetime] = None) -> bool:
    now = now or datetime.now(timezone.utc)
    expires_at = invitation.expires_at
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at < now


async def cleanup_invitations(
    db: AsyncSession,
    company_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> CleanupResult:
    """
    Expire stale pending invitations and drop tokenless ones.

    Limited to one company when company_id is given. The caller commits.
    """
    now = now or datetime.now(timezone.utc)

    expire_stmt = (
        update(CompanyInvitation)
        .where(
            CompanyInvitation.status == "pending",
            CompanyInvitation.expires_at < now,
        )
        .values(status="expired")
        .execution_options(synchronize_session=False)
    )
    delete_stmt = (
        delete(CompanyInvitation)
        .where(
            CompanyInvitation.status == "pending",
            CompanyInvitation.token.is_(None),
        )
        .execution_options(synchronize_session=False)
    )
    if company_id is not None:
        expire_stmt = expire_stmt.where(CompanyInvitation.company_id == company_id)
        delete_stmt = delete_stmt.where(CompanyInvitation.company_id == company_id)

    expired = (await db.execute(expire_stmt)).rowcount or 0
    deleted = (await db.execute(delete_stmt)).rowcount or 0
    return CleanupResult(expired=expired, deleted=deleted)


async def expire_stale_invitations() -> None:
    """
    Entry point for the daily cleanup job.

    Creates its own DB session (not a request-scoped dependency).
    """
    logger.info("Starting invitation cleanup")
    async with async_session_maker() as db:
        try:
            result = await cleanup_invitations(db)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Invitation cleanup failed")
            return
    logger.info(
        "Invitation cleanup done: %d expired, %d deleted",
        result.expired,
        result.deleted,
    )

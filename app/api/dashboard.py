"""
Dashboard endpoints - statistics for the signed-in user.
"""

from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel
from sqlalchemy import select, func

from app.api.deps import DbSession, CurrentUser
from app.models.mandat import Mandat

router = APIRouter()


class DashboardStats(BaseModel):
    mandats_count: int
    company_mandats_pending: Optional[int] = None
    company_mandats_approved: Optional[int] = None
    company_mandats_rejected: Optional[int] = None
    claimed_mandats: Optional[int] = None


@router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(db: DbSession, current_user: CurrentUser):
    """
    Mandats created by the caller, plus company-level counts when the caller
    belongs to a company.
    """
    mandats_count = (await db.execute(
        select(func.count(Mandat.id)).where(Mandat.created_by == current_user.user_id)
    )).scalar() or 0

    stats = DashboardStats(mandats_count=mandats_count)
    if current_user.company_id is None:
        return stats

    if current_user.company_type == "transporteur":
        stats.claimed_mandats = (await db.execute(
            select(func.count(Mandat.id)).where(Mandat.transporteur_company_id == current_user.company_id)
        )).scalar() or 0
        return stats

    rows = (await db.execute(
        select(Mandat.status, func.count(Mandat.id))
        .where(Mandat.company_id == current_user.company_id)
        .group_by(Mandat.status)
    )).all()
    counts = {"pending": 0, "approved": 0, "rejected": 0}
    for status_value, count in rows:
        counts[status_value or "pending"] += count

    stats.company_mandats_pending = counts["pending"]
    stats.company_mandats_approved = counts["approved"]
    stats.company_mandats_rejected = counts["rejected"]
    return stats

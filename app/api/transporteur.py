"""
Transporter side of the marketplace: browse approved mandats, claim one,
and report pickup and delivery.
"""

import logging
from datetime import datetime
from typing import List, Literal, Optional, Tuple

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import select, tuple_

from app.api.deps import DbSession, Transporteur
from app.api.mandats import MandatOut, to_mandat_out
from app.models.company import Company
from app.models.mandat import Mandat
from app.services.mandat_claims import (
    ClaimOutcome,
    InvalidTransitionError,
    STATUS_TO_PHASE,
    advance_status,
    claim_mandat,
)
from app.services.mandat_normalizer import normalize_mandat

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ SCHEMAS ============

class MarketplaceMandat(MandatOut):
    company_name: Optional[str] = None


class Pagination(BaseModel):
    has_more: bool
    next_cursor: Optional[str] = None
    sort_order: str


class MandatPage(BaseModel):
    mandats: List[MarketplaceMandat]
    pagination: Pagination


class StatusUpdate(BaseModel):
    status: str


class ClaimResponse(BaseModel):
    success: bool = True
    mandat: MandatOut
    message: str


# ============ HELPERS ============

def encode_cursor(mandat: Mandat) -> str:
    return f"{mandat.created_at.isoformat()}_{mandat.id}"


def decode_cursor(cursor: str) -> Tuple[datetime, Optional[int]]:
    """
    Split a "<created_at>_<id>" cursor. A bare timestamp is accepted too and
    yields no id.
    """
    created_at, _, mandat_id = cursor.rpartition("_")
    try:
        if not created_at:
            return datetime.fromisoformat(cursor), None
        return datetime.fromisoformat(created_at), int(mandat_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid cursor")


async def _page(db, query, sort: str, cursor: Optional[str], limit: int) -> MandatPage:
    """Keyset pagination on (created_at, id), one extra row to know if more follow."""
    position = decode_cursor(cursor) if cursor else None
    if position is not None:
        created_at, mandat_id = position
        if mandat_id is None:
            key, bound = Mandat.created_at, created_at
        else:
            key, bound = tuple_(Mandat.created_at, Mandat.id), tuple_(created_at, mandat_id)
        query = query.where(key > bound if sort == "asc" else key < bound)

    if sort == "asc":
        query = query.order_by(Mandat.created_at.asc(), Mandat.id.asc())
    else:
        query = query.order_by(Mandat.created_at.desc(), Mandat.id.desc())

    rows = (await db.execute(query.limit(limit + 1))).all()
    has_more = len(rows) > limit
    rows = rows[:limit]

    mandats = [
        MarketplaceMandat(**to_mandat_out(normalize_mandat(m)).model_dump(), company_name=company_name)
        for m, company_name in rows
    ]
    return MandatPage(
        mandats=mandats,
        pagination=Pagination(
            has_more=has_more,
            next_cursor=encode_cursor(rows[-1][0]) if rows else None,
            sort_order=sort,
        ),
    )


# ============ ENDPOINTS ============

@router.get("/marketplace", response_model=MandatPage)
async def marketplace(
    db: DbSession,
    ctx: Transporteur,
    cursor: Optional[str] = Query(None, description="next_cursor of the previous page"),
    limit: int = Query(10, ge=1, le=50),
    sort: Literal["asc", "desc"] = Query("desc"),
):
    """Approved mandats nobody has claimed yet."""
    query = (
        select(Mandat, Company.name)
        .join(Company, Company.id == Mandat.company_id)
        .where(
            Mandat.status == "approved",
            Mandat.transporteur_company_id.is_(None),
        )
    )
    return await _page(db, query, sort, cursor, limit)


@router.get("/mine", response_model=MandatPage)
async def my_mandats(
    db: DbSession,
    ctx: Transporteur,
    cursor: Optional[str] = Query(None),
    limit: int = Query(10, ge=1, le=50),
    sort: Literal["asc", "desc"] = Query("desc"),
):
    """Mandats claimed by the caller's company."""
    query = (
        select(Mandat, Company.name)
        .join(Company, Company.id == Mandat.company_id)
        .where(Mandat.transporteur_company_id == ctx.company_id)
    )
    return await _page(db, query, sort, cursor, limit)


@router.post("/{mandat_id}/accept", response_model=ClaimResponse)
async def accept_mandat(mandat_id: int, db: DbSession, ctx: Transporteur):
    """
    Claim a mandat for the caller's company.

    Only one transporter can win: a concurrent or later claim gets 409.
    """
    result = await claim_mandat(db, mandat_id, ctx.company_id, ctx.user_id)

    if result.outcome == ClaimOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mandat not found or not available")
    if result.outcome == ClaimOutcome.ALREADY_CLAIMED:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Mandat already accepted by another transporter",
        )

    await db.commit()
    return ClaimResponse(
        mandat=to_mandat_out(normalize_mandat(result.mandat)),
        message="Mandat accepted",
    )


@router.patch("/{mandat_id}/status", response_model=ClaimResponse)
async def update_status(
    mandat_id: int,
    update: StatusUpdate,
    db: DbSession,
    ctx: Transporteur,
):
    """Report progress: picked_up, delivered or delivery_problem."""
    if update.status not in STATUS_TO_PHASE:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid status. Allowed: {', '.join(STATUS_TO_PHASE)}",
        )

    try:
        mandat = await advance_status(db, mandat_id, ctx.company_id, update.status)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    if mandat is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Mandat not found or not assigned to your company",
        )

    await db.commit()
    return ClaimResponse(
        mandat=to_mandat_out(normalize_mandat(mandat)),
        message=f"Status updated to {update.status}",
    )

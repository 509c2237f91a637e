"""
Platform administration: company and mandat moderation, pricing sets, stats.

Administrators are the accounts whose email is listed in ADMIN_EMAILS.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy import func, or_, select, update

from app.api.deps import Cache, DbSession, PlatformAdmin, invalidate_sessions
from app.api.company import CompanyResponse
from app.api.mandats import MandatOut, to_mandat_out
from app.models.company import Company, CompanyMember
from app.models.mandat import Mandat
from app.models.pricing_set import PricingSet
from app.models.user import User
from app.services.email_service import EmailService, get_email_service
from app.services.mandat_normalizer import normalize_mandat
from app.services.quote_calculator import PricingVariables, supplements_from_list

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_REJECTION_REASON = "Motif non spécifié"


# ============ SCHEMAS ============

class CompanyListResponse(BaseModel):
    items: List[CompanyResponse]
    total: int
    page: int
    limit: int


class AdminMandatListResponse(BaseModel):
    items: List[MandatOut]
    total: int
    page: int
    limit: int


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class SupplementIn(BaseModel):
    nom: str
    type: str = "fixe"
    montant: float = 0

    @field_validator("type")
    @classmethod
    def validate_type(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v == "fix":
            return "fixe"
        if v not in ("pct", "fixe"):
            raise ValueError("type must be 'pct' or 'fixe'")
        return v


class PricingVariablesIn(BaseModel):
    tarif_km_base_chf: float = Field(0, ge=0)
    maj_carburant_pct: float = Field(0, ge=0)
    maj_embouteillage_pct: float = Field(0, ge=0)
    tva_rate_pct: float = Field(0, ge=0)


class PricingSetCreate(BaseModel):
    name: str = Field(..., min_length=1)
    variables: PricingVariablesIn
    supplements: List[SupplementIn] = []


class PricingSetResponse(BaseModel):
    id: int
    name: str
    variables: Dict[str, Any]
    supplements: List[Dict[str, Any]]
    is_active: bool
    activated_at: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class StatusCounts(BaseModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class AdminStats(BaseModel):
    companies: StatusCounts
    mandats: StatusCounts


# ============ HELPERS ============

async def get_company_or_404(db, company_id: uuid.UUID) -> Company:
    company = await db.get(Company, company_id)
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return company


async def get_mandat_or_404(db, mandat_id: int) -> Mandat:
    mandat = await db.get(Mandat, mandat_id)
    if not mandat:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mandat not found")
    return mandat


async def get_pricing_set_or_404(db, pricing_set_id: int) -> PricingSet:
    pricing_set = await db.get(PricingSet, pricing_set_id)
    if not pricing_set:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pricing set not found")
    return pricing_set


async def company_member_ids(db, company_id: uuid.UUID) -> List[uuid.UUID]:
    result = await db.execute(select(CompanyMember.user_id).where(CompanyMember.company_id == company_id))
    return list(result.scalars().all())


async def company_contact(db, company: Company) -> tuple:
    """(email, name) of whoever should hear about a moderation decision."""
    creator = await db.get(User, company.created_by) if company.created_by else None
    if creator:
        return creator.email, creator.name
    return company.billing_email, company.name


def _count_by_status(rows) -> StatusCounts:
    counts = StatusCounts()
    for status_value, count in rows:
        key = status_value or "pending"
        setattr(counts, key, getattr(counts, key) + count)
        counts.total += count
    return counts


# ============ COMPANIES ============

@router.get("/companies", response_model=CompanyListResponse)
async def list_companies(
    db: DbSession,
    admin: PlatformAdmin,
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(pending|approved|rejected|all)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    query = select(Company)
    count_query = select(func.count(Company.id))
    if status_filter and status_filter != "all":
        query = query.where(Company.status == status_filter)
        count_query = count_query.where(Company.status == status_filter)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(Company.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    return CompanyListResponse(
        items=[CompanyResponse.model_validate(c) for c in result.scalars().all()],
        total=total,
        page=page,
        limit=limit,
    )


@router.post("/companies/{company_id}/approve", response_model=CompanyResponse)
async def approve_company(
    company_id: uuid.UUID,
    db: DbSession,
    admin: PlatformAdmin,
    cache: Cache,
    email_service: EmailService = Depends(get_email_service),
):
    company = await get_company_or_404(db, company_id)
    if company.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Company is already {company.status}",
        )

    company.status = "approved"
    company.rejection_reason = None
    await db.commit()
    await db.refresh(company)
    invalidate_sessions(cache, *await company_member_ids(db, company.id))
    logger.info("Company %s approved by %s", company.id, admin.email)

    to, name = await company_contact(db, company)
    if not email_service.send_company_approved(to, name, company):
        logger.warning("Approval email for company %s not sent", company.id)

    return company


@router.post("/companies/{company_id}/reject", response_model=CompanyResponse)
async def reject_company(
    company_id: uuid.UUID,
    data: RejectRequest,
    db: DbSession,
    admin: PlatformAdmin,
    cache: Cache,
    email_service: EmailService = Depends(get_email_service),
):
    company = await get_company_or_404(db, company_id)
    if company.status != "pending":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Company is already {company.status}",
        )

    reason = (data.reason or "").strip() or DEFAULT_REJECTION_REASON
    company.status = "rejected"
    company.rejection_reason = reason
    await db.commit()
    await db.refresh(company)
    invalidate_sessions(cache, *await company_member_ids(db, company.id))
    logger.info("Company %s rejected by %s: %s", company.id, admin.email, reason)

    to, name = await company_contact(db, company)
    if not email_service.send_company_rejected(to, name, company, reason):
        logger.warning("Rejection email for company %s not sent", company.id)

    return company


# ============ MANDATS ============

@router.get("/mandats", response_model=AdminMandatListResponse)
async def list_mandats_for_moderation(
    db: DbSession,
    admin: PlatformAdmin,
    status_filter: Optional[str] = Query(None, alias="status", pattern="^(pending|approved|rejected|all)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """Mandats by moderation status. NULL status counts as pending."""
    query = select(Mandat)
    count_query = select(func.count(Mandat.id))
    if status_filter and status_filter != "all":
        if status_filter == "pending":
            condition = or_(Mandat.status.is_(None), Mandat.status == "pending")
        else:
            condition = Mandat.status == status_filter
        query = query.where(condition)
        count_query = count_query.where(condition)

    total = (await db.execute(count_query)).scalar() or 0
    result = await db.execute(
        query.order_by(Mandat.created_at.desc()).offset((page - 1) * limit).limit(limit)
    )
    mandats = result.scalars().all()

    creator_ids = {m.created_by for m in mandats if m.created_by}
    creators = {}
    if creator_ids:
        users = await db.execute(select(User).where(User.uid.in_(creator_ids)))
        creators = {u.uid: u for u in users.scalars().all()}

    return AdminMandatListResponse(
        items=[to_mandat_out(normalize_mandat(m), creators.get(m.created_by)) for m in mandats],
        total=total,
        page=page,
        limit=limit,
    )


async def _moderate_mandat(db, mandat_id: int, admin, new_status: str, reason: Optional[str]) -> Mandat:
    mandat = await get_mandat_or_404(db, mandat_id)
    current = mandat.status or "pending"
    if current != "pending":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Mandat is already {current}",
        )

    mandat.status = new_status
    mandat.rejection_reason = reason
    mandat.moderated_by = admin.email
    mandat.moderated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(mandat)
    logger.info("Mandat %s %s by %s", mandat.id, new_status, admin.email)
    return mandat


@router.post("/mandats/{mandat_id}/approve", response_model=MandatOut)
async def approve_mandat(
    mandat_id: int,
    db: DbSession,
    admin: PlatformAdmin,
    email_service: EmailService = Depends(get_email_service),
):
    """Publish a pending mandat on the marketplace."""
    mandat = await _moderate_mandat(db, mandat_id, admin, "approved", None)
    view = normalize_mandat(mandat)

    creator = await db.get(User, mandat.created_by) if mandat.created_by else None
    if creator and not email_service.send_mandat_approved(creator.email, creator.name, view):
        logger.warning("Approval email for mandat %s not sent", mandat.id)

    return to_mandat_out(view, creator)


@router.post("/mandats/{mandat_id}/reject", response_model=MandatOut)
async def reject_mandat(
    mandat_id: int,
    data: RejectRequest,
    db: DbSession,
    admin: PlatformAdmin,
    email_service: EmailService = Depends(get_email_service),
):
    reason = (data.reason or "").strip() or DEFAULT_REJECTION_REASON
    mandat = await _moderate_mandat(db, mandat_id, admin, "rejected", reason)
    view = normalize_mandat(mandat)

    creator = await db.get(User, mandat.created_by) if mandat.created_by else None
    if creator and not email_service.send_mandat_rejected(creator.email, creator.name, view, reason):
        logger.warning("Rejection email for mandat %s not sent", mandat.id)

    return to_mandat_out(view, creator)


# ============ PRICING ============

@router.get("/pricing", response_model=List[PricingSetResponse])
async def list_pricing_sets(
    db: DbSession,
    admin: PlatformAdmin,
    active: Optional[bool] = Query(None),
):
    query = select(PricingSet)
    if active is not None:
        query = query.where(PricingSet.is_active == active)
    result = await db.execute(query.order_by(PricingSet.created_at.desc()))
    return result.scalars().all()


@router.get("/pricing/{pricing_set_id}", response_model=PricingSetResponse)
async def get_pricing_set(pricing_set_id: int, db: DbSession, admin: PlatformAdmin):
    return await get_pricing_set_or_404(db, pricing_set_id)


@router.post("/pricing", response_model=PricingSetResponse, status_code=status.HTTP_201_CREATED)
async def create_pricing_set(data: PricingSetCreate, db: DbSession, admin: PlatformAdmin):
    """Create an inactive pricing set. Activate it separately."""
    variables = PricingVariables.from_dict(data.variables.model_dump())
    supplements = supplements_from_list([s.model_dump() for s in data.supplements])

    pricing_set = PricingSet(
        name=data.name.strip(),
        variables=variables.to_dict(),
        supplements=[s.to_dict() for s in supplements],
        is_active=False,
        created_by=admin.user_id,
    )
    db.add(pricing_set)
    await db.commit()
    await db.refresh(pricing_set)
    logger.info("Pricing set %s (%s) created by %s", pricing_set.id, pricing_set.name, admin.email)
    return pricing_set


@router.patch("/pricing/{pricing_set_id}/activate", response_model=PricingSetResponse)
async def activate_pricing_set(pricing_set_id: int, db: DbSession, admin: PlatformAdmin):
    """Make this set the only active one."""
    pricing_set = await get_pricing_set_or_404(db, pricing_set_id)

    await db.execute(
        update(PricingSet)
        .where(PricingSet.id != pricing_set_id, PricingSet.is_active == True)  # noqa: E712
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    # The partial unique index needs the others deactivated before this one flips
    await db.flush()
    pricing_set.is_active = True
    pricing_set.activated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(pricing_set)
    logger.info("Pricing set %s activated by %s", pricing_set.id, admin.email)
    return pricing_set


@router.delete("/pricing/{pricing_set_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pricing_set(pricing_set_id: int, db: DbSession, admin: PlatformAdmin):
    pricing_set = await get_pricing_set_or_404(db, pricing_set_id)
    if pricing_set.is_active:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="The active pricing set cannot be deleted",
        )
    await db.delete(pricing_set)
    await db.commit()
    logger.info("Pricing set %s deleted by %s", pricing_set_id, admin.email)


# ============ STATS ============

@router.get("/stats", response_model=AdminStats)
async def admin_stats(db: DbSession, admin: PlatformAdmin):
    companies = await db.execute(select(Company.status, func.count(Company.id)).group_by(Company.status))
    mandats = await db.execute(select(Mandat.status, func.count(Mandat.id)).group_by(Mandat.status))
    return AdminStats(
        companies=_count_by_status(companies.all()),
        mandats=_count_by_status(mandats.all()),
    )

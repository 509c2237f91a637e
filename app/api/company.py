"""
Company endpoints: onboarding, members and invitations.

Members have one of three roles. The owner created the company, admins can
invite and remove members, and plain members can only read.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict, EmailStr
from sqlalchemy import select, update

from app.api.deps import (
    Cache,
    CompanyManager,
    CompanyMemberCtx,
    CompanyOwner,
    CurrentUser,
    DbSession,
    invalidate_sessions,
)
from app.config import get_settings
from app.models.company import Company, CompanyInvitation, CompanyMember
from app.models.user import User
from app.services.email_service import EmailService, get_email_service
from app.services.invitation_service import (
    cleanup_invitations,
    invitation_expiry,
    is_expired,
    new_invitation_token,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ SCHEMAS ============

class CompanyOnboarding(BaseModel):
    name: str
    legal_name: Optional[str] = None
    type: Literal["expediteur", "transporteur"]
    vat_number: Optional[str] = None
    rcs: Optional[str] = None
    billing_email: Optional[EmailStr] = None
    billing_address: Optional[dict] = None


class CompanyResponse(BaseModel):
    id: uuid.UUID
    name: str
    legal_name: Optional[str] = None
    type: str
    vat_number: Optional[str] = None
    rcs: Optional[str] = None
    billing_email: str
    billing_address: Optional[dict] = None
    status: str
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class MemberResponse(BaseModel):
    id: int
    user_id: uuid.UUID
    role: str
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    created_at: Optional[datetime] = None


class MemberRoleUpdate(BaseModel):
    role: Literal["admin", "member"]


class InvitationCreate(BaseModel):
    email: EmailStr
    role: Literal["admin", "member"]


class InvitationResponse(BaseModel):
    id: uuid.UUID
    email: str
    role: str
    status: str
    expires_at: datetime
    invited_by: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TokenRequest(BaseModel):
    token: str


class InvitationPreview(BaseModel):
    company_name: str
    role: str
    email: str
    inviter_name: Optional[str] = None
    expires_at: datetime


class CleanupResponse(BaseModel):
    expired: int
    deleted: int


# ============ HELPERS ============

async def get_member_or_404(db, member_id: int, company_id: uuid.UUID) -> CompanyMember:
    result = await db.execute(
        select(CompanyMember).where(
            CompanyMember.id == member_id,
            CompanyMember.company_id == company_id,
        )
    )
    member = result.scalar_one_or_none()
    if not member:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    return member


async def get_pending_invitation_by_token(db, token: str) -> CompanyInvitation:
    result = await db.execute(
        select(CompanyInvitation).where(
            CompanyInvitation.token == token,
            CompanyInvitation.status == "pending",
        )
    )
    invitation = result.scalar_one_or_none()
    if not invitation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid or expired invitation")
    return invitation


# ============ COMPANY ============

@router.get("", response_model=CompanyResponse)
async def get_my_company(db: DbSession, ctx: CompanyMemberCtx):
    company = await db.get(Company, ctx.company_id)
    if not company:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Company not found")
    return company


@router.post("/onboarding", response_model=CompanyResponse)
async def save_onboarding(
    data: CompanyOnboarding,
    db: DbSession,
    ctx: CurrentUser,
    cache: Cache,
):
    """
    Register the caller's company, or complete it while still pending.

    The caller becomes owner. The company waits for administrator approval.
    """
    if ctx.company_id and ctx.member_role != "owner":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only the owner can edit the company")

    company = await db.get(Company, ctx.company_id) if ctx.company_id else None
    if company is not None and company.status != "pending":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Onboarding already completed")

    values = dict(
        name=data.name.strip(),
        legal_name=data.legal_name or data.name.strip(),
        type=data.type,
        vat_number=data.vat_number,
        rcs=data.rcs,
        billing_email=str(data.billing_email or ctx.email).lower(),
        billing_address=data.billing_address,
    )

    if company is None:
        company = Company(status="pending", created_by=ctx.user_id, **values)
        db.add(company)
        await db.flush()
        db.add(CompanyMember(
            company_id=company.id,
            user_id=ctx.user_id,
            role="owner",
            invited_by=ctx.user_id,
        ))
        await db.execute(
            update(User).where(User.uid == ctx.user_id).values(company_id=company.id, role=data.type)
        )
        logger.info("Company %s (%s) registered by %s", company.id, data.type, ctx.email)
    else:
        for key, value in values.items():
            setattr(company, key, value)

    await db.commit()
    await db.refresh(company)
    cache.invalidate(ctx.user_id)
    return company


# ============ MEMBERS ============

@router.get("/members", response_model=List[MemberResponse])
async def list_members(db: DbSession, ctx: CompanyMemberCtx):
    result = await db.execute(
        select(CompanyMember, User)
        .outerjoin(User, User.uid == CompanyMember.user_id)
        .where(CompanyMember.company_id == ctx.company_id)
        .order_by(CompanyMember.created_at)
    )
    return [
        MemberResponse(
            id=member.id,
            user_id=member.user_id,
            role=member.role,
            email=user.email if user else None,
            first_name=user.first_name if user else None,
            last_name=user.last_name if user else None,
            created_at=member.created_at,
        )
        for member, user in result.all()
    ]


@router.patch("/members/{member_id}", response_model=MemberResponse)
async def change_member_role(
    member_id: int,
    data: MemberRoleUpdate,
    db: DbSession,
    ctx: CompanyOwner,
    cache: Cache,
):
    """Owner only. The owner's own role cannot change."""
    member = await get_member_or_404(db, member_id, ctx.company_id)
    if member.role == "owner":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot change the owner's role")
    if member.user_id == ctx.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot change your own role")

    member.role = data.role
    await db.commit()
    invalidate_sessions(cache, member.user_id)
    logger.info("Member %s of company %s is now %s", member.user_id, ctx.company_id, data.role)

    return MemberResponse(id=member.id, user_id=member.user_id, role=member.role, created_at=member.created_at)


@router.delete("/members/{member_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(member_id: int, db: DbSession, ctx: CompanyManager, cache: Cache):
    """Owner and admins. Admins cannot remove other admins."""
    member = await get_member_or_404(db, member_id, ctx.company_id)
    if member.role == "owner":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot remove the owner")
    if member.user_id == ctx.user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot remove yourself")
    if ctx.member_role == "admin" and member.role == "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admins cannot remove other admins")

    removed_user = member.user_id
    await db.delete(member)
    await db.execute(
        update(User)
        .where(User.uid == removed_user, User.company_id == ctx.company_id)
        .values(company_id=None)
    )
    await db.commit()
    invalidate_sessions(cache, removed_user)
    logger.info("Member %s removed from company %s by %s", removed_user, ctx.company_id, ctx.user_id)


# ============ INVITATIONS ============

@router.get("/invitations", response_model=List[InvitationResponse])
async def list_invitations(db: DbSession, ctx: CompanyMemberCtx):
    result = await db.execute(
        select(CompanyInvitation)
        .where(CompanyInvitation.company_id == ctx.company_id)
        .order_by(CompanyInvitation.created_at.desc())
    )
    return result.scalars().all()


@router.post("/invitations", response_model=InvitationResponse, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    data: InvitationCreate,
    db: DbSession,
    ctx: CompanyManager,
    email_service: EmailService = Depends(get_email_service),
):
    """
    Invite an email address to the company.

    Refused for existing members, addresses that already have an account,
    and addresses with a pending invitation.
    """
    email = str(data.email).lower().strip()

    existing_user = (await db.execute(select(User).where(User.email == email))).scalar_one_or_none()
    if existing_user:
        is_member = (
            await db.execute(
                select(CompanyMember.id).where(
                    CompanyMember.company_id == ctx.company_id,
                    CompanyMember.user_id == existing_user.uid,
                )
            )
        ).scalar_one_or_none()
        if is_member:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This user is already a member")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This email already has a Spontis account",
        )

    pending = (
        await db.execute(
            select(CompanyInvitation.id).where(
                CompanyInvitation.company_id == ctx.company_id,
                CompanyInvitation.email == email,
                CompanyInvitation.status == "pending",
            )
        )
    ).first()
    if pending:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="This email already has a pending invitation",
        )

    settings = get_settings()
    invitation = CompanyInvitation(
        company_id=ctx.company_id,
        email=email,
        role=data.role,
        token=new_invitation_token(),
        status="pending",
        expires_at=invitation_expiry(settings.invitation_ttl_days),
        invited_by=ctx.user_id,
    )
    db.add(invitation)
    await db.commit()
    await db.refresh(invitation)
    logger.info("Invitation %s sent to %s for company %s", invitation.id, email, ctx.company_id)

    accept_url = f"{settings.frontend_url.rstrip('/')}/invite/accept?token={invitation.token}"
    if not email_service.send_company_invitation(invitation, ctx.company_name or "", ctx.name, accept_url):
        logger.warning("Invitation email to %s could not be sent", email)

    return invitation


@router.delete("/invitations/{invitation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_invitation(invitation_id: uuid.UUID, db: DbSession, ctx: CompanyManager):
    result = await db.execute(
        update(CompanyInvitation)
        .where(
            CompanyInvitation.id == invitation_id,
            CompanyInvitation.company_id == ctx.company_id,
            CompanyInvitation.status == "pending",
        )
        .values(status="revoked")
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Pending invitation not found")
    await db.commit()


@router.post("/invitations/validate", response_model=InvitationPreview)
async def validate_invitation(data: TokenRequest, db: DbSession):
    """Public: what an invitation link is for, before signing in."""
    invitation = await get_pending_invitation_by_token(db, data.token)
    if is_expired(invitation):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This invitation has expired")

    company = await db.get(Company, invitation.company_id)
    inviter = await db.get(User, invitation.invited_by) if invitation.invited_by else None

    return InvitationPreview(
        company_name=company.name if company else "",
        role=invitation.role,
        email=invitation.email,
        inviter_name=inviter.name if inviter else None,
        expires_at=invitation.expires_at,
    )


@router.post("/invitations/accept", response_model=CompanyResponse)
async def accept_invitation(data: TokenRequest, db: DbSession, ctx: CurrentUser, cache: Cache):
    """Join the inviting company. The signed-in email must match the invitation."""
    invitation = await get_pending_invitation_by_token(db, data.token)

    if is_expired(invitation):
        invitation.status = "expired"
        await db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="This invitation has expired")

    if invitation.email.lower() != (ctx.email or "").lower():
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This invitation is not for your email")

    already = (
        await db.execute(
            select(CompanyMember.id).where(
                CompanyMember.company_id == invitation.company_id,
                CompanyMember.user_id == ctx.user_id,
            )
        )
    ).scalar_one_or_none()
    if already:
        invitation.status = "accepted"
        await db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You are already a member of this company")

    company = await db.get(Company, invitation.company_id)

    db.add(CompanyMember(
        company_id=invitation.company_id,
        user_id=ctx.user_id,
        role=invitation.role,
        invited_by=invitation.invited_by,
    ))
    user = await db.get(User, ctx.user_id)
    if user is None:
        db.add(User(
            uid=ctx.user_id,
            email=ctx.email,
            role=company.type,
            company_id=invitation.company_id,
        ))
    else:
        user.company_id = invitation.company_id
        user.role = company.type
    invitation.status = "accepted"
    await db.commit()

    cache.invalidate(ctx.user_id)
    logger.info("%s joined company %s as %s", ctx.email, invitation.company_id, invitation.role)
    return company


@router.post("/invitations/cleanup", response_model=CleanupResponse)
async def cleanup_company_invitations(db: DbSession, ctx: CompanyManager):
    """Expire overdue pending invitations and drop tokenless ones."""
    result = await cleanup_invitations(db, company_id=ctx.company_id, now=datetime.now(timezone.utc))
    await db.commit()
    return CleanupResponse(expired=result.expired, deleted=result.deleted)

"""
Authentication endpoints.

Sign-in itself happens against Supabase Auth; these endpoints expose the
resolved session and make sure a users row exists for the token subject.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.api.deps import Cache, CurrentUser, DbSession
from app.models.company import Company, CompanyInvitation
from app.models.user import User

logger = logging.getLogger(__name__)

router = APIRouter()


# Schemas
class CompanySummary(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None


class UserInfo(BaseModel):
    uid: uuid.UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: str
    role: Optional[str] = None
    has_profile: bool
    member_role: Optional[str] = None
    company: Optional[CompanySummary] = None
    is_admin: bool


class EnsureUserRequest(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    invitation_token: Optional[str] = None


class EnsureUserResponse(BaseModel):
    success: bool = True
    created: bool


# Endpoints
@router.get("/me", response_model=UserInfo)
async def get_current_user_info(current_user: CurrentUser):
    """
    Get current authenticated user info, with company and membership role.
    """
    company = None
    if current_user.company_id:
        company = CompanySummary(
            id=current_user.company_id,
            name=current_user.company_name,
            type=current_user.company_type,
            status=current_user.company_status,
        )

    return UserInfo(
        uid=current_user.user_id,
        email=current_user.email,
        first_name=current_user.first_name,
        last_name=current_user.last_name,
        name=current_user.name,
        role=current_user.user_role,
        has_profile=current_user.has_profile,
        member_role=current_user.member_role,
        company=company,
        is_admin=current_user.is_admin,
    )


@router.post("/ensure-user", response_model=EnsureUserResponse)
async def ensure_user(
    request: EnsureUserRequest,
    current_user: CurrentUser,
    db: DbSession,
    cache: Cache,
):
    """
    Create the users row for the authenticated Supabase account if missing.

    With an invitation token, the account takes the side (expediteur or
    transporteur) and company of the inviting company.
    """
    result = await db.execute(select(User).where(User.uid == current_user.user_id))
    user = result.scalar_one_or_none()

    if user is not None:
        if request.first_name is not None or request.last_name is not None:
            if request.first_name is not None:
                user.first_name = request.first_name
            if request.last_name is not None:
                user.last_name = request.last_name
            await db.commit()
            cache.invalidate(current_user.user_id)
        return EnsureUserResponse(created=False)

    role = "expediteur"
    company_id = None
    if request.invitation_token:
        row = (
            await db.execute(
                select(CompanyInvitation.company_id, Company.type)
                .join(Company, Company.id == CompanyInvitation.company_id)
                .where(CompanyInvitation.token == request.invitation_token)
            )
        ).first()
        if row:
            company_id, role = row
        else:
            logger.warning("ensure-user: unknown invitation token for %s", current_user.email)

    user = User(
        uid=current_user.user_id,
        email=current_user.email,
        first_name=request.first_name or "",
        last_name=request.last_name or "",
        role=role,
        company_id=company_id,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.error("ensure-user: could not insert users row for %s", current_user.email)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Unable to create the user profile",
        )

    cache.invalidate(current_user.user_id)
    logger.info("Created user profile %s (%s, role=%s)", current_user.user_id, current_user.email, role)
    return EnsureUserResponse(created=True)

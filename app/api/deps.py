"""
FastAPI dependencies for authentication, company membership, and database access.
Authenticates Supabase access tokens (HS256 secret or ES256 via JWKS).
"""

import base64
import json
import logging
import uuid
from dataclasses import dataclass
from functools import lru_cache
from typing import Annotated, Optional

import httpx
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt, jwk
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import get_settings
from app.database import get_db
from app.models.company import Company, CompanyMember
from app.models.user import User
from app.services.session_cache import SessionCache

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """
    Resolved session of the caller.

    A plain snapshot (no ORM instances) so it can be cached between requests.
    """
    user_id: uuid.UUID
    email: str
    is_admin: bool = False
    has_profile: bool = False
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    user_role: Optional[str] = None
    member_id: Optional[int] = None
    member_role: Optional[str] = None
    company_id: Optional[uuid.UUID] = None
    company_name: Optional[str] = None
    company_type: Optional[str] = None
    company_status: Optional[str] = None

    @property
    def name(self) -> str:
        parts = [self.first_name, self.last_name]
        return " ".join(p for p in parts if p) or self.email


@lru_cache(maxsize=1)
def get_jwks_keys(supabase_url: str) -> dict:
    """
    Fetch JWKS keys from Supabase.
    Successful responses are cached; failures raise and are retried next time.
    """
    jwks_url = f"{supabase_url}/auth/v1/.well-known/jwks.json"
    response = httpx.get(jwks_url, timeout=10.0)
    response.raise_for_status()
    return response.json()


def _token_header(token: str) -> dict:
    header_segment = token.split(".")[0]
    padding = 4 - len(header_segment) % 4
    if padding != 4:
        header_segment += "=" * padding
    return json.loads(base64.urlsafe_b64decode(header_segment))


def decode_supabase_token(token: str) -> Optional[dict]:
    """
    Decode a Supabase JWT token.
    Supabase tokens contain: sub (user UUID), email, role, etc.
    Returns the payload, or None when the token cannot be verified.
    """
    settings = get_settings()

    try:
        header = _token_header(token)
        alg = header.get("alg", "HS256")
        kid = header.get("kid")
    except (ValueError, IndexError) as e:
        logger.debug("Unreadable token header: %s", e)
        return None

    if alg == "ES256":
        try:
            jwks = get_jwks_keys(settings.supabase_url)
        except httpx.HTTPError as e:
            logger.error("Could not fetch Supabase JWKS: %s", e)
            return None

        keys = jwks.get("keys", [])
        key_data = next((k for k in keys if kid and k.get("kid") == kid), None)
        if key_data is None and keys:
            key_data = keys[0]
        if key_data is None:
            logger.warning("No JWKS key available for kid=%s", kid)
            return None

        try:
            return jwt.decode(
                token,
                jwk.construct(key_data),
                algorithms=["ES256"],
                options={"verify_aud": False},
            )
        except JWTError as e:
            logger.info("ES256 token rejected: %s", e)
            return None

    if not settings.supabase_jwt_secret:
        logger.error("HS256 token received but SUPABASE_JWT_SECRET is not configured")
        return None

    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            options={"verify_aud": False},
        )
    except JWTError as e:
        logger.info("HS256 token rejected: %s", e)
        return None


def get_session_cache(request: Request) -> SessionCache:
    """The per-process session cache built in the application lifespan."""
    return request.app.state.session_cache


def invalidate_sessions(cache: SessionCache, *user_ids: Optional[uuid.UUID]) -> None:
    """Drop cached sessions after a membership or company change."""
    for user_id in user_ids:
        if user_id is not None:
            cache.invalidate(user_id)


async def load_auth_context(db: AsyncSession, user_id: uuid.UUID, email: str) -> AuthContext:
    """Read the user profile, membership and company of a Supabase user."""
    settings = get_settings()
    is_admin = bool(email) and email.lower() in settings.admin_emails

    user = (await db.execute(select(User).where(User.uid == user_id))).scalar_one_or_none()

    row = (
        await db.execute(
            select(CompanyMember, Company)
            .join(Company, Company.id == CompanyMember.company_id)
            .where(CompanyMember.user_id == user_id)
            .order_by(CompanyMember.created_at)
            .limit(1)
        )
    ).first()
    member, company = row if row else (None, None)

    return AuthContext(
        user_id=user_id,
        email=email or (user.email if user else ""),
        is_admin=is_admin,
        has_profile=user is not None,
        first_name=user.first_name if user else None,
        last_name=user.last_name if user else None,
        user_role=user.role if user else None,
        member_id=member.id if member else None,
        member_role=member.role if member else None,
        company_id=company.id if company else None,
        company_name=company.name if company else None,
        company_type=company.type if company else None,
        company_status=company.status if company else None,
    )


async def get_current_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[SessionCache, Depends(get_session_cache)],
) -> AuthContext:
    """
    Dependency to get the caller's session from the Bearer token.
    Resolved sessions are cached per user id.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if not credentials:
        raise credentials_exception

    payload = decode_supabase_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        raise credentials_exception

    try:
        user_id = uuid.UUID(payload["sub"])
    except (ValueError, TypeError):
        raise credentials_exception

    cached = cache.get(user_id)
    if cached is not None:
        return cached

    ctx = await load_auth_context(db, user_id, payload.get("email") or "")
    cache.set(user_id, ctx)
    return ctx


async def get_current_user_optional(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cache: Annotated[SessionCache, Depends(get_session_cache)],
) -> Optional[AuthContext]:
    """
    Optional authentication - returns None if no valid credentials.
    """
    if not credentials:
        return None

    try:
        return await get_current_user(credentials, db, cache)
    except HTTPException:
        return None


def require_company_role(
    *allowed_roles: str,
    company_type: Optional[str] = None,
    require_approved: bool = True,
):
    """
    Dependency factory requiring a company membership.

    Usage:
        @router.post("/")
        async def create(ctx: AuthContext = Depends(require_company_role("owner", "admin"))):
            ...

    No roles means any member. company_type restricts to expediteur or
    transporteur companies.
    """
    async def role_checker(
        ctx: Annotated[AuthContext, Depends(get_current_user)],
    ) -> AuthContext:
        if ctx.company_id is None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="User is not a member of any company",
            )
        if company_type and ctx.company_type != company_type:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Reserved to {company_type} companies",
            )
        if require_approved and ctx.company_status != "approved":
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Company is not approved",
            )
        if allowed_roles and ctx.member_role not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required: {', '.join(allowed_roles)}",
            )
        return ctx

    return role_checker


async def require_admin(
    ctx: Annotated[AuthContext, Depends(get_current_user)],
) -> AuthContext:
    """Platform administrators, identified by email."""
    if not get_settings().admin_emails:
        logger.error("ADMIN_EMAILS is empty, admin endpoints are disabled")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Admin configuration missing",
        )
    if not ctx.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return ctx


# Type aliases for cleaner dependency injection
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
CurrentUserOptional = Annotated[Optional[AuthContext], Depends(get_current_user_optional)]
CompanyMemberCtx = Annotated[AuthContext, Depends(require_company_role(require_approved=False))]
CompanyManager = Annotated[AuthContext, Depends(require_company_role("owner", "admin", require_approved=False))]
CompanyOwner = Annotated[AuthContext, Depends(require_company_role("owner", require_approved=False))]
Expediteur = Annotated[AuthContext, Depends(require_company_role(company_type="expediteur"))]
ExpediteurManager = Annotated[
    AuthContext, Depends(require_company_role("owner", "admin", company_type="expediteur"))
]
Transporteur = Annotated[AuthContext, Depends(require_company_role(company_type="transporteur"))]
PlatformAdmin = Annotated[AuthContext, Depends(require_admin)]
DbSession = Annotated[AsyncSession, Depends(get_db)]
Cache = Annotated[SessionCache, Depends(get_session_cache)]

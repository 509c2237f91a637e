"""
Companies, their members and pending invitations.

A company is either a shipper (expediteur) or a transporter (transporteur)
and must be approved by a platform administrator before it can trade.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import DateTime, ForeignKey, Enum as SQLEnum, Text, JSON, UniqueConstraint, BigInteger
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

COMPANY_TYPES = ("expediteur", "transporteur")
COMPANY_STATUSES = ("pending", "approved", "rejected")
MEMBER_ROLES = ("owner", "admin", "member")
INVITATION_STATUSES = ("pending", "accepted", "revoked", "expired")


class Company(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A shipper or transporter company."""

    __tablename__ = "companies"

    name: Mapped[str] = mapped_column(Text, nullable=False)
    legal_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(
        SQLEnum(*COMPANY_TYPES, name="company_type"),
        nullable=False,
    )
    vat_number: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rcs: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    billing_email: Mapped[str] = mapped_column(Text, nullable=False)
    billing_address: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Moderation
    status: Mapped[str] = mapped_column(
        SQLEnum(*COMPANY_STATUSES, name="company_status"),
        default="pending",
        nullable=False,
        index=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    members: Mapped[List["CompanyMember"]] = relationship(
        "CompanyMember", back_populates="company", lazy="raise"
    )

    def __repr__(self) -> str:
        return f"<Company(id={self.id}, name='{self.name}', type='{self.type}', status='{self.status}')>"

    @property
    def is_approved(self) -> bool:
        return self.status == "approved"


class CompanyMember(Base, TimestampMixin):
    """Membership of a user in a company, with a role."""

    __tablename__ = "company_members"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    role: Mapped[str] = mapped_column(
        SQLEnum(*MEMBER_ROLES, name="member_role"),
        default="member",
        nullable=False,
    )
    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    company: Mapped["Company"] = relationship("Company", back_populates="members", lazy="raise")

    __table_args__ = (
        UniqueConstraint("company_id", "user_id", name="uq_company_members_company_user"),
    )

    def __repr__(self) -> str:
        return f"<CompanyMember(company={self.company_id}, user={self.user_id}, role='{self.role}')>"


class CompanyInvitation(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """An emailed invitation to join a company."""

    __tablename__ = "company_invitations"

    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    email: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(
        SQLEnum("admin", "member", name="invitation_role"),
        nullable=False,
    )
    token: Mapped[Optional[str]] = mapped_column(Text, unique=True, nullable=True)
    status: Mapped[str] = mapped_column(
        SQLEnum(*INVITATION_STATUSES, name="invitation_status"),
        default="pending",
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    invited_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    company: Mapped["Company"] = relationship("Company", lazy="raise")

    def __repr__(self) -> str:
        return f"<CompanyInvitation(email='{self.email}', status='{self.status}')>"

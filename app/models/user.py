"""
Application user profile.
Maps to the public users table; uid is the Supabase auth user id.
"""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Enum as SQLEnum, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class User(Base, TimestampMixin):
    """
    A platform user.
    Company membership and rights live in company_members; role here only
    records which side of the marketplace the account was created for.
    """

    __tablename__ = "users"

    uid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True)

    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    first_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    role: Mapped[str] = mapped_column(
        SQLEnum("expediteur", "transporteur", name="user_role"),
        default="expediteur",
        nullable=False,
    )

    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<User(uid={self.uid}, email='{self.email}', role='{self.role}')>"

    @property
    def name(self) -> str:
        """Full name from first_name and last_name."""
        parts = [self.first_name, self.last_name]
        return " ".join(p for p in parts if p) or self.email

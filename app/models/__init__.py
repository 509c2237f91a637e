"""
SQLAlchemy models for Spontis.
"""

from app.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from app.models.company import Company, CompanyMember, CompanyInvitation
from app.models.user import User
from app.models.pricing_set import PricingSet
from app.models.mandat import Mandat

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "Company",
    "CompanyMember",
    "CompanyInvitation",
    "User",
    "PricingSet",
    "Mandat",
]

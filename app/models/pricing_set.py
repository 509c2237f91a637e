"""
PricingSet model - rate variables and named supplements used to quote mandats.
Exactly one set is active at a time (partial unique index on is_active).
"""

import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import BigInteger, Boolean, DateTime, JSON, Text, Index, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin


class PricingSet(Base, TimestampMixin):
    """
    A named pricing configuration.

    variables: {tarif_km_base_chf, maj_carburant_pct, maj_embouteillage_pct, tva_rate_pct}
    supplements: [{nom, type: "pct" | "fixe", montant}, ...]
    """

    __tablename__ = "pricing_sets"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    variables: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    supplements: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    activated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    __table_args__ = (
        Index(
            "uq_pricing_sets_single_active",
            "is_active",
            unique=True,
            postgresql_where=text("is_active"),
        ),
    )

    def __repr__(self) -> str:
        return f"<PricingSet(id={self.id}, name='{self.name}', active={self.is_active})>"

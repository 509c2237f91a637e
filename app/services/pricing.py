"""
Active pricing set lookup and quoting against it.
"""

import logging
from typing import Any, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.pricing_set import PricingSet
from app.services.quote_calculator import (
    PricingVariables,
    QuoteResult,
    Supplement,
    calculate_quote,
    supplements_from_list,
)

logger = logging.getLogger(__name__)


class NoActivePricingError(Exception):
    """Raised when no pricing set is active."""

    def __init__(self):
        super().__init__("No active pricing model. Contact the administrator.")


async def get_active_pricing(db: AsyncSession) -> PricingSet:
    result = await db.execute(select(PricingSet).where(PricingSet.is_active == True))  # noqa: E712
    pricing_set = result.scalars().first()
    if pricing_set is None:
        logger.error("Quote requested but no pricing set is active")
        raise NoActivePricingError()
    return pricing_set


def parse_pricing_set(pricing_set: PricingSet) -> Tuple[PricingVariables, List[Supplement]]:
    return (
        PricingVariables.from_dict(pricing_set.variables),
        supplements_from_list(pricing_set.supplements),
    )


def quote_with_pricing_set(
    pricing_set: PricingSet,
    distance_km: Optional[Any],
    surface_m2: Optional[Any],
) -> QuoteResult:
    variables, supplements = parse_pricing_set(pricing_set)
    return calculate_quote(distance_km or 0, surface_m2 or 0, variables, supplements)

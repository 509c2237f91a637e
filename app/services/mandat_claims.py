"""
Mandat lifecycle on the transporter side.

    APPROVED_UNCLAIMED --claim--> CLAIMED --> IN_TRANSIT --> DELIVERED
                                     |            |  ^           ^
                                     v            v  |           |
                                     +----> DELIVERY_PROBLEM ----+

Claiming is a single conditional UPDATE so that at most one transporter
company wins a mandat. Later transitions are guarded on the current
transporteur_status in the same way.
"""

import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.mandat import Mandat

logger = logging.getLogger(__name__)


class MandatPhase(str, Enum):
    PENDING_REVIEW = "pending_review"
    REJECTED = "rejected"
    APPROVED_UNCLAIMED = "approved_unclaimed"
    CLAIMED = "claimed"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    DELIVERY_PROBLEM = "delivery_problem"


# transporteur_status column value <-> phase
STATUS_TO_PHASE: Dict[str, MandatPhase] = {
    "accepted": MandatPhase.CLAIMED,
    "picked_up": MandatPhase.IN_TRANSIT,
    "delivered": MandatPhase.DELIVERED,
    "delivery_problem": MandatPhase.DELIVERY_PROBLEM,
}
PHASE_TO_STATUS: Dict[MandatPhase, str] = {phase: value for value, phase in STATUS_TO_PHASE.items()}

TRANSITIONS: Dict[MandatPhase, FrozenSet[MandatPhase]] = {
    MandatPhase.CLAIMED: frozenset({MandatPhase.IN_TRANSIT, MandatPhase.DELIVERY_PROBLEM}),
    MandatPhase.IN_TRANSIT: frozenset({MandatPhase.DELIVERED, MandatPhase.DELIVERY_PROBLEM}),
    MandatPhase.DELIVERY_PROBLEM: frozenset({MandatPhase.IN_TRANSIT, MandatPhase.DELIVERED}),
    MandatPhase.DELIVERED: frozenset(),
}


class InvalidTransitionError(Exception):
    """Raised when a transporter status change is not allowed."""

    def __init__(self, current: MandatPhase, target: MandatPhase):
        self.current = current
        self.target = target
        super().__init__(f"Transition {current.value} -> {target.value} is not allowed")


class ClaimOutcome(str, Enum):
    SUCCESS = "success"
    ALREADY_CLAIMED = "already_claimed"
    NOT_FOUND = "not_found"


@dataclass
class ClaimResult:
    outcome: ClaimOutcome
    mandat: Optional[Mandat] = None


def phase_of(
    status: Optional[str],
    transporteur_company_id: Optional[uuid.UUID],
    transporteur_status: Optional[str],
) -> MandatPhase:
    """Derive the lifecycle phase from the moderation and transporter columns."""
    if status == "rejected":
        return MandatPhase.REJECTED
    if status != "approved":
        return MandatPhase.PENDING_REVIEW
    if transporteur_company_id is None:
        return MandatPhase.APPROVED_UNCLAIMED
    # Rows claimed before transporteur_status existed have it NULL
    return STATUS_TO_PHASE.get(transporteur_status or "accepted", MandatPhase.CLAIMED)


def check_transition(current: MandatPhase, target: MandatPhase) -> None:
    """Raise InvalidTransitionError unless current -> target is allowed."""
    if current == target:
        return
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransitionError(current, target)


async def claim_mandat(
    db: AsyncSession,
    mandat_id: int,
    company_id: uuid.UUID,
    user_id: uuid.UUID,
) -> ClaimResult:
    """
    Assign an approved, unclaimed mandat to a transporter company.

    The caller commits the session on SUCCESS.
    """
    stmt = (
        update(Mandat)
        .where(
            Mandat.id == mandat_id,
            Mandat.status == "approved",
            Mandat.transporteur_company_id.is_(None),
        )
        .values(
            transporteur_company_id=company_id,
            transporteur_company_user=user_id,
            transporteur_status="accepted",
            accepte_at=func.now(),
        )
        .returning(Mandat)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    result = await db.execute(stmt)
    claimed = result.scalar_one_or_none()
    if claimed is not None:
        logger.info("Mandat %s claimed by company %s (user %s)", mandat_id, company_id, user_id)
        return ClaimResult(ClaimOutcome.SUCCESS, claimed)

    # Missing rows and unapproved mandats both read as not found
    existing = await db.execute(select(Mandat.status).where(Mandat.id == mandat_id))
    if existing.scalar_one_or_none() != "approved":
        return ClaimResult(ClaimOutcome.NOT_FOUND)

    logger.warning("Mandat %s already claimed, refused for company %s", mandat_id, company_id)
    return ClaimResult(ClaimOutcome.ALREADY_CLAIMED)


async def advance_status(
    db: AsyncSession,
    mandat_id: int,
    company_id: uuid.UUID,
    target: str,
) -> Optional[Mandat]:
    """
    Move a mandat assigned to company_id to a new transporteur_status.

    Returns None when the mandat does not exist or is not assigned to the
    company. Raises ValueError for an unknown status and
    InvalidTransitionError for a forbidden or concurrently changed transition.
    The caller commits.
    """
    if target not in STATUS_TO_PHASE:
        raise ValueError(f"Unknown transporter status: {target}")
    target_phase = STATUS_TO_PHASE[target]

    result = await db.execute(
        select(Mandat).where(
            Mandat.id == mandat_id,
            Mandat.transporteur_company_id == company_id,
        )
    )
    mandat = result.scalar_one_or_none()
    if mandat is None:
        return None

    current_phase = phase_of(mandat.status, mandat.transporteur_company_id, mandat.transporteur_status)
    check_transition(current_phase, target_phase)
    if current_phase == target_phase:
        return mandat

    values = {"transporteur_status": target}
    if target == "picked_up":
        values["enlevement_effectif_at"] = func.now()
    elif target == "delivered":
        values["livraison_effective_at"] = func.now()

    if mandat.transporteur_status is None:
        guard = Mandat.transporteur_status.is_(None)
    else:
        guard = Mandat.transporteur_status == mandat.transporteur_status

    stmt = (
        update(Mandat)
        .where(
            Mandat.id == mandat_id,
            Mandat.transporteur_company_id == company_id,
            guard,
        )
        .values(**values)
        .returning(Mandat)
        .execution_options(synchronize_session=False, populate_existing=True)
    )
    updated = (await db.execute(stmt)).scalar_one_or_none()
    if updated is None:
        # Someone else moved it between our read and write
        raise InvalidTransitionError(current_phase, target_phase)

    logger.info(
        "Mandat %s: %s -> %s (company %s)",
        mandat_id, current_phase.value, target_phase.value, company_id,
    )
    return updated

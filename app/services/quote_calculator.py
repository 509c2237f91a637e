"""
Quote calculator: turns a shipment's distance and billable surface into a
price estimate using the active pricing set.

    prix_base_ht    = distance_km * surface_m2 * tarif_km_base_chf
    prix_estime_ht  = prix_base_ht
                      + base * maj_carburant_pct / 100
                      + base * maj_embouteillage_pct / 100
                      + sum(supplements)          # pct of base, or flat CHF
    prix_estime_ttc = prix_estime_ht * (1 + tva_rate_pct / 100)

Every percentage is applied to the base amount, never compounded. Missing or
invalid numbers count as 0. Distance, surface, the base rate and the VAT rate are
also floored at 0, while surcharges may be negative (discounts). Nothing is
rounded here; rounding to cents is left to whoever displays the amounts.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

SUPPLEMENT_PCT = "pct"
SUPPLEMENT_FIXED = "fixe"

# Older pricing sets were saved with "fix"
_FIXED_ALIASES = ("fixe", "fix")


def _num(value: Any) -> float:
    """Coerce to a finite, non-negative float. Anything else becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0.0
    return number


def _amount(value: Any) -> float:
    """Coerce to a finite float, sign kept. Anything else becomes 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


@dataclass(frozen=True)
class PricingVariables:
    """Rates of a pricing set."""
    tarif_km_base_chf: float = 0.0
    maj_carburant_pct: float = 0.0
    maj_embouteillage_pct: float = 0.0
    tva_rate_pct: float = 0.0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "PricingVariables":
        data = data or {}
        return cls(
            tarif_km_base_chf=_num(data.get("tarif_km_base_chf")),
            maj_carburant_pct=_amount(data.get("maj_carburant_pct")),
            maj_embouteillage_pct=_amount(data.get("maj_embouteillage_pct")),
            tva_rate_pct=_num(data.get("tva_rate_pct")),
        )

    def to_dict(self) -> Dict[str, float]:
        return {
            "tarif_km_base_chf": self.tarif_km_base_chf,
            "maj_carburant_pct": self.maj_carburant_pct,
            "maj_embouteillage_pct": self.maj_embouteillage_pct,
            "tva_rate_pct": self.tva_rate_pct,
        }


@dataclass(frozen=True)
class Supplement:
    """A named surcharge, either a percentage of the base or a flat amount."""
    nom: str
    type: str
    montant: float

    @property
    def is_pct(self) -> bool:
        return self.type == SUPPLEMENT_PCT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Supplement":
        raw_type = str(data.get("type") or "").strip().lower()
        if raw_type in _FIXED_ALIASES:
            raw_type = SUPPLEMENT_FIXED
        return cls(
            nom=str(data.get("nom") or ""),
            type=raw_type,
            montant=_amount(data.get("montant")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"nom": self.nom, "type": self.type, "montant": self.montant}


def supplements_from_list(items: Optional[Iterable[Any]]) -> List[Supplement]:
    """Parse the JSON supplements list of a pricing set, skipping non-dict entries."""
    if not items:
        return []
    return [Supplement.from_dict(item) for item in items if isinstance(item, dict)]


def find_crane_surcharge(supplements: Iterable[Supplement]) -> Optional[Supplement]:
    """First supplement whose name mentions the crane ("grue"), if any."""
    for supplement in supplements:
        if "grue" in supplement.nom.lower():
            return supplement
    return None


@dataclass
class QuoteResult:
    """Price breakdown frozen onto a mandat at creation."""
    prix_base_ht: float
    prix_estime_ht: float
    prix_estime_ttc: float
    surcharges: List[Tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prixBaseHt": self.prix_base_ht,
            "prixEstimeHt": self.prix_estime_ht,
            "prixEstimeTtc": self.prix_estime_ttc,
            "surcharges": [
                {"nom": nom, "montant_chf": montant} for nom, montant in self.surcharges
            ],
        }


def calculate_quote(
    distance_km: Any,
    surface_m2: Any,
    variables: PricingVariables,
    supplements: Iterable[Supplement],
    extras_chf: Any = 0,
    min_charge_ht: Any = None,
) -> QuoteResult:
    """
    Compute the quote for one shipment.

    Args:
        distance_km: Road distance; invalid values count as 0.
        surface_m2: Billable floor surface; invalid values count as 0.
        variables: Rates of the active pricing set (required).
        supplements: Named surcharges, kept in order in the breakdown.
        extras_chf: Flat amount added after the supplements.
        min_charge_ht: Optional floor on the pre-tax total.

    Raises:
        TypeError: if variables is None.
    """
    if variables is None:
        raise TypeError("calculate_quote() requires pricing variables")
    if isinstance(variables, dict):
        variables = PricingVariables.from_dict(variables)

    distance = _num(distance_km)
    surface = _num(surface_m2)
    base = distance * surface * _num(variables.tarif_km_base_chf)

    surcharges: List[Tuple[str, float]] = [
        ("Majoration carburant", base * _amount(variables.maj_carburant_pct) / 100),
        ("Majoration embouteillage", base * _amount(variables.maj_embouteillage_pct) / 100),
    ]
    for supplement in supplements or []:
        if isinstance(supplement, dict):
            supplement = Supplement.from_dict(supplement)
        amount = _amount(supplement.montant)
        if supplement.is_pct:
            surcharges.append((supplement.nom, base * amount / 100))
        else:
            surcharges.append((supplement.nom, amount))

    extras = _amount(extras_chf)
    if extras:
        surcharges.append(("Extras", extras))

    total_ht = base
    for _, amount in surcharges:
        total_ht += amount

    if min_charge_ht is not None:
        total_ht = max(total_ht, _num(min_charge_ht))

    total_ttc = total_ht * (1 + _num(variables.tva_rate_pct) / 100)

    return QuoteResult(
        prix_base_ht=base,
        prix_estime_ht=total_ht,
        prix_estime_ttc=total_ttc,
        surcharges=surcharges,
    )

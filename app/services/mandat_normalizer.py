"""
Reconcile mandat rows into one canonical record.

Older mandats were saved with a catch-all payload JSON (nom, description,
images, adresse_depart, adresse_arrivee, heure_souhaitee) and empty typed
columns. normalize_mandat() picks the typed column when it is set and falls
back to the payload otherwise, so the rest of the code reads MandatView only.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from app.services.mandat_claims import MandatPhase, phase_of


@dataclass(frozen=True)
class Address:
    adresse: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> Dict[str, Any]:
        return {"adresse": self.adresse, "lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class MandatView:
    id: int
    status: str
    nom: str
    description: Optional[str]
    images: List[str] = field(default_factory=list)
    depart: Address = field(default_factory=Address)
    arrivee: Address = field(default_factory=Address)
    enlevement_debut_at: Optional[datetime] = None
    enlevement_fin_at: Optional[datetime] = None
    company_id: Optional[uuid.UUID] = None
    created_by: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    distance_km: Optional[float] = None
    duree_estimee_min: Optional[int] = None
    surface_m2: Optional[float] = None
    prix_base_ht: Optional[float] = None
    prix_estime_ht: Optional[float] = None
    prix_estime_ttc: Optional[float] = None
    monnaie: str = "CHF"
    rejection_reason: Optional[str] = None
    transporteur_company_id: Optional[uuid.UUID] = None
    transporteur_status: Optional[str] = None
    accepte_at: Optional[datetime] = None
    phase: MandatPhase = MandatPhase.PENDING_REVIEW

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "nom": self.nom,
            "description": self.description,
            "images": list(self.images),
            "depart": self.depart.to_dict(),
            "arrivee": self.arrivee.to_dict(),
            "enlevement_debut_at": self.enlevement_debut_at,
            "enlevement_fin_at": self.enlevement_fin_at,
            "company_id": self.company_id,
            "created_by": self.created_by,
            "created_at": self.created_at,
            "distance_km": self.distance_km,
            "duree_estimee_min": self.duree_estimee_min,
            "surface_m2": self.surface_m2,
            "prix_base_ht": self.prix_base_ht,
            "prix_estime_ht": self.prix_estime_ht,
            "prix_estime_ttc": self.prix_estime_ttc,
            "monnaie": self.monnaie,
            "rejection_reason": self.rejection_reason,
            "transporteur_company_id": self.transporteur_company_id,
            "transporteur_status": self.transporteur_status,
            "accepte_at": self.accepte_at,
            "phase": self.phase.value,
        }


def _is_blank(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def _first(*values: Any, default: Any = None) -> Any:
    for value in values:
        if not _is_blank(value):
            return value
    return default


def _float_or_none(value: Any) -> Optional[float]:
    if _is_blank(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


def _address(adresse: Any, lat: Any, lng: Any, legacy: Any) -> Address:
    legacy = legacy if isinstance(legacy, dict) else {}
    return Address(
        adresse=_first(adresse, legacy.get("adresse")),
        lat=_float_or_none(_first(lat, legacy.get("lat"))),
        lng=_float_or_none(_first(lng, legacy.get("lng"))),
    )


def normalize_mandat(mandat: Any) -> MandatView:
    """Build the canonical view of a Mandat row (or any object with the same attributes)."""
    payload = getattr(mandat, "payload", None)
    if not isinstance(payload, dict):
        payload = {}

    images = _first(getattr(mandat, "images", None), payload.get("images"), default=[])
    if not isinstance(images, list):
        images = [images]

    status = getattr(mandat, "status", None) or "pending"
    transporteur_company_id = getattr(mandat, "transporteur_company_id", None)
    transporteur_status = getattr(mandat, "transporteur_status", None)

    return MandatView(
        id=mandat.id,
        status=status,
        nom=_first(getattr(mandat, "nom", None), payload.get("nom"), default=""),
        description=_first(getattr(mandat, "description", None), payload.get("description")),
        images=[str(image) for image in images],
        depart=_address(
            getattr(mandat, "depart_adresse", None),
            getattr(mandat, "depart_lat", None),
            getattr(mandat, "depart_lng", None),
            payload.get("adresse_depart"),
        ),
        arrivee=_address(
            getattr(mandat, "arrivee_adresse", None),
            getattr(mandat, "arrivee_lat", None),
            getattr(mandat, "arrivee_lng", None),
            payload.get("adresse_arrivee"),
        ),
        enlevement_debut_at=_first(
            getattr(mandat, "enlevement_souhaite_debut_at", None),
            _parse_datetime(payload.get("heure_souhaitee")),
        ),
        enlevement_fin_at=getattr(mandat, "enlevement_souhaite_fin_at", None),
        company_id=getattr(mandat, "company_id", None),
        created_by=getattr(mandat, "created_by", None),
        created_at=getattr(mandat, "created_at", None),
        distance_km=getattr(mandat, "distance_km", None),
        duree_estimee_min=getattr(mandat, "duree_estimee_min", None),
        surface_m2=getattr(mandat, "surface_m2", None),
        prix_base_ht=getattr(mandat, "prix_base_ht", None),
        prix_estime_ht=getattr(mandat, "prix_estime_ht", None),
        prix_estime_ttc=getattr(mandat, "prix_estime_ttc", None),
        monnaie=getattr(mandat, "monnaie", None) or "CHF",
        rejection_reason=getattr(mandat, "rejection_reason", None),
        transporteur_company_id=transporteur_company_id,
        transporteur_status=transporteur_status,
        accepte_at=getattr(mandat, "accepte_at", None),
        phase=phase_of(status, transporteur_company_id, transporteur_status),
    )

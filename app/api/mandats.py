"""
Mandat endpoints for shipper (expediteur) companies.

A mandat is priced once at creation with the active pricing set, and the
quote is frozen on the row. It then waits for moderation by an administrator
before being listed on the transporter marketplace.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Annotated, List, Optional, Tuple

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel
from sqlalchemy import select

from app.api.deps import DbSession, ExpediteurManager, require_company_role, AuthContext
from app.models.mandat import Mandat
from app.models.user import User
from app.services.google_maps_client import (
    GoogleMapsClient,
    GoogleMapsError,
    RouteEstimate,
    get_google_maps_client,
)
from app.services.mandat_normalizer import MandatView, normalize_mandat
from app.services.pricing import (
    NoActivePricingError,
    get_active_pricing,
    parse_pricing_set,
)
from app.services.quote_calculator import calculate_quote, find_crane_surcharge
from app.services.storage import (
    StorageError,
    delete_mandat_images,
    storage_path_from_url,
    upload_mandat_image,
)

logger = logging.getLogger(__name__)

router = APIRouter()

ExpediteurMember = Annotated[
    AuthContext, Depends(require_company_role(company_type="expediteur", require_approved=False))
]
OptionalMapsClient = Annotated[Optional[GoogleMapsClient], Depends(get_google_maps_client)]


# ============ SCHEMAS ============

class AddressIn(BaseModel):
    adresse: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class MandatCreate(BaseModel):
    nom: Optional[str] = None
    description: Optional[str] = None
    images: List[str] = []
    depart_adresse: Optional[AddressIn] = None
    arrivee_adresse: Optional[AddressIn] = None
    depart_contact: Optional[str] = None
    arrivee_contact: Optional[str] = None
    depart_horaires_ouverture: Optional[str] = None
    arrivee_horaires_ouverture: Optional[str] = None
    enlevement_souhaite_debut_at: Optional[datetime] = None
    enlevement_souhaite_fin_at: Optional[datetime] = None
    type_marchandise: Optional[str] = None
    poids_total_kg: Optional[float] = None
    volume_total_m3: Optional[float] = None
    surface_m2: Optional[float] = None
    nombre_colis: Optional[int] = None
    type_vehicule: Optional[str] = None
    type_acces: Optional[str] = None
    acces_autre: Optional[str] = None
    moyen_chargement: Optional[str] = None
    sensi_temperature: Optional[bool] = None
    temperature_min_c: Optional[float] = None
    temperature_max_c: Optional[float] = None
    matiere_dangereuse: Optional[bool] = None
    adr_classe: Optional[float] = None
    adr_uno: Optional[str] = None
    commentaire_expediteur: Optional[str] = None


class AddressOut(BaseModel):
    adresse: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class MandatOut(BaseModel):
    id: int
    status: str
    phase: str
    nom: str
    description: Optional[str] = None
    images: List[str] = []
    depart: AddressOut
    arrivee: AddressOut
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
    creator_name: Optional[str] = None
    creator_email: Optional[str] = None


class MandatListResponse(BaseModel):
    mandats: List[MandatOut]
    user_role: Optional[str] = None


class QuotePreviewRequest(BaseModel):
    distance_km: Optional[float] = None
    surface_m2: Optional[float] = None
    depart: Optional[AddressIn] = None
    arrivee: Optional[AddressIn] = None


class SurchargeLine(BaseModel):
    nom: str
    montant_chf: float


class QuotePreviewResponse(BaseModel):
    pricing_set_id: int
    distance_km: float
    duration_minutes: Optional[int] = None
    surface_m2: float
    prix_base_ht: float
    prix_estime_ht: float
    prix_estime_ttc: float
    monnaie: str = "CHF"
    surcharges: List[SurchargeLine]


class UploadImageResponse(BaseModel):
    path: str
    url: str


# ============ HELPERS ============

def to_mandat_out(view: MandatView, creator: Optional[User] = None) -> MandatOut:
    data = view.to_dict()
    return MandatOut(
        **data,
        creator_name=creator.name if creator else None,
        creator_email=creator.email if creator else None,
    )


def bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


def validate_mandat(data: MandatCreate, now: Optional[datetime] = None) -> None:
    """Required fields and a pickup window starting in the future."""
    if not (data.nom or "").strip():
        raise bad_request("Mandat name is required")
    if not (data.description or "").strip():
        raise bad_request("Mandat description is required")
    if not data.depart_adresse or not (data.depart_adresse.adresse or "").strip():
        raise bad_request("Departure address is required")
    if not data.arrivee_adresse or not (data.arrivee_adresse.adresse or "").strip():
        raise bad_request("Arrival address is required")
    if data.enlevement_souhaite_debut_at is None:
        raise bad_request("Pickup window start is required")
    if data.enlevement_souhaite_fin_at is None:
        raise bad_request("Pickup window end is required")

    now = now or datetime.now(timezone.utc)
    debut = _aware(data.enlevement_souhaite_debut_at)
    fin = _aware(data.enlevement_souhaite_fin_at)
    if debut <= now:
        raise bad_request("Pickup window start must be in the future")
    if fin <= debut:
        raise bad_request("Pickup window end must be after its start")


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _coordinates(
    depart: Optional[AddressIn],
    arrivee: Optional[AddressIn],
) -> Optional[Tuple[Tuple[float, float], Tuple[float, float]]]:
    if not depart or not arrivee:
        return None
    points = (depart.lat, depart.lng, arrivee.lat, arrivee.lng)
    if any(p is None for p in points):
        return None
    return (depart.lat, depart.lng), (arrivee.lat, arrivee.lng)


async def estimate_route(
    client: Optional[GoogleMapsClient],
    depart: Optional[AddressIn],
    arrivee: Optional[AddressIn],
) -> Optional[RouteEstimate]:
    """Road distance between the two addresses, None when unknown."""
    points = _coordinates(depart, arrivee)
    if points is None or client is None:
        return None
    try:
        return await client.get_route(*points)
    except GoogleMapsError as e:
        logger.warning("Distance lookup failed, quoting without distance: %s", e)
        return None


async def get_company_mandat_or_404(db, mandat_id: int, company_id: uuid.UUID) -> Mandat:
    result = await db.execute(
        select(Mandat).where(Mandat.id == mandat_id, Mandat.company_id == company_id)
    )
    mandat = result.scalar_one_or_none()
    if not mandat:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mandat not found")
    return mandat


# ============ ENDPOINTS ============

@router.post("", response_model=MandatOut, status_code=status.HTTP_201_CREATED)
async def create_mandat(
    data: MandatCreate,
    db: DbSession,
    ctx: ExpediteurManager,
    maps: OptionalMapsClient,
):
    """
    Create a mandat and freeze its quote.

    Owners and admins of an approved shipper company only. The mandat starts
    in moderation (status pending).
    """
    validate_mandat(data)

    try:
        pricing_set = await get_active_pricing(db)
    except NoActivePricingError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    variables, supplements = parse_pricing_set(pricing_set)

    route = await estimate_route(maps, data.depart_adresse, data.arrivee_adresse)
    distance_km = route.distance_km if route else None

    quote = calculate_quote(distance_km or 0, data.surface_m2 or 0, variables, supplements)
    if not distance_km or not data.surface_m2:
        logger.warning(
            "Mandat %r quoted with distance=%s km and surface=%s m2",
            data.nom, distance_km, data.surface_m2,
        )

    crane = find_crane_surcharge(supplements)

    mandat = Mandat(
        uid=ctx.user_id,
        created_by=ctx.user_id,
        company_id=ctx.company_id,
        status="pending",
        nom=data.nom.strip(),
        description=data.description.strip(),
        images=data.images,
        depart_adresse=data.depart_adresse.adresse,
        depart_lat=data.depart_adresse.lat,
        depart_lng=data.depart_adresse.lng,
        depart_contact=data.depart_contact,
        depart_horaires_ouverture=data.depart_horaires_ouverture,
        arrivee_adresse=data.arrivee_adresse.adresse,
        arrivee_lat=data.arrivee_adresse.lat,
        arrivee_lng=data.arrivee_adresse.lng,
        arrivee_contact=data.arrivee_contact,
        arrivee_horaires_ouverture=data.arrivee_horaires_ouverture,
        enlevement_souhaite_debut_at=data.enlevement_souhaite_debut_at,
        enlevement_souhaite_fin_at=data.enlevement_souhaite_fin_at,
        type_marchandise=data.type_marchandise,
        poids_total_kg=data.poids_total_kg,
        volume_total_m3=data.volume_total_m3,
        surface_m2=data.surface_m2,
        nombre_colis=data.nombre_colis,
        type_vehicule=data.type_vehicule,
        type_acces=data.type_acces,
        acces_autre=data.acces_autre,
        moyen_chargement=data.moyen_chargement,
        sensi_temperature=data.sensi_temperature,
        temperature_min_c=data.temperature_min_c,
        temperature_max_c=data.temperature_max_c,
        matiere_dangereuse=data.matiere_dangereuse,
        adr_classe=data.adr_classe,
        adr_uno=data.adr_uno,
        commentaire_expediteur=data.commentaire_expediteur,
        # Pricing snapshot
        pricing_set_id=pricing_set.id,
        tarif_km_base_chf=variables.tarif_km_base_chf,
        maj_carburant_pct=variables.maj_carburant_pct,
        maj_embouteillage_pct=variables.maj_embouteillage_pct,
        tva_rate_pct=variables.tva_rate_pct,
        autre_supp=[s.to_dict() for s in supplements],
        surcharge_grue_pct=crane.montant if crane and crane.is_pct else None,
        surcharge_grue_chf=crane.montant if crane and not crane.is_pct else None,
        distance_km=distance_km,
        duree_estimee_min=route.duration_minutes if route else None,
        prix_base_ht=quote.prix_base_ht,
        prix_estime_ht=quote.prix_estime_ht,
        prix_estime_ttc=quote.prix_estime_ttc,
        notes_calcul_json=quote.to_dict(),
        monnaie="CHF",
        payload=data.model_dump(mode="json"),
    )
    db.add(mandat)
    await db.commit()
    await db.refresh(mandat)

    logger.info(
        "Mandat %s created by %s for company %s (%.2f CHF TTC)",
        mandat.id, ctx.user_id, ctx.company_id, quote.prix_estime_ttc,
    )
    return to_mandat_out(normalize_mandat(mandat))


@router.post("/quote", response_model=QuotePreviewResponse)
async def preview_quote(
    data: QuotePreviewRequest,
    db: DbSession,
    ctx: ExpediteurMember,
    maps: OptionalMapsClient,
):
    """
    Quote with the active pricing set without creating anything.

    distance_km wins over coordinates when both are sent.
    """
    try:
        pricing_set = await get_active_pricing(db)
    except NoActivePricingError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    variables, supplements = parse_pricing_set(pricing_set)

    distance_km = data.distance_km
    duration = None
    if distance_km is None:
        route = await estimate_route(maps, data.depart, data.arrivee)
        if route:
            distance_km = route.distance_km
            duration = route.duration_minutes

    quote = calculate_quote(distance_km or 0, data.surface_m2 or 0, variables, supplements)

    return QuotePreviewResponse(
        pricing_set_id=pricing_set.id,
        distance_km=distance_km or 0,
        duration_minutes=duration,
        surface_m2=data.surface_m2 or 0,
        prix_base_ht=quote.prix_base_ht,
        prix_estime_ht=quote.prix_estime_ht,
        prix_estime_ttc=quote.prix_estime_ttc,
        surcharges=[SurchargeLine(nom=nom, montant_chf=amount) for nom, amount in quote.surcharges],
    )


@router.get("", response_model=MandatListResponse)
async def list_mandats(db: DbSession, ctx: ExpediteurMember):
    """Mandats of the caller's company, newest first."""
    result = await db.execute(
        select(Mandat)
        .where(Mandat.company_id == ctx.company_id)
        .order_by(Mandat.created_at.desc())
    )
    mandats = result.scalars().all()

    creator_ids = {m.created_by for m in mandats if m.created_by}
    creators = {}
    if creator_ids:
        users = await db.execute(select(User).where(User.uid.in_(creator_ids)))
        creators = {u.uid: u for u in users.scalars().all()}

    return MandatListResponse(
        mandats=[to_mandat_out(normalize_mandat(m), creators.get(m.created_by)) for m in mandats],
        user_role=ctx.member_role,
    )


@router.get("/{mandat_id}", response_model=MandatOut)
async def get_mandat(mandat_id: int, db: DbSession, ctx: ExpediteurMember):
    mandat = await get_company_mandat_or_404(db, mandat_id, ctx.company_id)
    creator = None
    if mandat.created_by:
        creator = (await db.execute(select(User).where(User.uid == mandat.created_by))).scalar_one_or_none()
    return to_mandat_out(normalize_mandat(mandat), creator)


@router.delete("/{mandat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_mandat(mandat_id: int, db: DbSession, ctx: ExpediteurMember):
    """
    Delete a mandat.

    Allowed for its creator and the company owner/admins, until a
    transporter has claimed it.
    """
    mandat = await get_company_mandat_or_404(db, mandat_id, ctx.company_id)

    if mandat.created_by != ctx.user_id and ctx.member_role not in ("owner", "admin"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the creator or a company admin can delete this mandat",
        )
    if mandat.transporteur_company_id is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Mandat already accepted by a transporter",
        )

    image_paths = [p for p in (storage_path_from_url(url) for url in normalize_mandat(mandat).images) if p]

    await db.delete(mandat)
    await db.commit()
    logger.info("Mandat %s deleted by %s", mandat_id, ctx.user_id)

    try:
        await delete_mandat_images(image_paths)
    except StorageError as e:
        logger.warning("Images of deleted mandat %s left in storage: %s", mandat_id, e)


@router.post("/upload-image", response_model=UploadImageResponse)
async def upload_image(ctx: ExpediteurMember, file: UploadFile = File(...)):
    """Upload one mandat image; returns its storage path and public URL."""
    content = await file.read()
    try:
        path, url = await upload_mandat_image(
            content,
            file.filename or "image",
            str(ctx.company_id),
            mime_type=file.content_type,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    return UploadImageResponse(path=path, url=url)

"""
Mandat model - a transport job posted by a shipper company.

Columns follow the creation wizard steps: general info, addresses and
contacts, pickup windows, goods characteristics, then the pricing snapshot
frozen at creation time and the transporter assignment.
"""

import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, TimestampMixin

MANDAT_STATUSES = ("pending", "approved", "rejected")
TRANSPORTEUR_STATUSES = ("accepted", "picked_up", "delivered", "delivery_problem")


class Mandat(Base, TimestampMixin):
    """A transport mandate."""

    __tablename__ = "mandats"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    mandat_uuid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), default=uuid.uuid4, unique=True)

    # System
    uid: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    company_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Moderation (NULL on legacy rows means pending)
    status: Mapped[Optional[str]] = mapped_column(
        SQLEnum(*MANDAT_STATUSES, name="mandat_status"),
        default="pending",
        nullable=True,
        index=True,
    )
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    moderated_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    moderated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Transporter assignment
    transporteur_company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("companies.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    transporteur_company_user: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    transporteur_status: Mapped[Optional[str]] = mapped_column(
        SQLEnum(*TRANSPORTEUR_STATUSES, name="transporteur_status"),
        nullable=True,
    )
    accepte_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # General info
    nom: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    images: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)

    # Addresses & contacts
    depart_adresse: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    depart_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    depart_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    depart_contact: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    depart_horaires_ouverture: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    arrivee_adresse: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    arrivee_lat: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    arrivee_lng: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    arrivee_contact: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    arrivee_horaires_ouverture: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pickup / delivery windows
    enlevement_souhaite_debut_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    enlevement_souhaite_fin_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    enlevement_confirme_debut_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    enlevement_confirme_fin_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    enlevement_max_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    enlevement_effectif_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    livraison_prevue_debut_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    livraison_prevue_fin_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    livraison_effective_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    # Goods
    type_marchandise: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    poids_total_kg: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    volume_total_m3: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    surface_m2: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    nombre_colis: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    type_vehicule: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    type_acces: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    acces_autre: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    moyen_chargement: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sensi_temperature: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    temperature_min_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    temperature_max_c: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    matiere_dangereuse: Mapped[Optional[bool]] = mapped_column(Boolean, nullable=True)
    adr_classe: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    adr_uno: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Route and pricing snapshot
    distance_km: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    duree_estimee_min: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    tarif_km_base_chf: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    maj_carburant_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    maj_embouteillage_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    autre_supp: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    surcharge_grue_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    surcharge_grue_chf: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    tva_rate_pct: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    prix_base_ht: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    prix_estime_ht: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    prix_estime_ttc: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    monnaie: Mapped[str] = mapped_column(Text, default="CHF", nullable=False)
    pricing_set_id: Mapped[Optional[int]] = mapped_column(
        BigInteger,
        ForeignKey("pricing_sets.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Billing and documents
    facture_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    statut_facturation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes_calcul_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    preuve_livraison: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    documents: Mapped[Optional[List[str]]] = mapped_column(JSON, nullable=True)
    commentaire_transporteur: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    commentaire_expediteur: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Cancellation
    annule_par: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    raison_annulation: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Raw creation request, kept for older clients
    payload: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Mandat(id={self.id}, nom='{self.nom}', status='{self.status}')>"

"""Initial marketplace schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

Adds:
- companies, company_members, company_invitations
- users (profile of the Supabase auth user)
- pricing_sets, with at most one active set
- mandats
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, ENUM


# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ENUMS = {
    'company_type': ('expediteur', 'transporteur'),
    'company_status': ('pending', 'approved', 'rejected'),
    'member_role': ('owner', 'admin', 'member'),
    'invitation_role': ('admin', 'member'),
    'invitation_status': ('pending', 'accepted', 'revoked', 'expired'),
    'user_role': ('expediteur', 'transporteur'),
    'mandat_status': ('pending', 'approved', 'rejected'),
    'transporteur_status': ('accepted', 'picked_up', 'delivered', 'delivery_problem'),
}


def _enum(name: str) -> ENUM:
    return ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in ENUMS.items():
        ENUM(*values, name=name).create(bind, checkfirst=True)

    # 1. Companies
    op.create_table(
        'companies',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('legal_name', sa.Text, nullable=True),
        sa.Column('type', _enum('company_type'), nullable=False),
        sa.Column('vat_number', sa.Text, nullable=True),
        sa.Column('rcs', sa.Text, nullable=True),
        sa.Column('billing_email', sa.Text, nullable=False),
        sa.Column('billing_address', sa.JSON, nullable=True),
        sa.Column('status', _enum('company_status'), server_default='pending', nullable=False),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_companies_status', 'companies', ['status'])

    op.create_table(
        'company_members',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column('company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', UUID(as_uuid=True), nullable=False),
        sa.Column('role', _enum('member_role'), server_default='member', nullable=False),
        sa.Column('invited_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('company_id', 'user_id', name='uq_company_members_company_user'),
    )
    op.create_index('ix_company_members_company_id', 'company_members', ['company_id'])
    op.create_index('ix_company_members_user_id', 'company_members', ['user_id'])

    op.create_table(
        'company_invitations',
        sa.Column('id', UUID(as_uuid=True), primary_key=True),
        sa.Column('company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),
        sa.Column('email', sa.Text, nullable=False),
        sa.Column('role', _enum('invitation_role'), nullable=False),
        sa.Column('token', sa.Text, nullable=True, unique=True),
        sa.Column('status', _enum('invitation_status'), server_default='pending', nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('invited_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_company_invitations_company_id', 'company_invitations', ['company_id'])

    # 2. Users
    op.create_table(
        'users',
        sa.Column('uid', UUID(as_uuid=True), primary_key=True),
        sa.Column('email', sa.Text, nullable=False, unique=True),
        sa.Column('first_name', sa.Text, nullable=True),
        sa.Column('last_name', sa.Text, nullable=True),
        sa.Column('role', _enum('user_role'), server_default='expediteur', nullable=False),
        sa.Column('company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_company_id', 'users', ['company_id'])

    # 3. Pricing sets
    op.create_table(
        'pricing_sets',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column('name', sa.Text, nullable=False),
        sa.Column('variables', sa.JSON, nullable=False),
        sa.Column('supplements', sa.JSON, nullable=False),
        sa.Column('is_active', sa.Boolean, server_default='false', nullable=False),
        sa.Column('activated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', UUID(as_uuid=True), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        'uq_pricing_sets_single_active',
        'pricing_sets',
        ['is_active'],
        unique=True,
        postgresql_where=sa.text('is_active'),
    )

    # 4. Mandats
    dt = sa.DateTime(timezone=True)
    op.create_table(
        'mandats',
        sa.Column('id', sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column('mandat_uuid', UUID(as_uuid=True), nullable=True, unique=True),
        sa.Column('uid', UUID(as_uuid=True), nullable=False),
        sa.Column('created_by', UUID(as_uuid=True), nullable=False),
        sa.Column('company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id', ondelete='CASCADE'), nullable=False),

        # Moderation
        sa.Column('status', _enum('mandat_status'), server_default='pending', nullable=True),
        sa.Column('rejection_reason', sa.Text, nullable=True),
        sa.Column('moderated_by', sa.Text, nullable=True),
        sa.Column('moderated_at', dt, nullable=True),

        # Transporter
        sa.Column('transporteur_company_id', UUID(as_uuid=True), sa.ForeignKey('companies.id', ondelete='SET NULL'), nullable=True),
        sa.Column('transporteur_company_user', UUID(as_uuid=True), nullable=True),
        sa.Column('transporteur_status', _enum('transporteur_status'), nullable=True),
        sa.Column('accepte_at', dt, nullable=True),

        # General info
        sa.Column('nom', sa.Text, nullable=True),
        sa.Column('description', sa.Text, nullable=True),
        sa.Column('images', sa.JSON, nullable=True),

        # Addresses
        sa.Column('depart_adresse', sa.Text, nullable=True),
        sa.Column('depart_lat', sa.Float, nullable=True),
        sa.Column('depart_lng', sa.Float, nullable=True),
        sa.Column('depart_contact', sa.Text, nullable=True),
        sa.Column('depart_horaires_ouverture', sa.Text, nullable=True),
        sa.Column('arrivee_adresse', sa.Text, nullable=True),
        sa.Column('arrivee_lat', sa.Float, nullable=True),
        sa.Column('arrivee_lng', sa.Float, nullable=True),
        sa.Column('arrivee_contact', sa.Text, nullable=True),
        sa.Column('arrivee_horaires_ouverture', sa.Text, nullable=True),

        # Windows
        sa.Column('enlevement_souhaite_debut_at', dt, nullable=True),
        sa.Column('enlevement_souhaite_fin_at', dt, nullable=True),
        sa.Column('enlevement_confirme_debut_at', dt, nullable=True),
        sa.Column('enlevement_confirme_fin_at', dt, nullable=True),
        sa.Column('enlevement_max_at', dt, nullable=True),
        sa.Column('enlevement_effectif_at', dt, nullable=True),
        sa.Column('livraison_prevue_debut_at', dt, nullable=True),
        sa.Column('livraison_prevue_fin_at', dt, nullable=True),
        sa.Column('livraison_effective_at', dt, nullable=True),

        # Goods
        sa.Column('type_marchandise', sa.Text, nullable=True),
        sa.Column('poids_total_kg', sa.Float, nullable=True),
        sa.Column('volume_total_m3', sa.Float, nullable=True),
        sa.Column('surface_m2', sa.Float, nullable=True),
        sa.Column('nombre_colis', sa.Integer, nullable=True),
        sa.Column('type_vehicule', sa.Text, nullable=True),
        sa.Column('type_acces', sa.Text, nullable=True),
        sa.Column('acces_autre', sa.Text, nullable=True),
        sa.Column('moyen_chargement', sa.Text, nullable=True),
        sa.Column('sensi_temperature', sa.Boolean, nullable=True),
        sa.Column('temperature_min_c', sa.Float, nullable=True),
        sa.Column('temperature_max_c', sa.Float, nullable=True),
        sa.Column('matiere_dangereuse', sa.Boolean, nullable=True),
        sa.Column('adr_classe', sa.Float, nullable=True),
        sa.Column('adr_uno', sa.Text, nullable=True),

        # Pricing snapshot
        sa.Column('distance_km', sa.Float, nullable=True),
        sa.Column('duree_estimee_min', sa.Integer, nullable=True),
        sa.Column('tarif_km_base_chf', sa.Float, nullable=True),
        sa.Column('maj_carburant_pct', sa.Float, nullable=True),
        sa.Column('maj_embouteillage_pct', sa.Float, nullable=True),
        sa.Column('autre_supp', sa.JSON, nullable=True),
        sa.Column('surcharge_grue_pct', sa.Float, nullable=True),
        sa.Column('surcharge_grue_chf', sa.Float, nullable=True),
        sa.Column('tva_rate_pct', sa.Float, nullable=True),
        sa.Column('prix_base_ht', sa.Float, nullable=True),
        sa.Column('prix_estime_ht', sa.Float, nullable=True),
        sa.Column('prix_estime_ttc', sa.Float, nullable=True),
        sa.Column('monnaie', sa.Text, server_default='CHF', nullable=False),
        sa.Column('pricing_set_id', sa.BigInteger, sa.ForeignKey('pricing_sets.id', ondelete='SET NULL'), nullable=True),

        # Billing
        sa.Column('facture_id', sa.Text, nullable=True),
        sa.Column('statut_facturation', sa.Text, nullable=True),
        sa.Column('notes_calcul_json', sa.JSON, nullable=True),
        sa.Column('preuve_livraison', sa.Text, nullable=True),
        sa.Column('documents', sa.JSON, nullable=True),
        sa.Column('commentaire_transporteur', sa.Text, nullable=True),
        sa.Column('commentaire_expediteur', sa.Text, nullable=True),

        # Cancellation
        sa.Column('annule_par', sa.Text, nullable=True),
        sa.Column('raison_annulation', sa.Text, nullable=True),

        sa.Column('payload', sa.JSON, nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_mandats_created_by', 'mandats', ['created_by'])
    op.create_index('ix_mandats_company_id', 'mandats', ['company_id'])
    op.create_index('ix_mandats_status', 'mandats', ['status'])
    op.create_index('ix_mandats_transporteur_company_id', 'mandats', ['transporteur_company_id'])
    # Marketplace listing: approved, unclaimed, by creation date
    op.create_index(
        'ix_mandats_marketplace',
        'mandats',
        ['created_at'],
        postgresql_where=sa.text("status = 'approved' AND transporteur_company_id IS NULL"),
    )


def downgrade() -> None:
    op.drop_table('mandats')
    op.drop_index('uq_pricing_sets_single_active', table_name='pricing_sets')
    op.drop_table('pricing_sets')
    op.drop_table('users')
    op.drop_table('company_invitations')
    op.drop_table('company_members')
    op.drop_table('companies')

    bind = op.get_bind()
    for name, values in reversed(list(ENUMS.items())):
        ENUM(*values, name=name).drop(bind, checkfirst=True)

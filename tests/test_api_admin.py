"""API tests for platform administration."""

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

from app.main import app
from app.models.company import Company
from app.models.mandat import Mandat
from app.models.pricing_set import PricingSet
from tests.conftest import FakeResult


def test_non_admin_is_refused(api, login, expediteur_owner):
    login(expediteur_owner)
    assert api.get("/admin/stats").status_code == 403


def test_missing_admin_configuration(api, login, admin_user, monkeypatch):
    login(admin_user)
    monkeypatch.setattr("app.api.deps.get_settings", lambda: SimpleNamespace(admin_emails=[]))

    response = api.get("/admin/stats")

    assert response.status_code == 500
    assert response.json()["detail"] == "Admin configuration missing"


def test_stats(api, login, fake_session, admin_user):
    login(admin_user)
    fake_session.results.extend([
        FakeResult(rows=[("pending", 2), ("approved", 5)]),
        FakeResult(rows=[(None, 1), ("pending", 1), ("rejected", 3)]),
    ])

    body = api.get("/admin/stats").json()

    assert body["companies"] == {"total": 7, "pending": 2, "approved": 5, "rejected": 0}
    assert body["mandats"]["pending"] == 2
    assert body["mandats"]["total"] == 5


class TestPricingSets:
    def test_create_normalizes_supplements(self, api, login, fake_session, admin_user):
        login(admin_user)

        response = api.post("/admin/pricing", json={
            "name": "Tarifs 2026",
            "variables": {"tarif_km_base_chf": 0.85, "maj_carburant_pct": 15, "tva_rate_pct": 8.1},
            "supplements": [{"nom": "Péage", "type": "fix", "montant": 15}],
        })

        assert response.status_code == 201
        body = response.json()
        assert body["is_active"] is False
        assert body["supplements"] == [{"nom": "Péage", "type": "fixe", "montant": 15.0}]
        assert body["variables"]["maj_embouteillage_pct"] == 0

    def test_create_keeps_discount_supplements(self, api, login, fake_session, admin_user):
        login(admin_user)

        response = api.post("/admin/pricing", json={
            "name": "Tarifs fidélité",
            "variables": {"tarif_km_base_chf": 0.85},
            "supplements": [{"nom": "Remise fidélité", "type": "fixe", "montant": -20}],
        })

        assert response.status_code == 201
        assert response.json()["supplements"][0]["montant"] == -20
        assert fake_session.added[0].supplements[0]["montant"] == -20

    def test_create_rejects_unknown_supplement_type(self, api, login, admin_user):
        login(admin_user)
        response = api.post("/admin/pricing", json={
            "name": "Tarifs",
            "variables": {"tarif_km_base_chf": 1},
            "supplements": [{"nom": "X", "type": "percent", "montant": 5}],
        })
        assert response.status_code == 422

    def test_create_rejects_negative_rates(self, api, login, admin_user):
        login(admin_user)
        response = api.post("/admin/pricing", json={"name": "Tarifs", "variables": {"tarif_km_base_chf": -1}})
        assert response.status_code == 422

    def test_active_set_cannot_be_deleted(self, api, login, fake_session, admin_user):
        login(admin_user)
        fake_session.objects[(PricingSet, 3)] = SimpleNamespace(id=3, is_active=True)

        assert api.delete("/admin/pricing/3").status_code == 409
        assert fake_session.deleted == []

    def test_inactive_set_is_deleted(self, api, login, fake_session, admin_user):
        login(admin_user)
        pricing_set = SimpleNamespace(id=4, is_active=False)
        fake_session.objects[(PricingSet, 4)] = pricing_set

        assert api.delete("/admin/pricing/4").status_code == 204
        assert fake_session.deleted == [pricing_set]

    def test_activate(self, api, login, fake_session, admin_user):
        login(admin_user)
        pricing_set = SimpleNamespace(
            id=4, name="Tarifs", variables={}, supplements=[], is_active=False,
            activated_at=None, created_by=None, created_at=None,
        )
        fake_session.objects[(PricingSet, 4)] = pricing_set

        response = api.patch("/admin/pricing/4/activate")

        assert response.status_code == 200
        assert response.json()["is_active"] is True
        assert pricing_set.activated_at is not None
        # the others are deactivated first
        assert len(fake_session.statements) == 1


class TestMandatModeration:
    def _mandat(self, status):
        return SimpleNamespace(
            id=5, status=status, nom="Palettes", created_by=None, company_id=uuid.uuid4(),
            transporteur_company_id=None, transporteur_status=None, payload=None,
            rejection_reason=None, moderated_by=None, moderated_at=None,
        )

    def test_approve(self, api, login, fake_session, admin_user):
        login(admin_user)
        mandat = self._mandat(None)
        fake_session.objects[(Mandat, 5)] = mandat

        response = api.post("/admin/mandats/5/approve")

        assert response.status_code == 200
        assert response.json()["phase"] == "approved_unclaimed"
        assert mandat.moderated_by == "admin@spontis.ch"

    def test_reject_uses_default_reason(self, api, login, fake_session, admin_user):
        login(admin_user)
        fake_session.objects[(Mandat, 5)] = self._mandat("pending")

        response = api.post("/admin/mandats/5/reject", json={"reason": "  "})

        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "Motif non spécifié"

    def test_already_moderated(self, api, login, fake_session, admin_user):
        login(admin_user)
        fake_session.objects[(Mandat, 5)] = self._mandat("approved")

        assert api.post("/admin/mandats/5/approve").status_code == 400

    def test_unknown_mandat(self, api, login, admin_user):
        login(admin_user)
        assert api.post("/admin/mandats/404/approve").status_code == 404


class TestCompanyModeration:
    def _company(self, status):
        return SimpleNamespace(
            id=uuid.uuid4(), name="Rapid SA", legal_name=None, type="transporteur",
            vat_number=None, rcs=None, billing_email="billing@rapid.ch", billing_address=None,
            status=status, rejection_reason=None, created_by=None,
            created_at=datetime(2026, 10, 1, tzinfo=timezone.utc),
        )

    def test_approve_invalidates_member_sessions(self, api, login, fake_session, admin_user):
        login(admin_user)
        company = self._company("pending")
        member_id = uuid.uuid4()
        fake_session.objects[(Company, company.id)] = company
        fake_session.results.append(FakeResult(rows=[member_id]))
        cache = app.state.session_cache
        cache.set(member_id, "stale session")

        response = api.post(f"/admin/companies/{company.id}/approve")

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert cache.get(member_id) is None

    def test_reject_requires_pending(self, api, login, fake_session, admin_user):
        login(admin_user)
        company = self._company("approved")
        fake_session.objects[(Company, company.id)] = company

        response = api.post(f"/admin/companies/{company.id}/reject", json={"reason": "Incomplet"})

        assert response.status_code == 400

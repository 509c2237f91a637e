"""API tests for the transporter marketplace."""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from sqlalchemy.dialects import postgresql

from tests.conftest import FakeResult

CREATED = datetime(2026, 10, 1, 9, 0, tzinfo=timezone.utc)


def _mandat(mandat_id, created_at=CREATED, **overrides):
    values = dict(
        id=mandat_id,
        status="approved",
        nom=f"Mandat {mandat_id}",
        created_at=created_at,
        company_id=uuid.uuid4(),
        transporteur_company_id=None,
        transporteur_status=None,
        payload=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestMarketplace:
    def test_lists_unclaimed_mandats(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        fake_session.results.append(FakeResult(rows=[(_mandat(1), "Acme Logistique")]))

        response = api.get("/transporteur/mandats/marketplace")

        assert response.status_code == 200
        body = response.json()
        assert body["mandats"][0]["company_name"] == "Acme Logistique"
        assert body["mandats"][0]["phase"] == "approved_unclaimed"
        assert body["pagination"]["has_more"] is False
        assert body["pagination"]["sort_order"] == "desc"

    def test_extra_row_means_more_pages(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        older = CREATED - timedelta(hours=1)
        fake_session.results.append(FakeResult(rows=[
            (_mandat(2), "Acme"),
            (_mandat(1, created_at=older), "Acme"),
        ]))

        response = api.get("/transporteur/mandats/marketplace", params={"limit": 1})

        body = response.json()
        assert len(body["mandats"]) == 1
        assert body["pagination"]["has_more"] is True
        assert body["pagination"]["next_cursor"].startswith("2026-10-01T09:00")
        assert body["pagination"]["next_cursor"].endswith("_2")

    def test_cursor_resumes_after_last_row(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        fake_session.results.append(FakeResult(rows=[]))
        cursor = f"{CREATED.isoformat()}_2"

        response = api.get("/transporteur/mandats/marketplace", params={"cursor": cursor})

        assert response.status_code == 200
        sql = str(fake_session.statements[0].compile(dialect=postgresql.dialect()))
        # rows sharing created_at with the last one are not skipped
        assert "(mandats.created_at, mandats.id) < (" in sql

    def test_ascending_cursor(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        fake_session.results.append(FakeResult(rows=[]))

        api.get("/transporteur/mandats/marketplace", params={"cursor": f"{CREATED.isoformat()}_2", "sort": "asc"})

        sql = str(fake_session.statements[0].compile(dialect=postgresql.dialect()))
        assert "(mandats.created_at, mandats.id) > (" in sql

    def test_invalid_cursor(self, api, login, transporteur_member):
        login(transporteur_member)
        response = api.get("/transporteur/mandats/marketplace", params={"cursor": "yesterday_x"})
        assert response.status_code == 400

    def test_limit_is_bounded(self, api, login, transporteur_member):
        login(transporteur_member)
        assert api.get("/transporteur/mandats/marketplace", params={"limit": 0}).status_code == 422
        assert api.get("/transporteur/mandats/marketplace", params={"limit": 51}).status_code == 422

    def test_invalid_sort(self, api, login, transporteur_member):
        login(transporteur_member)
        assert api.get("/transporteur/mandats/marketplace", params={"sort": "up"}).status_code == 422

    def test_shippers_are_refused(self, api, login, expediteur_owner):
        login(expediteur_owner)
        assert api.get("/transporteur/mandats/marketplace").status_code == 403


class TestAccept:
    def test_claim(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        claimed = _mandat(
            7,
            transporteur_company_id=transporteur_member.company_id,
            transporteur_status="accepted",
        )
        fake_session.results.append(FakeResult(claimed))

        response = api.post("/transporteur/mandats/7/accept")

        assert response.status_code == 200
        assert response.json()["mandat"]["phase"] == "claimed"
        assert fake_session.commits == 1

    def test_already_claimed(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        fake_session.results.extend([FakeResult(None), FakeResult("approved")])

        response = api.post("/transporteur/mandats/7/accept")

        assert response.status_code == 409
        assert fake_session.commits == 0

    def test_not_available(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        fake_session.results.extend([FakeResult(None), FakeResult("pending")])

        assert api.post("/transporteur/mandats/7/accept").status_code == 404


class TestStatusUpdate:
    def test_invalid_status(self, api, login, transporteur_member):
        login(transporteur_member)
        response = api.patch("/transporteur/mandats/7/status", json={"status": "lost"})
        assert response.status_code == 400

    def test_pickup(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        company = transporteur_member.company_id
        fake_session.results.extend([
            FakeResult(_mandat(7, transporteur_company_id=company, transporteur_status="accepted")),
            FakeResult(_mandat(7, transporteur_company_id=company, transporteur_status="picked_up")),
        ])

        response = api.patch("/transporteur/mandats/7/status", json={"status": "picked_up"})

        assert response.status_code == 200
        assert response.json()["mandat"]["phase"] == "in_transit"

    def test_skipping_pickup_is_refused(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        company = transporteur_member.company_id
        fake_session.results.append(
            FakeResult(_mandat(7, transporteur_company_id=company, transporteur_status="accepted"))
        )

        response = api.patch("/transporteur/mandats/7/status", json={"status": "delivered"})

        assert response.status_code == 409

    def test_mandat_of_another_company(self, api, login, fake_session, transporteur_member):
        login(transporteur_member)
        fake_session.results.append(FakeResult(None))

        response = api.patch("/transporteur/mandats/7/status", json={"status": "picked_up"})

        assert response.status_code == 404

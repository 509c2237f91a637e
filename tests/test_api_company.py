"""API tests for session info, company members and invitations."""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from app.api.company import CompanyResponse, InvitationResponse
from app.main import app
from app.models.company import Company
from tests.conftest import FakeResult, make_context


def _invitation(**overrides):
    values = dict(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        email="new@acme.ch",
        role="member",
        token="tok",
        status="pending",
        expires_at=datetime.now(timezone.utc) + timedelta(days=3),
        invited_by=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


class TestSession:
    def test_me(self, api, login, expediteur_owner):
        login(expediteur_owner)

        body = api.get("/auth/me").json()

        assert body["name"] == "Léa Muller"
        assert body["member_role"] == "owner"
        assert body["company"]["type"] == "expediteur"
        assert body["is_admin"] is False

    def test_me_without_company(self, api, login):
        login(make_context(company_id=None, member_role=None, first_name=None, last_name=None))

        body = api.get("/auth/me").json()

        assert body["company"] is None
        assert body["name"] == "user@example.ch"

    def test_ensure_user_updates_existing_profile(self, api, login, fake_session, expediteur_owner):
        login(expediteur_owner)
        user = SimpleNamespace(first_name="Old", last_name="Name")
        fake_session.results.append(FakeResult(user))
        app.state.session_cache.set(expediteur_owner.user_id, expediteur_owner)

        response = api.post("/auth/ensure-user", json={"first_name": "Léa"})

        assert response.json() == {"success": True, "created": False}
        assert user.first_name == "Léa"
        assert app.state.session_cache.get(expediteur_owner.user_id) is None

    def test_ensure_user_creates_profile(self, api, login, fake_session):
        ctx = login(make_context(company_id=None, member_role=None, has_profile=False))
        fake_session.results.append(FakeResult(None))

        response = api.post("/auth/ensure-user", json={"first_name": "Marc", "last_name": "Rochat"})

        assert response.json()["created"] is True
        user = fake_session.added[0]
        assert user.uid == ctx.user_id
        assert user.role == "expediteur"


class TestMembers:
    def test_owner_role_cannot_change(self, api, login, fake_session, expediteur_owner):
        login(expediteur_owner)
        fake_session.results.append(FakeResult(SimpleNamespace(id=2, user_id=uuid.uuid4(), role="owner")))

        response = api.patch("/company/members/2", json={"role": "admin"})

        assert response.status_code == 400

    def test_only_owner_changes_roles(self, api, login):
        login(make_context(member_role="admin"))
        assert api.patch("/company/members/2", json={"role": "member"}).status_code == 403

    def test_admins_cannot_remove_admins(self, api, login, fake_session):
        login(make_context(member_role="admin"))
        fake_session.results.append(FakeResult(SimpleNamespace(id=2, user_id=uuid.uuid4(), role="admin")))

        assert api.delete("/company/members/2").status_code == 403

    def test_remove_member(self, api, login, fake_session, expediteur_owner):
        login(expediteur_owner)
        member = SimpleNamespace(id=2, user_id=uuid.uuid4(), role="member")
        fake_session.results.append(FakeResult(member))

        assert api.delete("/company/members/2").status_code == 204
        assert fake_session.deleted == [member]
        assert fake_session.commits == 1


class TestInvitations:
    def test_existing_account_cannot_be_invited(self, api, login, fake_session, expediteur_owner):
        login(expediteur_owner)
        fake_session.results.extend([FakeResult(SimpleNamespace(uid=uuid.uuid4())), FakeResult(None)])

        response = api.post("/company/invitations", json={"email": "Known@Acme.ch", "role": "member"})

        assert response.status_code == 400
        assert response.json()["detail"] == "This email already has a Spontis account"

    def test_plain_members_cannot_invite(self, api, login):
        login(make_context(member_role="member"))
        response = api.post("/company/invitations", json={"email": "new@acme.ch", "role": "member"})
        assert response.status_code == 403

    def test_revoke_unknown(self, api, login, fake_session, expediteur_owner):
        login(expediteur_owner)
        fake_session.results.append(FakeResult(rowcount=0))

        assert api.delete(f"/company/invitations/{uuid.uuid4()}").status_code == 404

    def test_validate_is_public(self, api, fake_session):
        invitation = _invitation()
        fake_session.results.append(FakeResult(invitation))
        fake_session.objects[(Company, invitation.company_id)] = SimpleNamespace(name="Acme Logistique")

        response = api.post("/company/invitations/validate", json={"token": "tok"})

        assert response.status_code == 200
        assert response.json()["company_name"] == "Acme Logistique"

    def test_validate_unknown_token(self, api, fake_session):
        fake_session.results.append(FakeResult(None))
        assert api.post("/company/invitations/validate", json={"token": "nope"}).status_code == 404

    def test_accept_expired(self, api, login, fake_session):
        login(make_context(email="new@acme.ch", company_id=None))
        invitation = _invitation(expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        fake_session.results.append(FakeResult(invitation))

        response = api.post("/company/invitations/accept", json={"token": "tok"})

        assert response.status_code == 400
        assert invitation.status == "expired"
        assert fake_session.commits == 1

    def test_accept_with_other_email(self, api, login, fake_session):
        login(make_context(email="someone@else.ch", company_id=None))
        fake_session.results.append(FakeResult(_invitation()))

        response = api.post("/company/invitations/accept", json={"token": "tok"})

        assert response.status_code == 403

    def test_cleanup(self, api, login, fake_session, expediteur_owner):
        login(expediteur_owner)
        fake_session.results.extend([FakeResult(rowcount=2), FakeResult(rowcount=1)])

        response = api.post("/company/invitations/cleanup")

        assert response.json() == {"expired": 2, "deleted": 1}


class TestSchemas:
    def test_company_reads_orm_attributes(self):
        company = SimpleNamespace(
            id=uuid.uuid4(), name="Rapid SA", legal_name=None, type="transporteur",
            vat_number=None, rcs=None, billing_email="billing@rapid.ch", billing_address=None,
            status="pending", rejection_reason=None, created_at=None,
        )

        assert CompanyResponse.model_validate(company).name == "Rapid SA"

    def test_invitation_reads_orm_attributes(self):
        invitation = _invitation(created_at=None)

        assert InvitationResponse.model_validate(invitation).role == "member"

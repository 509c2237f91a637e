"""Tests for invitation housekeeping."""

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from app.services.invitation_service import (
    cleanup_invitations,
    invitation_expiry,
    is_expired,
    new_invitation_token,
)
from tests.conftest import FakeResult, FakeSession

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def test_tokens_are_unique():
    assert new_invitation_token() != new_invitation_token()


def test_invitation_expiry():
    assert invitation_expiry(7, now=NOW) == NOW + timedelta(days=7)


def test_is_expired():
    assert is_expired(SimpleNamespace(expires_at=NOW - timedelta(seconds=1)), now=NOW)
    assert not is_expired(SimpleNamespace(expires_at=NOW + timedelta(days=1)), now=NOW)


def test_naive_expiry_is_read_as_utc():
    naive = (NOW - timedelta(hours=1)).replace(tzinfo=None)
    assert is_expired(SimpleNamespace(expires_at=naive), now=NOW)


async def test_cleanup_counts():
    db = FakeSession([FakeResult(rowcount=3), FakeResult(rowcount=1)])

    result = await cleanup_invitations(db, company_id=uuid.uuid4(), now=NOW)

    assert (result.expired, result.deleted) == (3, 1)
    assert len(db.statements) == 2
    assert db.commits == 0

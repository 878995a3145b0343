"""Tests for the refresh token ledger (app.crud.crud_refresh_token)."""
import asyncio
import uuid
from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.core.exceptions import DuplicateJtiError, UpstreamUnavailableError
from app.crud import crud_refresh_token
from app.crud.crud_refresh_token import LedgerOutcome, is_expired, is_valid, utcnow_naive
from app.db.session import bounded
from app.schemas.refresh_token import RefreshTokenRecord


def new_jti() -> str:
    return str(uuid.uuid4())


async def record_for(db, user_id: int, *, expires_in: timedelta = timedelta(days=7), jti: str | None = None):
    return await crud_refresh_token.record(
        db,
        jti=jti or new_jti(),
        user_id=user_id,
        expires_at=utcnow_naive() + expires_in,
        client_ip="203.0.113.7",
        client_agent="pytest",
    )


def make_record(*, revoked: bool = False, expires_at: datetime) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        jti=new_jti(),
        user_id=1,
        issued_at=utcnow_naive(),
        expires_at=expires_at,
        revoked=revoked,
    )


class TestValidityRules:
    def test_valid_record(self):
        assert is_valid(make_record(expires_at=utcnow_naive() + timedelta(minutes=1)))

    def test_revoked_record_is_invalid(self):
        assert not is_valid(make_record(revoked=True, expires_at=utcnow_naive() + timedelta(days=1)))

    def test_expiry_boundary(self):
        expires_at = datetime(2030, 1, 1, 0, 0, 0)
        record = make_record(expires_at=expires_at)

        assert not is_expired(record, now=expires_at - timedelta(seconds=1))
        assert is_expired(record, now=expires_at)
        assert not is_valid(record, now=expires_at)


async def test_record_and_lookup(db_session, alice):
    created = await record_for(db_session, alice.id)

    found = await crud_refresh_token.lookup(db_session, jti=created.jti)
    assert found is not None
    assert found.user_id == alice.id
    assert found.revoked is False
    assert found.revoked_at is None
    assert found.client_ip == "203.0.113.7"
    assert found.client_agent == "pytest"
    assert is_valid(found)


async def test_lookup_unknown_jti(db_session):
    assert await crud_refresh_token.lookup(db_session, jti=new_jti()) is None


async def test_record_is_a_frozen_snapshot(db_session, alice):
    created = await record_for(db_session, alice.id)
    with pytest.raises(ValidationError):
        created.revoked = True


async def test_duplicate_jti_is_refused(session_factory, alice):
    jti = new_jti()
    async with session_factory() as first:
        await record_for(first, alice.id, jti=jti)

    async with session_factory() as second:
        with pytest.raises(DuplicateJtiError) as exc_info:
            await record_for(second, alice.id, jti=jti)
    assert exc_info.value.jti == jti


async def test_duplicate_jti_in_same_session_is_refused(db_session, alice):
    created = await record_for(db_session, alice.id)
    with pytest.raises(DuplicateJtiError):
        await record_for(db_session, alice.id, jti=created.jti)


class TestConsume:
    async def test_consumes_live_record_once(self, db_session, alice):
        created = await record_for(db_session, alice.id)

        result = await crud_refresh_token.consume(db_session, jti=created.jti)
        await db_session.commit()
        assert result.consumed
        assert result.outcome == LedgerOutcome.CONSUMED
        assert result.record.revoked is True
        assert result.record.revoked_at is not None

        again = await crud_refresh_token.consume(db_session, jti=created.jti)
        assert not again.consumed
        assert again.outcome == LedgerOutcome.ALREADY_REVOKED

    async def test_unknown_jti(self, db_session):
        result = await crud_refresh_token.consume(db_session, jti=new_jti())
        assert result.outcome == LedgerOutcome.NOT_FOUND
        assert result.record is None

    async def test_expired_record_is_not_touched(self, db_session, alice):
        created = await record_for(db_session, alice.id, expires_in=timedelta(seconds=-1))

        result = await crud_refresh_token.consume(db_session, jti=created.jti)
        assert result.outcome == LedgerOutcome.EXPIRED
        assert result.record.revoked is False

    async def test_uncommitted_consume_rolls_back(self, db_session, alice):
        created = await record_for(db_session, alice.id)

        assert (await crud_refresh_token.consume(db_session, jti=created.jti)).consumed
        await db_session.rollback()

        still_live = await crud_refresh_token.lookup(db_session, jti=created.jti)
        assert still_live.revoked is False

    async def test_concurrent_consumers_single_winner(self, session_factory, alice):
        async with session_factory() as setup:
            created = await record_for(setup, alice.id)

        async def attempt():
            async with session_factory() as session:
                result = await crud_refresh_token.consume(session, jti=created.jti)
                await session.commit()
                return result.outcome

        outcomes = await asyncio.gather(*(attempt() for _ in range(5)))
        assert outcomes.count(LedgerOutcome.CONSUMED) == 1
        assert outcomes.count(LedgerOutcome.ALREADY_REVOKED) == 4


class TestRevoke:
    async def test_revoke_is_idempotent(self, db_session, alice):
        created = await record_for(db_session, alice.id)

        assert await crud_refresh_token.revoke(db_session, jti=created.jti) is True
        assert await crud_refresh_token.revoke(db_session, jti=created.jti) is False

        found = await crud_refresh_token.lookup(db_session, jti=created.jti)
        assert found.revoked is True
        assert not is_valid(found)

    async def test_revoke_unknown_jti_is_not_an_error(self, db_session):
        assert await crud_refresh_token.revoke(db_session, jti=new_jti()) is False

    async def test_revoke_all_for_user(self, db_session, alice):
        records = [await record_for(db_session, alice.id) for _ in range(3)]
        await crud_refresh_token.revoke(db_session, jti=records[0].jti)

        assert await crud_refresh_token.revoke_all_for_user(db_session, user_id=alice.id) == 2
        for created in records:
            assert (await crud_refresh_token.lookup(db_session, jti=created.jti)).revoked


async def test_prune_only_removes_records_past_cutoff(db_session, alice):
    old = await record_for(db_session, alice.id, expires_in=timedelta(days=-40))
    recent = await record_for(db_session, alice.id, expires_in=timedelta(days=-1))
    live = await record_for(db_session, alice.id)

    removed = await crud_refresh_token.prune_expired(db_session, older_than=utcnow_naive() - timedelta(days=30))

    assert removed == 1
    assert await crud_refresh_token.lookup(db_session, jti=old.jti) is None
    assert await crud_refresh_token.lookup(db_session, jti=recent.jti) is not None
    assert await crud_refresh_token.lookup(db_session, jti=live.jti) is not None


class TestStorageFailures:
    async def test_timeout_becomes_upstream_unavailable(self, db_session, monkeypatch):
        monkeypatch.setattr(settings, "DB_OPERATION_TIMEOUT_SECONDS", 0.01)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await bounded(db_session, asyncio.sleep(1), operation="lookup")
        assert exc_info.value.upstream == "storage"

    async def test_operational_error_becomes_upstream_unavailable(self, db_session):
        async def broken():
            raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        with pytest.raises(UpstreamUnavailableError):
            await bounded(db_session, broken(), operation="consume")


async def test_maintenance_prune_uses_retention_window(session_factory, alice, monkeypatch):
    from app.db import maintenance

    async with session_factory() as session:
        stale = await record_for(session, alice.id, expires_in=timedelta(days=-31))
        fresh = await record_for(session, alice.id, expires_in=timedelta(days=-29))
    monkeypatch.setattr(maintenance, "get_session_local", lambda: session_factory)

    assert await maintenance.prune_refresh_tokens(retention_days=30) == 1

    async with session_factory() as session:
        assert await crud_refresh_token.lookup(session, jti=stale.jti) is None
        assert await crud_refresh_token.lookup(session, jti=fresh.jti) is not None

# tokenline/app/crud/crud_refresh_token.py
"""Refresh token ledger.

The only source of truth for refresh token validity: a signed refresh token is
accepted only while its jti has a non-revoked, non-expired row here.
All datetimes are naive UTC, matching the columns.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from loguru import logger
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy.orm.exc import FlushError

from app.core.exceptions import DuplicateJtiError
from app.db.session import bounded
from app.models.refresh_token import RefreshToken
from app.schemas.refresh_token import RefreshTokenRecord


class LedgerOutcome(str, Enum):
    CONSUMED = "consumed"
    NOT_FOUND = "not_found"
    ALREADY_REVOKED = "already_revoked"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ConsumeResult:
    outcome: LedgerOutcome
    record: Optional[RefreshTokenRecord] = None

    @property
    def consumed(self) -> bool:
        return self.outcome == LedgerOutcome.CONSUMED


def utcnow_naive() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# --- Regras puras de validade (sem banco) ---

def is_expired(record: RefreshTokenRecord, now: Optional[datetime] = None) -> bool:
    now = as_naive_utc(now) if now else utcnow_naive()
    return now >= as_naive_utc(record.expires_at)


def is_valid(record: RefreshTokenRecord, now: Optional[datetime] = None) -> bool:
    return not record.revoked and not is_expired(record, now)

# --- Fim regras puras ---


async def record(
    db: AsyncSession,
    *,
    jti: str,
    user_id: int,
    expires_at: datetime,
    client_ip: Optional[str] = None,
    client_agent: Optional[str] = None,
    commit: bool = True,
) -> RefreshTokenRecord:
    """Insere um novo registro não revogado para o jti."""
    db_token = RefreshToken(
        jti=jti,
        user_id=user_id,
        issued_at=utcnow_naive(),
        expires_at=as_naive_utc(expires_at),
        revoked=False,
        client_ip=client_ip,
        client_agent=client_agent,
    )
    db.add(db_token)
    try:
        if commit:
            await bounded(db, db.commit(), operation="ledger.record")
        else:
            await bounded(db, db.flush(), operation="ledger.record")
    except (IntegrityError, FlushError) as e:
        # FlushError: the jti is already in this session's identity map
        await db.rollback()
        if await lookup(db, jti=jti) is not None:
            logger.critical(f"Duplicate refresh token jti {jti} for user ID {user_id}; refusing to issue")
            raise DuplicateJtiError(jti) from e
        raise
    return RefreshTokenRecord.model_validate(db_token)


async def lookup(db: AsyncSession, *, jti: str) -> RefreshTokenRecord | None:
    """Busca o registro pelo jti, sem filtrar revogados ou expirados."""
    stmt = (
        select(RefreshToken)
        .where(RefreshToken.jti == jti)
        # bulk updates below do not touch the identity map
        .execution_options(populate_existing=True)
    )
    result = await bounded(db, db.execute(stmt), operation="ledger.lookup")
    db_token = result.scalars().first()
    if db_token is None:
        return None
    return RefreshTokenRecord.model_validate(db_token)


async def consume(db: AsyncSession, *, jti: str, now: Optional[datetime] = None) -> ConsumeResult:
    """Atomically check that the jti is valid and revoke it.

    A single conditional UPDATE; whoever changes the row wins and every
    concurrent caller sees zero affected rows. Does not commit: the caller
    commits together with the replacement record.
    """
    now = as_naive_utc(now) if now else utcnow_naive()
    stmt = (
        update(RefreshToken)
        .where(
            RefreshToken.jti == jti,
            RefreshToken.revoked == False,  # noqa: E712
            RefreshToken.expires_at > now,
        )
        .values(revoked=True, revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await bounded(db, db.execute(stmt), operation="ledger.consume")
    current = await lookup(db, jti=jti)

    if result.rowcount == 1:
        return ConsumeResult(LedgerOutcome.CONSUMED, current)
    # Classification only, for logs; the row is not touched again
    if current is None:
        return ConsumeResult(LedgerOutcome.NOT_FOUND)
    if current.revoked:
        return ConsumeResult(LedgerOutcome.ALREADY_REVOKED, current)
    return ConsumeResult(LedgerOutcome.EXPIRED, current)


async def revoke(db: AsyncSession, *, jti: str, commit: bool = True) -> bool:
    """Marca o jti como revogado. Idempotente: ausente ou já revogado não é erro.

    Returns True only when this call flipped the flag.
    """
    now = utcnow_naive()
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.jti == jti, RefreshToken.revoked == False)  # noqa: E712
        .values(revoked=True, revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await bounded(db, db.execute(stmt), operation="ledger.revoke")
    if commit:
        await bounded(db, db.commit(), operation="ledger.revoke")
    return result.rowcount == 1


async def revoke_all_for_user(db: AsyncSession, *, user_id: int, commit: bool = True) -> int:
    """Revoga todos os refresh tokens ativos de um usuário (ex: exclusão da conta)."""
    now = utcnow_naive()
    stmt = (
        update(RefreshToken)
        .where(RefreshToken.user_id == user_id, RefreshToken.revoked == False)  # noqa: E712
        .values(revoked=True, revoked_at=now)
        .execution_options(synchronize_session=False)
    )
    result = await bounded(db, db.execute(stmt), operation="ledger.revoke_all")
    if commit:
        await bounded(db, db.commit(), operation="ledger.revoke_all")
    return result.rowcount


async def prune_expired(db: AsyncSession, *, older_than: datetime) -> int:
    """Remove registros expirados antes de `older_than` (manutenção, fora do fluxo principal)."""
    stmt = delete(RefreshToken).where(RefreshToken.expires_at <= as_naive_utc(older_than))
    result = await bounded(db, db.execute(stmt), operation="ledger.prune")
    await bounded(db, db.commit(), operation="ledger.prune")
    return result.rowcount

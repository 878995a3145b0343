# tokenline/app/db/maintenance.py
"""Periodic housekeeping for the refresh token ledger.

Run from cron or a scheduler: ``python -m app.db.maintenance``. Only records
that expired more than REFRESH_TOKEN_RETENTION_DAYS ago are deleted; an
expired or revoked record never becomes valid again, so keeping them longer
only costs storage.
"""
import asyncio
from datetime import timedelta

from loguru import logger

from app.core.config import settings
from app.crud import crud_refresh_token
from app.db.session import dispose_engine, get_session_local
from app.models import user # noqa F401


async def prune_refresh_tokens(retention_days: int = settings.REFRESH_TOKEN_RETENTION_DAYS) -> int:
    cutoff = crud_refresh_token.utcnow_naive() - timedelta(days=retention_days)
    SessionLocal = get_session_local()
    async with SessionLocal() as db:
        removed = await crud_refresh_token.prune_expired(db, older_than=cutoff)
    logger.info(f"Removidos {removed} refresh token(s) expirados antes de {cutoff.isoformat()}")
    return removed


async def main() -> None:
    try:
        await prune_refresh_tokens()
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())

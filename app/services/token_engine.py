# tokenline/app/services/token_engine.py
"""Token lifecycle engine: issue, rotate and revoke access/refresh token pairs.

Access tokens are stateless (signature + expiry). Refresh tokens are accepted
only while their jti has a live ledger row, and each row can be rotated
exactly once:

    issued -> rotated (new row issued) | revoked (logout) | expired
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import RefreshTokenInvalidError, UpstreamUnavailableError
from app.core.security import TokenSigner, TokenType, get_token_signer
from app.crud import crud_refresh_token
from app.crud.crud_refresh_token import LedgerOutcome
from app.crud.crud_user import user as crud_user


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str
    account_id: int
    access_expires_at: datetime
    refresh_expires_at: datetime
    refresh_jti: str
    access_expires_in: int  # seconds


class TokenLifecycleEngine:
    """Per-request orchestrator over the signer and the refresh ledger."""

    def __init__(self, db: AsyncSession, signer: Optional[TokenSigner] = None):
        self.db = db
        self.signer = signer or get_token_signer()

    async def issue_pair(
        self,
        account_id: int,
        client_ip: Optional[str] = None,
        client_agent: Optional[str] = None,
        *,
        commit: bool = True,
    ) -> TokenPair:
        access = self.signer.mint(account_id, TokenType.ACCESS)
        refresh = self.signer.mint(account_id, TokenType.REFRESH)

        # Tokens are only handed out once the ledger row is durable
        await crud_refresh_token.record(
            self.db,
            jti=refresh.jti,
            user_id=account_id,
            expires_at=refresh.expires_at,
            client_ip=client_ip,
            client_agent=client_agent,
            commit=commit,
        )
        logger.info(f"Issued token pair for user ID {account_id} (refresh jti {refresh.jti})")
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh.token,
            account_id=account_id,
            access_expires_at=access.expires_at,
            refresh_expires_at=refresh.expires_at,
            refresh_jti=refresh.jti,
            access_expires_in=int(self.signer.access_ttl.total_seconds()),
        )

    async def refresh(
        self,
        presented_refresh_token: Optional[str],
        client_ip: Optional[str] = None,
        client_agent: Optional[str] = None,
    ) -> TokenPair:
        """Exchange a live refresh token for a new pair, revoking the old one.

        Every rejection raises the same RefreshTokenInvalidError; the internal
        reason is only logged.
        """
        parsed = self.signer.parse(presented_refresh_token, expected_type=TokenType.REFRESH)
        if not parsed.ok:
            self._reject(parsed.failure.value)
        claims = parsed.claims

        try:
            result = await crud_refresh_token.consume(self.db, jti=claims.jti)
            if not result.consumed:
                if result.outcome == LedgerOutcome.ALREADY_REVOKED:
                    # The legitimate client and an attacker cannot both hold a live jti
                    logger.warning(
                        f"Revoked refresh token presented again (jti {claims.jti}, user ID {result.record.user_id}); possible replay"
                    )
                await self.db.rollback()
                self._reject(result.outcome.value)

            account_id = result.record.user_id
            if str(account_id) != claims.sub:
                await self.db.rollback()
                self._reject("subject_mismatch")

            account = await crud_user.get(self.db, account_id)
            if account is None or not account.is_active:
                await self.db.rollback()
                self._reject("account_inactive")

            pair = await self.issue_pair(account_id, client_ip, client_agent, commit=False)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Refresh rotation for jti {claims.jti} did not commit: {e!r}")
            raise UpstreamUnavailableError("storage") from e

        logger.info(f"Rotated refresh token for user ID {account_id}: {claims.jti} -> {pair.refresh_jti}")
        return pair

    async def logout(self, presented_refresh_token: Optional[str]) -> None:
        """Revoke the token's jti if the token is authentic. Never fails on token problems."""
        # An expired but authentic token still names a jti worth revoking
        parsed = self.signer.parse(presented_refresh_token, expected_type=TokenType.REFRESH, verify_exp=False)
        if not parsed.ok:
            logger.info(f"Logout with unusable refresh token ({parsed.failure.value}); nothing to revoke")
            return
        revoked = await crud_refresh_token.revoke(self.db, jti=parsed.claims.jti)
        logger.info(f"Logout for user ID {parsed.claims.sub}: jti {parsed.claims.jti} revoked={revoked}")

    @staticmethod
    def _reject(reason: str) -> None:
        logger.info(f"Refresh token rejected: {reason}")
        raise RefreshTokenInvalidError(reason)

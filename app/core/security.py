# tokenline/app/core/security.py
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

from jose import jwt, JWTError
from jose.exceptions import ExpiredSignatureError, JWTClaimsError
from passlib.context import CryptContext
from pydantic import ValidationError

from .config import settings
from app.schemas.token import TokenPayload

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PASSWORD_HASH_ROUNDS,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        # Limita o tamanho da senha ANTES de passar para o bcrypt (evita erros > 72 bytes)
        password_bytes = plain_password.encode('utf-8')[:72]
        return pwd_context.verify(password_bytes, hashed_password)
    except (ValueError, TypeError):
        # Hash malformado no banco: trata como senha incorreta
        return False

def get_password_hash(password: str) -> str:
    password_bytes = password.encode('utf-8')[:72]
    return pwd_context.hash(password_bytes)

@lru_cache(maxsize=1)
def dummy_password_hash() -> str:
    """Hash used to burn the same bcrypt time when the account does not exist."""
    return get_password_hash(uuid.uuid4().hex)


# --- Token Signer ---

class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class TokenFailure(str, Enum):
    MALFORMED = "malformed"
    INVALID_SIGNATURE = "invalid_signature"
    EXPIRED = "expired"
    INVALID_CLAIMS = "invalid_claims"
    WRONG_TYPE = "wrong_type"


RESERVED_CLAIMS = frozenset({"sub", "type", "iss", "aud", "iat", "nbf", "exp", "jti"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MintedToken:
    token: str
    expires_at: datetime  # UTC, aware, whole seconds (matches the "exp" claim)
    jti: Optional[str] = None


@dataclass(frozen=True)
class ParsedToken:
    claims: Optional[TokenPayload] = None
    failure: Optional[TokenFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


@dataclass(frozen=True)
class TokenSigner:
    """Mints and verifies signed access/refresh JWTs.

    Immutable once built; one instance is shared by every request.
    The secret never leaves the process.
    """

    secret: str = field(repr=False)
    audience: str
    issuer: str
    algorithm: str = "HS256"
    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=7)
    clock: Callable[[], datetime] = field(default=_utcnow, repr=False, compare=False)

    @classmethod
    def from_settings(cls, config=settings) -> "TokenSigner":
        return cls(
            secret=config.SECRET_KEY,
            audience=config.JWT_AUDIENCE,
            issuer=config.JWT_ISSUER,
            algorithm=config.ALGORITHM,
            access_ttl=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    def ttl_for(self, token_type: TokenType) -> timedelta:
        return self.access_ttl if token_type == TokenType.ACCESS else self.refresh_ttl

    def mint(
        self,
        account_id: int | str,
        token_type: TokenType,
        ttl: Optional[timedelta] = None,
        extra_claims: Optional[Dict[str, Any]] = None,
    ) -> MintedToken:
        if extra_claims and RESERVED_CLAIMS.intersection(extra_claims):
            raise ValueError(f"extra_claims cannot override {sorted(RESERVED_CLAIMS.intersection(extra_claims))}")

        # jose serializes "exp" with second precision; truncate so the ledger
        # expiry equals the embedded one
        now = self.clock().astimezone(timezone.utc).replace(microsecond=0)
        expire = now + (ttl if ttl is not None else self.ttl_for(token_type))
        to_encode: Dict[str, Any] = {
            **(extra_claims or {}),
            "iss": self.issuer,
            "aud": self.audience,
            "iat": now,
            "nbf": now,
            "exp": expire,
            "sub": str(account_id),
            "type": token_type.value,
        }
        jti = None
        if token_type == TokenType.REFRESH:
            jti = str(uuid.uuid4())
            to_encode["jti"] = jti

        encoded_jwt = jwt.encode(to_encode, self.secret, algorithm=self.algorithm)
        return MintedToken(token=encoded_jwt, expires_at=expire, jti=jti)

    def parse(
        self,
        token: str,
        expected_type: Optional[TokenType] = None,
        *,
        verify_exp: bool = True,
    ) -> ParsedToken:
        """Verify signature, issuer, audience and expiry; only then expose claims."""
        if not token or not isinstance(token, str):
            return ParsedToken(failure=TokenFailure.MALFORMED)
        try:
            jwt.get_unverified_header(token)
        except JWTError:
            return ParsedToken(failure=TokenFailure.MALFORMED)

        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_exp": verify_exp},
            )
        except ExpiredSignatureError:
            return ParsedToken(failure=TokenFailure.EXPIRED)
        except JWTClaimsError:
            return ParsedToken(failure=TokenFailure.INVALID_CLAIMS)
        except JWTError:
            return ParsedToken(failure=TokenFailure.INVALID_SIGNATURE)

        try:
            claims = TokenPayload.model_validate(payload)
        except ValidationError:
            return ParsedToken(failure=TokenFailure.INVALID_CLAIMS)

        if expected_type is not None and claims.type != expected_type.value:
            return ParsedToken(failure=TokenFailure.WRONG_TYPE)
        if claims.type == TokenType.REFRESH.value and not claims.jti:
            return ParsedToken(failure=TokenFailure.INVALID_CLAIMS)
        return ParsedToken(claims=claims)

# --- Fim Token Signer ---


@lru_cache(maxsize=1)
def get_token_signer() -> TokenSigner:
    """Process-wide signer built from settings on first use."""
    return TokenSigner.from_settings(settings)

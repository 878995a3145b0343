# tokenline/app/services/credentials.py
"""Credential verifier: turns a login attempt into an account or a typed failure."""
from typing import Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core import security
from app.core.config import settings
from app.core.exceptions import (
    AccountLinkRequiredError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
)
from app.crud.crud_user import user as crud_user
from app.models.user import User
from app.schemas.user import UserCreate
from app.services.oauth import ExternalProfile, ensure_supported


async def register(db: AsyncSession, *, email: str, password: str) -> User:
    user_in = UserCreate(email=email, password=password)
    if await crud_user.get_by_email(db, email=user_in.email):
        logger.info("Registration refused: email already in use")
        raise EmailAlreadyRegisteredError()
    try:
        return await crud_user.create(db, obj_in=user_in)
    except IntegrityError as e:
        # Registro concorrente com o mesmo email
        await db.rollback()
        raise EmailAlreadyRegisteredError() from e


async def verify_password(db: AsyncSession, *, email: str, password: str) -> User:
    """Check email/password.

    One bcrypt verification runs whether or not the account exists, and every
    failure raises the same InvalidCredentialsError.
    """
    user = await crud_user.get_by_email(db, email=email)
    hashed = user.hashed_password if user is not None else None
    password_ok = security.verify_password(password, hashed or security.dummy_password_hash())

    if user is None or hashed is None or not password_ok or not user.is_active:
        logger.info("Login failed: invalid credentials")
        raise InvalidCredentialsError()
    return user


async def verify_federated(
    db: AsyncSession,
    *,
    provider: str,
    profile: ExternalProfile,
    link_policy: Optional[str] = None,
) -> User:
    """Resolve or create the account for a verified external identity.

    Repeated logins from the same identity return the same account. An
    existing password account is only reused under the "link" policy.
    """
    ensure_supported(provider)
    if not profile.email or not profile.email_verified:
        logger.warning(f"OAuth '{provider}' login without a verified email (subject {profile.subject})")
        raise InvalidCredentialsError()

    policy = link_policy or settings.OAUTH_LINK_POLICY
    user = await crud_user.get_by_email(db, email=profile.email)
    if user is None:
        try:
            user = await crud_user.create_federated(db, email=profile.email, provider=provider)
        except IntegrityError:
            # Primeiro login concorrente para o mesmo email
            await db.rollback()
            user = await crud_user.get_by_email(db, email=profile.email)
            if user is None:
                raise
        else:
            logger.info(f"Conta criada via OAuth '{provider}': user ID {user.id}")
            return user

    if not user.is_active:
        raise InvalidCredentialsError()
    if user.hashed_password is not None and policy != "link":
        logger.warning(
            f"OAuth '{provider}' login matched password account ID {user.id}; linking policy is '{policy}'"
        )
        raise AccountLinkRequiredError()
    return user

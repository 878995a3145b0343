# tokenline/app/api/dependencies.py
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import TokenSigner, TokenType, get_token_signer
from app.db.session import get_db
from app.models.user import User as UserModel
from app.crud.crud_user import user as crud_user
from app.services.token_engine import TokenLifecycleEngine

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def get_signer() -> TokenSigner:
    return get_token_signer()


async def get_token_engine(
    db: AsyncSession = Depends(get_db),
    signer: TokenSigner = Depends(get_signer),
) -> TokenLifecycleEngine:
    return TokenLifecycleEngine(db, signer)


async def get_current_user_from_token(
    db: AsyncSession = Depends(get_db),
    token: str = Depends(oauth2_scheme),
    signer: TokenSigner = Depends(get_signer),
) -> UserModel:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    # Access tokens are stateless: signature and expiry only, no ledger lookup
    parsed = signer.parse(token, expected_type=TokenType.ACCESS)
    if not parsed.ok:
        raise credentials_exception

    try:
         user_id = int(parsed.claims.sub)
    except ValueError:
         raise credentials_exception

    user = await crud_user.get(db, id=user_id)
    if user is None:
        raise credentials_exception
    return user

async def get_current_active_user(
    current_user: UserModel = Depends(get_current_user_from_token),
) -> UserModel:
    if not current_user.is_active:
        raise HTTPException(status_code=400, detail="Inactive user")
    return current_user

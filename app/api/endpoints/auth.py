# tokenline/app/api/endpoints/auth.py
import secrets
from typing import Any, Awaitable, Callable, Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status
from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.dependencies import get_current_active_user, get_token_engine
from app.api.session_transport import session_transport
from app.core.config import settings
from app.core.exceptions import InvalidCredentialsError, UpstreamUnavailableError
from app.crud.crud_user import user as crud_user
from app.db.session import get_db
from app.models.user import User as UserModel
from app.schemas.token import MessageResponse, OAuthUrlResponse, RefreshTokenRequest, Token
from app.schemas.user import LoginRequest, User as UserSchema, UserCreate
from app.services import credentials, oauth
from app.services.token_engine import TokenLifecycleEngine, TokenPair

router = APIRouter()

OAUTH_STATE_MAX_AGE = 600  # 10 minutos


def get_oauth_exchange() -> Callable[[str, str], Awaitable[oauth.ExternalProfile]]:
    return oauth.exchange_code


def _client_info(request: Request) -> tuple[Optional[str], Optional[str]]:
    client_ip = request.client.host if request.client else None
    return client_ip, request.headers.get("user-agent")


def _respond_with_tokens(response: Response, pair: TokenPair) -> Token:
    # Refresh token only in the HTTP-only cookie; access token in the body for bearer use
    session_transport.set_opaque_credential(response, pair.refresh_token)
    return Token(access_token=pair.access_token, token_type="bearer", expires_in=pair.access_expires_in)


def _presented_refresh_token(request: Request, body: Optional[RefreshTokenRequest]) -> Optional[str]:
    # Cookie first; the JSON body is accepted for non-browser clients
    return session_transport.get_opaque_credential(request) or (body.refresh_token if body else None)


@router.post("/register", response_model=Token, status_code=status.HTTP_201_CREATED)
async def register(
    *,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    engine: TokenLifecycleEngine = Depends(get_token_engine),
    user_in: UserCreate,
) -> Any:
    """Cria uma conta com email e senha e já devolve o par de tokens."""
    user = await credentials.register(db, email=user_in.email, password=user_in.password)
    pair = await engine.issue_pair(user.id, *_client_info(request))
    logger.info(f"Novo usuário registrado: ID {user.id}")
    return _respond_with_tokens(response, pair)


@router.post("/login", response_model=Token)
async def login(
    *,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    engine: TokenLifecycleEngine = Depends(get_token_engine),
    credentials_in: LoginRequest,
) -> Any:
    user = await credentials.verify_password(db, email=credentials_in.email, password=credentials_in.password)
    pair = await engine.issue_pair(user.id, *_client_info(request))
    return _respond_with_tokens(response, pair)


@router.post("/refresh", response_model=Token)
async def refresh_access_token(
    *,
    request: Request,
    response: Response,
    engine: TokenLifecycleEngine = Depends(get_token_engine),
    refresh_request: Optional[RefreshTokenRequest] = Body(None),
) -> Any:
    """
    Troca o refresh token (cookie) por um novo par.
    O refresh token apresentado é revogado e nunca mais será aceito.
    """
    presented = _presented_refresh_token(request, refresh_request)
    pair = await engine.refresh(presented, *_client_info(request))
    return _respond_with_tokens(response, pair)


@router.post("/logout", response_model=MessageResponse)
async def logout(
    *,
    request: Request,
    response: Response,
    engine: TokenLifecycleEngine = Depends(get_token_engine),
    refresh_request: Optional[RefreshTokenRequest] = Body(None),
) -> Any:
    """Sempre 200 e cookie limpo, mesmo se a revogação não puder ser gravada."""
    presented = _presented_refresh_token(request, refresh_request)
    try:
        if presented:
            await engine.logout(presented)
    except UpstreamUnavailableError:
        # The jti stays live until it expires; the client still drops it
        logger.error("Logout could not revoke the refresh token: storage unavailable")
    session_transport.clear(response)
    return MessageResponse(message="Successfully logged out")


@router.get("/oauth/{provider}/url", response_model=OAuthUrlResponse)
async def get_oauth_url(provider: str, response: Response) -> Any:
    state = secrets.token_urlsafe(32)
    redirect_url = oauth.build_authorization_url(provider, state)
    response.set_cookie(
        settings.OAUTH_STATE_COOKIE_NAME,
        state,
        max_age=OAUTH_STATE_MAX_AGE,
        path=f"{settings.REFRESH_COOKIE_PATH}/oauth",
        secure=settings.COOKIE_SECURE,
        httponly=True,
        samesite="lax",  # the provider redirects back cross-site
    )
    return OAuthUrlResponse(redirect_url=redirect_url)


@router.get("/oauth/{provider}/callback", response_model=Token)
async def oauth_callback(
    provider: str,
    request: Request,
    response: Response,
    code: Optional[str] = None,
    state: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    engine: TokenLifecycleEngine = Depends(get_token_engine),
    exchange: Callable[[str, str], Awaitable[oauth.ExternalProfile]] = Depends(get_oauth_exchange),
) -> Any:
    oauth.ensure_supported(provider)
    stored_state = request.cookies.get(settings.OAUTH_STATE_COOKIE_NAME)
    if not code or not state or not stored_state or not secrets.compare_digest(state, stored_state):
        logger.warning(f"OAuth '{provider}' callback with missing or mismatched state")
        raise InvalidCredentialsError()

    profile = await exchange(provider, code)
    user = await credentials.verify_federated(db, provider=provider, profile=profile)
    pair = await engine.issue_pair(user.id, *_client_info(request))

    response.delete_cookie(settings.OAUTH_STATE_COOKIE_NAME, path=f"{settings.REFRESH_COOKIE_PATH}/oauth")
    logger.info(f"Login OAuth '{provider}' para usuário ID {user.id}")
    return _respond_with_tokens(response, pair)


@router.get("/me", response_model=UserSchema)
async def read_users_me(current_user: UserModel = Depends(get_current_active_user)) -> Any:
    return current_user


@router.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
async def delete_users_me(
    *,
    response: Response,
    db: AsyncSession = Depends(get_db),
    current_user: UserModel = Depends(get_current_active_user),
) -> None:
    """Desativa a conta; todos os refresh tokens dela são revogados (não apagados)."""
    await crud_user.soft_delete(db, user=current_user)
    session_transport.clear(response)
    return None

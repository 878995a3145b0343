# tokenline/app/schemas/token.py
from pydantic import BaseModel, ConfigDict
from typing import Optional


class Token(BaseModel):
    """Response body: the access token only. The refresh token travels in the cookie."""
    access_token: str
    token_type: str = "bearer"
    expires_in: int  # segundos até o access token expirar


class TokenPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    sub: str
    type: str
    exp: int
    iat: Optional[int] = None
    jti: Optional[str] = None


class RefreshTokenRequest(BaseModel):
    refresh_token: Optional[str] = None


class OAuthUrlResponse(BaseModel):
    redirect_url: str


class MessageResponse(BaseModel):
    message: str

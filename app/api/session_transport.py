# tokenline/app/api/session_transport.py
"""Carries the refresh token as an opaque HTTP-only cookie.

The engine never touches cookies; endpoints move the credential in and out
through this object.
"""
from typing import Optional

from fastapi import Request, Response

from app.core.config import settings


class CookieSessionTransport:
    def __init__(
        self,
        cookie_name: str = settings.REFRESH_COOKIE_NAME,
        path: str = settings.REFRESH_COOKIE_PATH,
        max_age: int = settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        secure: bool = settings.COOKIE_SECURE,
        samesite: str = settings.COOKIE_SAMESITE,
    ):
        self.cookie_name = cookie_name
        self.path = path
        self.max_age = max_age
        self.secure = secure
        self.samesite = samesite

    def set_opaque_credential(self, response: Response, credential: str) -> None:
        response.set_cookie(
            self.cookie_name,
            credential,
            max_age=self.max_age,
            path=self.path,
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )

    def get_opaque_credential(self, request: Request) -> Optional[str]:
        return request.cookies.get(self.cookie_name) or None

    def clear(self, response: Response) -> None:
        response.delete_cookie(
            self.cookie_name,
            path=self.path,
            secure=self.secure,
            httponly=True,
            samesite=self.samesite,
        )


session_transport = CookieSessionTransport()

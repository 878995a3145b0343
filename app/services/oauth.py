# tokenline/app/services/oauth.py
"""OAuth provider capability: authorization URL and callback-code exchange.

Produces an ExternalProfile carrying the provider's verified email; deciding
which account that email maps to is the credential verifier's job.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx
from loguru import logger

from app.core.config import settings
from app.core.exceptions import InvalidCredentialsError, UnsupportedProviderError, UpstreamUnavailableError

OAUTH_PROVIDERS: Dict[str, Dict[str, str]] = {
    "google": {
        "auth_url": "https://accounts.google.com/o/oauth2/v2/auth",
        "token_url": "https://oauth2.googleapis.com/token",
        "userinfo_url": "https://openidconnect.googleapis.com/v1/userinfo",
        "scope": "openid email profile",
    },
    "github": {
        "auth_url": "https://github.com/login/oauth/authorize",
        "token_url": "https://github.com/login/oauth/access_token",
        "userinfo_url": "https://api.github.com/user",
        "emails_url": "https://api.github.com/user/emails",
        "scope": "read:user user:email",
    },
}


@dataclass(frozen=True)
class ExternalProfile:
    provider: str
    subject: str
    email: Optional[str]
    email_verified: bool


def _credentials(provider: str) -> Tuple[Optional[str], Optional[str]]:
    if provider == "google":
        return settings.GOOGLE_CLIENT_ID, settings.GOOGLE_CLIENT_SECRET
    if provider == "github":
        return settings.GITHUB_CLIENT_ID, settings.GITHUB_CLIENT_SECRET
    return None, None


def ensure_supported(provider: str) -> None:
    if provider not in OAUTH_PROVIDERS:
        raise UnsupportedProviderError(provider)


def ensure_configured(provider: str) -> Tuple[str, str]:
    ensure_supported(provider)
    client_id, client_secret = _credentials(provider)
    if not client_id or not client_secret:
        logger.warning(f"OAuth provider '{provider}' requested but not configured")
        raise UnsupportedProviderError(provider)
    return client_id, client_secret


def callback_uri(provider: str) -> str:
    return f"{settings.OAUTH_REDIRECT_BASE_URL.rstrip('/')}/{provider}/callback"


def build_authorization_url(provider: str, state: str) -> str:
    client_id, _ = ensure_configured(provider)
    provider_config = OAUTH_PROVIDERS[provider]
    params = {
        "client_id": client_id,
        "redirect_uri": callback_uri(provider),
        "response_type": "code",
        "scope": provider_config["scope"],
        "state": state,
    }
    if provider == "google":
        params["prompt"] = "select_account"
    return f"{provider_config['auth_url']}?{urlencode(params)}"


def _parse_google(userinfo: Dict[str, Any]) -> ExternalProfile:
    return ExternalProfile(
        provider="google",
        subject=str(userinfo.get("sub") or ""),
        email=(userinfo.get("email") or None),
        email_verified=bool(userinfo.get("email_verified")),
    )


async def _github_profile(client: httpx.AsyncClient, headers: Dict[str, str]) -> ExternalProfile:
    user_response = await client.get(OAUTH_PROVIDERS["github"]["userinfo_url"], headers=headers)
    user_response.raise_for_status()
    userinfo = user_response.json()

    # /user only shows the public email; the primary verified one comes from /user/emails
    emails_response = await client.get(OAUTH_PROVIDERS["github"]["emails_url"], headers=headers)
    emails_response.raise_for_status()
    primary = next(
        (entry for entry in emails_response.json() if entry.get("primary") and entry.get("verified")),
        None,
    )
    return ExternalProfile(
        provider="github",
        subject=str(userinfo.get("id") or ""),
        email=primary.get("email") if primary else None,
        email_verified=primary is not None,
    )


async def exchange_code(
    provider: str,
    code: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> ExternalProfile:
    """Troca o código do callback por um perfil externo verificado."""
    client_id, client_secret = ensure_configured(provider)
    provider_config = OAUTH_PROVIDERS[provider]

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=settings.OAUTH_HTTP_TIMEOUT_SECONDS, follow_redirects=False)
    try:
        token_response = await client.post(
            provider_config["token_url"],
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "redirect_uri": callback_uri(provider),
                "grant_type": "authorization_code",
            },
            headers={"Accept": "application/json"},
        )
        token_response.raise_for_status()
        access_token = token_response.json().get("access_token")
        if not access_token:
            logger.warning(f"OAuth '{provider}': token response without access_token")
            raise InvalidCredentialsError()

        headers = {"Authorization": f"Bearer {access_token}"}
        if provider == "github":
            headers["Accept"] = "application/vnd.github+json"
            profile = await _github_profile(client, headers)
        else:
            userinfo_response = await client.get(provider_config["userinfo_url"], headers=headers)
            userinfo_response.raise_for_status()
            profile = _parse_google(userinfo_response.json())
    except httpx.HTTPStatusError as e:
        # 4xx from the provider means the code was bad or already used
        if e.response.status_code < 500:
            logger.warning(f"OAuth '{provider}' rejected the exchange: HTTP {e.response.status_code}")
            raise InvalidCredentialsError() from e
        logger.error(f"OAuth '{provider}' unavailable: HTTP {e.response.status_code}")
        raise UpstreamUnavailableError(provider) from e
    except httpx.HTTPError as e:
        logger.error(f"OAuth '{provider}' exchange failed: {e!r}")
        raise UpstreamUnavailableError(provider) from e
    except ValueError as e:
        logger.warning(f"OAuth '{provider}' returned an unreadable payload: {e!r}")
        raise InvalidCredentialsError() from e
    finally:
        if owns_client:
            await client.aclose()

    if not profile.subject:
        logger.warning(f"OAuth '{provider}' profile without subject")
        raise InvalidCredentialsError()
    return profile

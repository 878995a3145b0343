# tokenline/app/core/config.py
import logging
from typing import List, Literal
from pydantic_settings import BaseSettings
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent.parent
ENV_FILE_PATH = BASE_DIR / ".env"

class Settings(BaseSettings):

    # Core
    DATABASE_URL: str
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    DB_OPERATION_TIMEOUT_SECONDS: float = 5.0

    # Refresh Token
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    # Revoked/expired records are kept this long after expiry for replay detection
    REFRESH_TOKEN_RETENTION_DAYS: int = 30

    # JWT claims
    JWT_ISSUER: str = "urn:tokenline:authapi"
    JWT_AUDIENCE: str = "urn:tokenline:client"

    # --- Session transport (refresh cookie) ---
    REFRESH_COOKIE_NAME: str = "refresh_token"
    REFRESH_COOKIE_PATH: str = "/api/v1/auth"
    COOKIE_SECURE: bool = True
    COOKIE_SAMESITE: Literal["lax", "strict", "none"] = "strict"
    OAUTH_STATE_COOKIE_NAME: str = "oauth_state"
    # --- Fim Session transport ---

    # Password hashing
    PASSWORD_HASH_ROUNDS: int = 12

    # --- OAuth ---
    # "reject": a federated login never attaches to an existing password account
    # "link": attach to the existing account with the same verified email
    OAUTH_LINK_POLICY: Literal["reject", "link"] = "reject"
    OAUTH_HTTP_TIMEOUT_SECONDS: float = 10.0
    OAUTH_REDIRECT_BASE_URL: str = "http://localhost:8000/api/v1/auth/oauth"
    GOOGLE_CLIENT_ID: str | None = None
    GOOGLE_CLIENT_SECRET: str | None = None
    GITHUB_CLIENT_ID: str | None = None
    GITHUB_CLIENT_SECRET: str | None = None
    # --- Fim OAuth ---

    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://localhost:8000",
    ]
    LOG_LEVEL: str = "INFO"

    # Reported by /health
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    HEALTH_DISK_USAGE_THRESHOLD_PERCENT: float = 90.0

    class Config:
        case_sensitive = True
        env_file = ENV_FILE_PATH
        env_file_encoding = 'utf-8'

try:
    settings = Settings()
except Exception as e:
    logging.error(f"FATAL: Erro ao carregar 'settings' a partir do .env em {ENV_FILE_PATH}: {e}")
    raise e

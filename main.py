# tokenline/main.py
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.config import settings
from app.core.exceptions import AuthAPIException
from app.core.logging import setup_logging
from app.db.session import dispose_engine
# Importar routers
from app.api.endpoints import auth, health

# Importar modelos para Alembic/Base.metadata
from app.db.base import Base # noqa
from app.models import user, refresh_token # noqa


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Token Lifecycle API starting")
    yield
    logger.info("Shutting down: Disposing database engine...")
    await dispose_engine()
    logger.info("Database engine disposed.")


app = FastAPI(
    title="Tokenline Auth API",
    description="Access/refresh token issuance, rotation and revocation",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AuthAPIException)
async def auth_api_exception_handler(request: Request, exc: AuthAPIException) -> JSONResponse:
    # Internal detail (refresh rejection reason, upstream name) is logged, never returned
    detail = getattr(exc, "reason", None) or getattr(exc, "upstream", None) or ""
    log_line = f"{request.method} {request.url.path} -> {exc.status_code} {exc.error_code} {detail}".rstrip()
    if exc.status_code >= 500:
        logger.error(log_line)
    else:
        logger.warning(log_line)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code},
        headers=exc.headers,
    )


# Incluir routers da API
api_prefix = "/api/v1"

app.include_router(
    auth.router,
    prefix=f"{api_prefix}/auth",
    tags=["Authentication"],
)
app.include_router(health.router, tags=["Health"])


@app.get("/")
def read_root():
    return {"message": "Tokenline Auth API is running!"}

"""Cardápio Delivery API - Aplicação principal FastAPI."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .database import Base, engine
from .routers import (
    auth_router,
    carrinho_router,
    catalogo_router,
    cupons_router,
    empresas_router,
    enderecos_router,
    entregadores_router,
    pdv_router,
    pedidos_router,
)
from .schemas import HealthResponse
from .services.notifications import get_redis

# === Logging ===

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# === Rate Limiter ===

limiter = Limiter(key_func=get_remote_address)


# === Lifespan ===


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Gerencia o ciclo de vida da aplicação."""
    logger.info("Iniciando Cardápio Delivery API...")

    # Startup: criar tabelas (em produção, usar Alembic)
    if settings.is_development:
        logger.info("Ambiente de desenvolvimento: criando tabelas...")
        Base.metadata.create_all(bind=engine)

    logger.info("API iniciada com sucesso!")
    yield

    logger.info("Encerrando Cardápio Delivery API...")


# === App ===

app = FastAPI(
    title="Cardápio Delivery API",
    description="Cardápio, carrinho, pedidos, PDV e entregas para restaurantes",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


# === Middleware ===

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


# === Exception Handlers ===


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler global para exceções não tratadas."""
    logger.exception(f"Erro não tratado: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Erro interno do servidor"
            if settings.is_production
            else str(exc)
        },
    )


# === Routers ===

ROUTES = [
    (auth_router, "/auth", "auth"),
    (empresas_router, "/empresas", "cardapio"),
    (catalogo_router, "/admin", "catalogo"),
    (cupons_router, "/cupons", "cupons"),
    (carrinho_router, "/carrinho", "carrinho"),
    (pedidos_router, "/pedidos", "pedidos"),
    (pdv_router, "/pdv", "pdv"),
    (entregadores_router, "/entregadores", "entregadores"),
    (enderecos_router, "/enderecos", "enderecos"),
]

for router, prefix, tag in ROUTES:
    app.include_router(router, prefix=prefix, tags=[tag])


# === Health Check ===


def _check(name: str, probe) -> bool:
    try:
        probe()
    except (SQLAlchemyError, RedisError) as e:
        logger.warning(f"Health check {name} falhou: {e}")
        return False
    return True


def _ping_db() -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


@app.get("/health", response_model=HealthResponse, tags=["health"])
def health_check() -> HealthResponse:
    """
    Verifica banco e Redis.

    ok com os dois no ar, degraded com um só, down sem nenhum. Sem Redis a
    API continua atendendo; só o feed ao vivo e o webhook ficam parados.
    """
    db_ok = _check("DB", _ping_db)
    redis_ok = _check("Redis", lambda: get_redis().ping())

    status = {2: "ok", 1: "degraded", 0: "down"}[db_ok + redis_ok]
    return HealthResponse(status=status, db=db_ok, redis=redis_ok)


@app.get("/", tags=["root"])
def root() -> dict:
    return {
        "app": app.title,
        "version": app.version,
        "docs": app.docs_url,
        "health": "/health",
    }

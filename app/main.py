# app/main.py
"""
COMANDA - Pedidos y mesas para restaurante
Main Application Entry Point
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import Settings, get_settings
from app.core.database import build_engine, build_session_factory, init_db
from app.core.errors import ComandaError
from app.core.locks import KeyedLocks
from app.api.v1.api import api_router
from app.services.fiscal_service import build_fiscal_provider
from app.services.payments_service import build_payments_provider

from dotenv import load_dotenv
load_dotenv()

logger = logging.getLogger(__name__)


def _error(status_code: int, code: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": code}, headers=headers)


# ========================================
# LIFESPAN EVENT
# ========================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup y shutdown events"""

    # ===== STARTUP =====
    init_db(app.state.engine)

    logger.info("=" * 60)
    logger.info(f"🚀 {app.state.settings.APP_NAME} - SERVIDOR INICIADO ({app.state.settings.ENVIRONMENT})")

    routes_api = []
    for route in app.routes:
        if hasattr(route, 'methods') and hasattr(route, 'path') and route.path.startswith('/api/'):
            methods = ', '.join(sorted(route.methods - {'HEAD', 'OPTIONS'}))
            if methods:
                routes_api.append(f"  {methods:12} {route.path}")

    logger.info("🔌 RUTAS API:")
    for route in sorted(set(routes_api)):
        logger.info(route)

    if app.state.payments_provider is None:
        logger.warning("⚠️ Pagos online no configurados (PAYMENTS_API_URL / PAYMENTS_API_KEY)")
    if app.state.fiscal_provider is None:
        logger.warning("⚠️ Proveedor fiscal no configurado (FISCAL_API_URL / FISCAL_API_KEY)")

    logger.info(f"✅ Servidor listo en: http://0.0.0.0:{os.getenv('PORT', '8080')}")
    logger.info("=" * 60)

    yield

    # ===== SHUTDOWN =====
    app.state.engine.dispose()
    logger.info("👋 Servidor detenido")


# ========================================
# MANEJO DE ERRORES
# ========================================
def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(ComandaError)
    async def comanda_error_handler(request: Request, exc: ComandaError):
        if exc.status_code >= 500:
            logger.error(f"[API] {request.method} {request.url.path} -> {exc.status_code} {exc.code}")
        else:
            logger.info(f"[API] {request.method} {request.url.path} -> {exc.status_code} {exc.code}")
        return _error(exc.status_code, exc.code)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"[API] Petición inválida {request.url.path}: {exc.errors()}")
        return _error(400, "invalid_request")

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return _error(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(IntegrityError)
    async def integrity_error_handler(request: Request, exc: IntegrityError):
        logger.warning(f"[DB] Violación de integridad en {request.url.path}: {exc.orig}")
        return _error(409, "conflict")

    @app.exception_handler(OperationalError)
    async def operational_error_handler(request: Request, exc: OperationalError):
        logger.error(f"[DB] Base de datos no disponible: {exc}")
        return _error(503, "datastore_unavailable")

    @app.exception_handler(SQLAlchemyError)
    async def datastore_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception(f"[DB] Error en {request.url.path}")
        return _error(500, "datastore_error")


# ========================================
# CREAR APP
# ========================================
def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        debug=settings.DEBUG,
        lifespan=lifespan
    )

    engine = build_engine(settings.DATABASE_URL)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.table_locks = KeyedLocks()
    app.state.payments_provider = build_payments_provider(settings)
    app.state.fiscal_provider = build_fiscal_provider(settings)

    # ========================================
    # MIDDLEWARE - CORS
    # ========================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # ========================================
    # ROUTERS API (prefix /api)
    # ========================================
    app.include_router(api_router, prefix="/api")

    @app.get("/health")
    async def health():
        """Health check"""
        return {"status": "healthy", "app": settings.APP_NAME.lower()}

    return app


app = create_app()

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from licores_common.database import DatabaseManager
from . import database
from .exceptions import ServiceError
from .auth.router import router as auth_router, users_router
from .auth.services import AuthService
from .inventory import crud as inventory_crud
from .inventory.router import router as inventory_router
from .orders.router import router as orders_router

# Logging
logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger("licores")

AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if origin.strip()]
ADMIN_EMAIL = os.getenv("ADMIN_EMAIL")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD")


def create_app(db_manager: Optional[DatabaseManager] = None) -> FastAPI:
    """
    Construye la aplicación. Con `db_manager` se usa otra base de datos
    (por ejemplo, una SQLite por prueba) en lugar de DATABASE_URL.
    """
    manager = db_manager or database.db_manager

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # 1. Crear tablas y datos iniciales (en producción se usa Alembic)
        if AUTO_CREATE_TABLES:
            await manager.create_all()
            async with manager.session_factory() as db:
                created = await inventory_crud.seed_warehouses(db)
                if created:
                    logger.info(f"🏬 {created} almacenes iniciales creados")
                if ADMIN_EMAIL and ADMIN_PASSWORD:
                    await AuthService.ensure_admin(db, ADMIN_EMAIL, ADMIN_PASSWORD)
        logger.info("🚀 Servicio de licores iniciado")

        yield

        # 2. Apagado
        await manager.dispose()

    app = FastAPI(
        title="Distribuidora de Licores",
        description="Inventario por almacén, pedidos, facturación y domicilios.",
        version="0.1.0",
        lifespan=lifespan
    )

    if manager is not database.db_manager:
        app.dependency_overrides[database.get_db] = manager.get_db

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError):
        if exc.status_code >= 500:
            logger.error(f"❌ {exc.kind.value} en {request.url.path}: {exc.detail}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "kind": exc.kind.value},
        )

    app.include_router(auth_router)
    app.include_router(users_router)
    app.include_router(inventory_router)
    app.include_router(orders_router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    return app


app = create_app()

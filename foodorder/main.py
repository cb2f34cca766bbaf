# foodorder/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from foodorder.config import Settings, get_settings
from foodorder.db import Database
from foodorder.errors import register_error_handlers
from foodorder.middleware import RequestIdMiddleware
from foodorder.routers import checkout, coupons, customers, dining, orders
from foodorder.services.codegen import CodeGenerator, QRCodeGenerator
from foodorder.util.log import configure_logging

logger = logging.getLogger(__name__)


def create_app(settings: Settings | None = None, codegen: CodeGenerator | None = None) -> FastAPI:
    """
    Build an application with its own database and code generator.

    Run with `uvicorn foodorder.main:create_app --factory`.
    """
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)
    database = Database(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        database.create_all()
        logger.info("foodorder started (env=%s, db=%s)", settings.APP_ENV, database.engine.url)
        yield
        database.dispose()

    app = FastAPI(title="Foodorder API", version="0.3.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = database
    app.state.codegen = codegen or QRCodeGenerator()

    # Middlewares
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_error_handlers(app)

    app.include_router(checkout.router)
    app.include_router(orders.router)
    app.include_router(coupons.router)
    app.include_router(dining.router)
    app.include_router(customers.router)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    return app

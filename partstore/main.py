import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from partstore.core.clock import Clock
from partstore.core.config import Settings, settings
from partstore.core.errors import PartStoreError
from partstore.core.logging_config import configure_logging
from partstore.routers.imports import router as imports_router
from partstore.routers.locations import router as locations_router
from partstore.routers.parts import router as parts_router
from partstore.routers.stock import router as stock_router
from partstore.services import build_services
from partstore.services.notifier import Notifier

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[Settings] = None,
    *,
    notifier: Optional[Notifier] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(config.log_level)
        services = build_services(config, notifier=notifier, clock=clock)
        await services.backend.create_schema()
        app.state.services = services
        logger.info("PartStore API ready")
        yield
        await services.close()

    app = FastAPI(
        title="PartStore API",
        description="Stock ledger for parts stored at barcoded locations",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(PartStoreError)
    async def partstore_error_handler(request: Request, exc: PartStoreError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok"}

    app.include_router(locations_router, prefix="/locations", tags=["locations"])
    app.include_router(parts_router, prefix="/parts", tags=["parts"])
    app.include_router(stock_router, prefix="/stock", tags=["stock"])
    app.include_router(imports_router, prefix="/import", tags=["import"])

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run("partstore.main:app", host="0.0.0.0", port=8000, reload=True)

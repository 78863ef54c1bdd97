from __future__ import annotations
from dotenv import load_dotenv

load_dotenv()

import logging
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .engine import FilterEngine
from .logging_config import setup_logging
from .routes import router
from .settings import Settings, load_settings
from .store import FileFilterStore, HttpFilterStore

log = logging.getLogger("pyfacet")


def _build_store(settings: Settings):
    if settings.store_backend == "file":
        store = FileFilterStore(settings.filters_file)
        store.load()
        return store
    return HttpFilterStore.from_settings(settings)


def create_app(store=None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the service. `store` supplies filter definitions (and publish
    writes); when omitted it is built from settings at startup.
    """
    settings = settings or load_settings()
    setup_logging(settings.log_level)

    app = FastAPI(title="pyfacet Filter Service", version="1.0.0")
    app.include_router(router)
    app.state.settings = settings
    app.state.store = store
    app.state.engine = FilterEngine(store) if store is not None else None

    if settings.cors_allow_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
        )

    @app.on_event("startup")
    def _startup():
        if app.state.store is None:
            app.state.store = _build_store(settings)
            app.state.engine = FilterEngine(app.state.store)
        log.info("Filter service started with %s store", type(app.state.store).__name__)

    @app.on_event("shutdown")
    async def _shutdown():
        if app.state.engine is not None:
            await app.state.engine.aclose()
        close = getattr(app.state.store, "aclose", None)
        if close is not None:
            await close()

    return app


app = create_app()

"""RigCheck — FastAPI application.

Mounts two routers that share one catalog store:
- /compatibility/check        — evaluate a build's selected parts
- /compatibility/rules|parts  — rule authoring and part registration

The store is Redis when reachable, otherwise an in-memory fallback.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rigcheck.api.compatibility import router as compatibility_router
from rigcheck.api.compatibility import set_store as set_compatibility_store
from rigcheck.api.rules import router as rules_router
from rigcheck.api.rules import set_store as set_rules_store
from rigcheck.engine.default_rules import default_rules
from rigcheck.store.redis_store import (
    CatalogStore,
    InMemoryStore,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def _env_flag(name: str, default: str = "true") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ──────────────────────────────────────────────
# Lifespan — startup / shutdown
# ──────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the catalog store on startup, close it on shutdown."""
    store: CatalogStore
    if os.getenv("RIGCHECK_STORE", "redis").strip().lower() == "memory":
        store = InMemoryStore()
        logger.info("Using in-memory catalog store")
    else:
        store = CatalogStore()
        if await store.connect():
            logger.info("Using Redis catalog store")
        else:
            logger.warning("Redis unavailable, using in-memory catalog store")
            await store.disconnect()
            store = InMemoryStore()

    if _env_flag("RIGCHECK_SEED_DEFAULT_RULES"):
        await store.seed_rules(default_rules())

    set_compatibility_store(store)
    set_rules_store(store)

    yield

    set_compatibility_store(None)
    set_rules_store(None)
    await store.disconnect()
    logger.info("Shutting down RigCheck")


# ──────────────────────────────────────────────
# App
# ──────────────────────────────────────────────


def create_app() -> FastAPI:
    """Factory function — creates and configures the FastAPI app."""
    app = FastAPI(
        title="RigCheck",
        description=(
            "Compatibility rules for PC builds.\n\n"
            "- **Check** (`/compatibility/check`): validate selected parts\n"
            "- **Rules** (`/compatibility/rules`): manage the rule set\n"
        ),
        version=VERSION,
        lifespan=lifespan,
    )

    allowed_origins = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:5173",
    ).split(",")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in allowed_origins],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StoreUnavailableError)
    async def store_unavailable(request: Request, exc: StoreUnavailableError):
        logger.error("Store unavailable for %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    app.include_router(compatibility_router)
    app.include_router(rules_router)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "service": "RigCheck",
            "version": VERSION,
            "endpoints": {
                "check": "/compatibility/check",
                "rules": "/compatibility/rules",
            },
        }

    return app


# ──────────────────────────────────────────────
# Entrypoint
# ──────────────────────────────────────────────

app = create_app()

if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "rigcheck.api.app:app",
        host="0.0.0.0",
        port=int(os.getenv("PORT", "8000")),
        reload=True,
    )

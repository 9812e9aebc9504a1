"""
FastAPI Application: Admissions Application Service.

Architecture:
  - SQLite (dev) / PostgreSQL (prod) record store via SQLAlchemy
  - Local filesystem (dev) / S3-compatible blob store via boto3
  - Autosaved drafts with a JSON-file fallback
  - Background document upload with progress polling
"""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from admissions.api.routes.applications import router as applications_router
from admissions.api.routes.documents import router as documents_router
from admissions.api.routes.session import router as session_router
from admissions.api.routes.submissions import router as submissions_router
from admissions.api.sessions import SessionRegistry, get_registry, shutdown_registry
from admissions.config.settings import get_settings

settings = get_settings()

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Admissions service started ({settings.env})")
    yield
    await shutdown_registry()
    logger.info("Admissions service stopped")


app = FastAPI(
    title="Admissions Application Service",
    description="Autosaved application drafts, document slots and background-upload submission.",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routes
app.include_router(session_router, prefix="/api/v1", tags=["Session"])
app.include_router(documents_router, prefix="/api/v1", tags=["Documents"])
app.include_router(submissions_router, prefix="/api/v1", tags=["Submission"])
app.include_router(applications_router, prefix="/api/v1", tags=["Applications"])


# ── Health ──
@app.get("/health")
async def health(registry: SessionRegistry = Depends(get_registry)):
    s = registry.settings
    return {
        "status": "ok",
        "version": "1.0.0",
        "database": "PostgreSQL" if "postgres" in s.database_url else "SQLite",
        "blob_backend": s.blob_backend,
        "compression_enabled": registry.compression_service is not None,
        "open_sessions": len(registry),
    }


# ── Serve locally stored documents ──
if settings.blob_backend == "local":
    blob_dir = Path(settings.blob_local_root)
    blob_dir.mkdir(parents=True, exist_ok=True)
    app.mount("/files", StaticFiles(directory=str(blob_dir)), name="files")


def run():
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)


if __name__ == "__main__":
    run()

"""auth-service - IP-bound token issuance API."""
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from sqlalchemy.engine import make_url

from auth_service.config import get_settings
from auth_service.logging import configure_logging

settings = get_settings()
configure_logging(settings.log_level, json_output=settings.log_json)


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    from auth_service.api.deps import get_anomaly_guard
    from auth_service.database import Base, get_engine

    # Import all models so they're registered with Base
    from auth_service import models  # noqa: F401

    _ensure_sqlite_dir(settings.database_url)
    Base.metadata.create_all(bind=get_engine())

    yield
    # Shutdown: let queued anomaly alerts finish
    get_anomaly_guard().shutdown(wait=True)


app = FastAPI(
    title=settings.app_name,
    description="Issue and rotate access/refresh tokens bound to the client address",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "app": settings.app_name}


# Import and include routers
from auth_service.api import auth  # noqa: E402

app.include_router(auth.router, prefix="/api")

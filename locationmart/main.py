"""
LocationMart - Location Enrichment API
Composite geocoding and spatial enrichment from public feature services.
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from locationmart.config import settings
from locationmart.routers import location
from locationmart.services.location.geocoders import default_adapters
from locationmart.services.location.geocoding import CompositeGeocoder
from locationmart.services.location.layers import load_default_registry

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: one registry, one HTTP client, one geocoder for the process
    logger.info(f"{settings.PROJECT_NAME} starting up...")
    app.state.registry = load_default_registry()
    app.state.http_client = httpx.AsyncClient(
        timeout=settings.ARCGIS_TIMEOUT_SECONDS,
        follow_redirects=True,
        headers={"User-Agent": settings.GEOCODE_USER_AGENT},
    )
    app.state.geocoder = CompositeGeocoder(
        default_adapters(settings),
        client=app.state.http_client,
    )
    yield
    # Shutdown
    await app.state.http_client.aclose()
    logger.info(f"{settings.PROJECT_NAME} shutting down...")


app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Geocoding and spatial enrichment",
    version=settings.VERSION,
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(location.router, prefix=settings.API_PREFIX, tags=["Location"])


@app.get("/")
async def root():
    return {"status": "ok", "service": f"{settings.PROJECT_NAME} API", "version": settings.VERSION}


@app.get("/health")
async def health():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "locationmart.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )

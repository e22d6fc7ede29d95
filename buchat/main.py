"""
Buchat API — entry point.

Startup sequence:
  1. Configure OTel tracing (→ Jaeger via OTLP)
  2. Create tables if not present (TiDB)
  3. Initialise MinIO client & bucket
  4. Expose Prometheus /metrics endpoint
"""
import logging

from contextlib import asynccontextmanager
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from buchat.config import settings
from buchat.database import engine, init_db
from buchat.telemetry import setup_tracing, instrument_app
from buchat.clients.minio_client import init_minio
from buchat.routers import communities, discovery, feed, media, posts

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
)
logger = logging.getLogger(__name__)

# Set up tracing before the app is created so all imports are instrumented
setup_tracing()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage startup and shutdown of all external connections."""
    logger.info("Starting Buchat API (env=%s)", settings.environment)

    await init_db()
    init_minio()                    # sync — boto3 is not async

    logger.info("All services connected. API ready.")
    yield

    logger.info("Shutting down...")
    await engine.dispose()


app = FastAPI(
    title="Buchat API",
    description=(
        "Community posts, trending, personalized feed and recommendations "
        "ranked by a shared scoring module."
    ),
    version="1.0.0",
    lifespan=lifespan,
)

# ── Routers ────────────────────────────────────────────────────────────────
app.include_router(posts.router, prefix="/posts", tags=["Posts"])
app.include_router(communities.router, prefix="/communities", tags=["Communities"])
app.include_router(feed.router, prefix="/feed", tags=["Feed"])
app.include_router(discovery.router, tags=["Recommendations"])
app.include_router(media.router, tags=["Media"])

# ── Prometheus metrics endpoint ────────────────────────────────────────────
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# ── OTel FastAPI instrumentation ──────────────────────────────────────────
instrument_app(app)


@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok", "service": settings.service_name}

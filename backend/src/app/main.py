import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import auctions, bids, buyers, grants, submitters, ws
from app.core.config import settings
from app.core.logging_config import configure_logging
from app.core.redis import close_redis
from app.middleware.metrics import PrometheusMiddleware, metrics_endpoint
from app.middleware.rate_limit import RateLimitMiddleware
from app.services.sweep_service import run_sweep

logger = logging.getLogger(__name__)

# Background task control
_sweep_task: asyncio.Task | None = None


async def auction_sweep_loop():
    """Background task to finalize expired auctions every SWEEP_INTERVAL_SECONDS."""
    while True:
        try:
            await run_sweep()
            await asyncio.sleep(settings.SWEEP_INTERVAL_SECONDS)

        except asyncio.CancelledError:
            logger.info("Auction sweep loop cancelled")
            break
        except Exception as e:
            logger.error(f"Error in auction sweep loop: {e}")
            await asyncio.sleep(settings.SWEEP_INTERVAL_SECONDS)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    global _sweep_task

    configure_logging()
    logger.info("Starting application...")

    if settings.SWEEP_INTERVAL_SECONDS > 0:
        logger.info("Starting auction sweep loop")
        _sweep_task = asyncio.create_task(auction_sweep_loop())

    yield

    logger.info("Stopping background tasks")

    if _sweep_task:
        _sweep_task.cancel()
        try:
            await _sweep_task
        except asyncio.CancelledError:
            pass
        _sweep_task = None

    await close_redis()


app = FastAPI(
    title="Leak Auction",
    version="1.0.0",
    description="Exclusive-rights auctions for anonymously submitted content",
    lifespan=lifespan,
)

# Prometheus Metrics Middleware (must be first to capture all requests)
app.add_middleware(PrometheusMiddleware)

# Rate Limiting Middleware (must be before CORS)
app.add_middleware(
    RateLimitMiddleware,
    ip_limit=settings.RATE_LIMIT_IP_PER_SECOND,
    bid_limit=settings.RATE_LIMIT_BIDS_PER_SECOND,
)

# CORS Middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routers
app.include_router(bids.router, prefix="/api/v1/bids", tags=["bids"])
app.include_router(auctions.router, prefix="/api/v1/auctions", tags=["auctions"])
app.include_router(grants.router, prefix="/api/v1/grants", tags=["grants"])
app.include_router(buyers.router, prefix="/api/v1/buyers", tags=["buyers"])
app.include_router(submitters.router, prefix="/api/v1/submitters", tags=["submitters"])

# WebSocket router (no prefix, endpoint is /ws/{post_ref})
app.include_router(ws.router, tags=["websocket"])


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


# Prometheus metrics endpoint
app.add_route("/metrics", metrics_endpoint)

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from tortoise.contrib.fastapi import register_tortoise

from app.accounting.loader import load_fee_buckets, load_vesting_schedule
from app.core.config import settings
from app.api import health, treasury_router
from app.services import locks
from app.services.solana import solana_ledger
from app.workers.monthly_burn import monthly_burn_loop

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Fail fast on a bad schedule or bucket config
    load_vesting_schedule(settings)
    load_fee_buckets(settings)

    worker_task = asyncio.create_task(monthly_burn_loop())
    logger.info("Started monthly burn worker")
    yield
    # Shutdown - cancel worker and close connections
    worker_task.cancel()
    try:
        await worker_task
    except asyncio.CancelledError:
        pass
    await solana_ledger.close()
    await locks.close()


app = FastAPI(
    title=settings.app_name,
    description="""
    MYXN Treasury API: presale vesting and fee distribution

    This API provides endpoints for:
    - Querying a participant's vesting status and unlock schedule
    - Claiming vested tokens to the participant's wallet
    - Recording collected transaction fees and distributing them to the
      burn, charity, liquidity and treasury wallets
    - Browsing the monthly burn history

    ## Claim Flow

    1. Admin approves a participant with `POST /api/v1/vesting/participants`
    2. Frontend shows `GET /api/v1/vesting/{wallet}` (vested, claimable, next unlock)
    3. Participant calls `POST /api/v1/vesting/claim`
    4. Backend signs an SPL transfer from the treasury wallet, records the
       signature, and updates the claimed amount once the transfer is confirmed
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(treasury_router.router, prefix=settings.api_v1_prefix)


@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "api": settings.api_v1_prefix,
    }


register_tortoise(
    app,
    config=settings.tortoise_config,
    generate_schemas=False,
    add_exception_handlers=True,
)

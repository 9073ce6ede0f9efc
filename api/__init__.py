"""REST API module for the marketplace.

This module provides HTTP endpoints for:
- Creating, browsing and delisting Dutch auction listings
- Placing, cancelling and accepting offers
- Offer leaderboards and price curves
- Reconciling ended auctions
- Looking up domains owned by a wallet
- Authentication and session management
- Health checks
"""

import logging
import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings_conf
from errors import MarketError
from reconcile import ReconciliationSweeper
from settlement import create_client
from subgraph import create_client as create_subgraph_client
from .errors import market_error_handler, http_error_handler, validation_error_handler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Lifecycle management
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("Initializing API...")
    app.state.settlement = create_client(settings_conf)
    app.state.subgraph = create_subgraph_client(settings_conf)

    sweeper = None
    sweeper_task = None
    interval = settings_conf['reconcile_interval_seconds']
    if interval > 0:
        sweeper = ReconciliationSweeper()
        sweeper_task = asyncio.create_task(sweeper.run_forever(interval))

    yield

    # Shutdown
    logger.info("Shutting down API...")
    if sweeper_task:
        sweeper.stop()
        sweeper_task.cancel()
        try:
            await sweeper_task
        except asyncio.CancelledError:
            pass

# Create FastAPI app
app = FastAPI(
    title="Domain Auction Marketplace API",
    description="REST API for Dutch auctions of tokenized domain names",
    version="1.0.0",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # In production, replace with specific origins
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(MarketError, market_error_handler)
app.add_exception_handler(StarletteHTTPException, http_error_handler)
app.add_exception_handler(RequestValidationError, validation_error_handler)

# Import and include all routers
from .listings import router as listings_router
from .offers import router as offers_router
from .reconcile import router as reconcile_router
from .auth import router as auth_router
from .subgraph import router as subgraph_router
from .system import router as system_router

app.include_router(listings_router)
app.include_router(offers_router)
app.include_router(reconcile_router)
app.include_router(auth_router)
app.include_router(subgraph_router)
app.include_router(system_router)

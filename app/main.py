from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

import httpx

from app.core.config import settings
from app.routers import analytics, currency, expenses, health
from app.utils.exchange_rates import ExchangeRateClient, RateCache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: one HTTP client and one rate cache for the whole process
    logger.info("Starting exchange rate client...")
    async with httpx.AsyncClient() as client:
        app.state.rate_cache = RateCache(ExchangeRateClient(client).fetch_latest)
        yield
        # Shutdown: the client is closed on leaving the block
        logger.info("Stopping exchange rate client...")


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)

# Root endpoint
@app.get("/")
def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}


# Register routers
app.include_router(health.router, prefix=f"{settings.API_PREFIX}", tags=["Health"])  # /api/health
app.include_router(expenses.router, prefix=f"{settings.API_PREFIX}/expenses", tags=["Expenses"])
app.include_router(analytics.router, prefix=f"{settings.API_PREFIX}/analytics", tags=["Analytics"])
app.include_router(currency.router, prefix=f"{settings.API_PREFIX}/currency", tags=["Currency"])

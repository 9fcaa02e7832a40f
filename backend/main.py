"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import leaderboard, market_data, portfolio
from config import settings
from database import get_session_local
from logging_config import setup_logging
from services.holdings_service import SqlHoldingsProvider
from services.valuation_engine import create_valuation_engine

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the valuation engine on startup and stop its worker pools on shutdown."""
    engine = create_valuation_engine(settings, SqlHoldingsProvider(get_session_local()))
    app.state.engine = engine
    try:
        yield
    finally:
        app.state.engine = None
        engine.close()


app = FastAPI(
    title="Portfolio Leaderboard",
    description="Simulated stock and crypto portfolios ranked by gain",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(leaderboard.router)
app.include_router(market_data.router)
app.include_router(portfolio.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}

"""Shared FastAPI dependencies."""

from fastapi import HTTPException, Request

from services.valuation_engine import ValuationEngine


def get_valuation_engine(request: Request) -> ValuationEngine:
    """The engine built at startup. Tests replace this via dependency_overrides."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Valuation engine is not running")
    return engine

"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session
from cashflow_agent.infrastructure.clients.forecast import ForecastClient
from cashflow_agent.infrastructure.database.session import get_db
from cashflow_agent.pipeline import SuggestionPipeline
from cashflow_agent.utils.concurrency import SingleFlight, generation_guard


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_forecast_client() -> ForecastClient:
    """Provide forecast API client instance"""
    return ForecastClient()


def get_generation_guard() -> SingleFlight:
    return generation_guard


def get_pipeline(
    db: Session = Depends(get_db),
    forecast: ForecastClient = Depends(get_forecast_client),
    guard: SingleFlight = Depends(get_generation_guard),
) -> SuggestionPipeline:
    """Provide a pipeline bound to the request's database session"""
    return SuggestionPipeline(db, forecast, guard=guard)

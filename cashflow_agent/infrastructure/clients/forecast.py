"""Forecast provider HTTP client for daily balances and budget summaries"""

import httpx
from datetime import date
from typing import Any, Dict, List
from cashflow_agent.domain.models import BudgetSummary, DailyBalance
from cashflow_agent.domain.exceptions import ForecastAPIError
from cashflow_agent.config import settings


class ForecastClient:
    """Client for the external cash-flow forecast API"""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.forecast_api_base
        self.timeout = timeout or settings.http_timeout_seconds

    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(f"{self.base_url}{path}", params=params)
                response.raise_for_status()
                return response.json()
            except httpx.TimeoutException as e:
                raise ForecastAPIError(f"Forecast API timeout after {self.timeout}s") from e
            except httpx.HTTPStatusError as e:
                raise ForecastAPIError(f"Forecast API error: {e.response.status_code}") from e
            except httpx.RequestError as e:
                raise ForecastAPIError(f"Forecast API unreachable: {e}") from e
            except ValueError as e:
                raise ForecastAPIError(f"Invalid JSON from forecast API: {e}") from e

    async def get_forecast(self, user_id: str, days: int = 30) -> List[DailyBalance]:
        """
        Fetch projected end-of-day balances for the next `days` days.

        Raises:
            ForecastAPIError: On timeout, HTTP errors, or invalid response
        """
        data = await self._get("/forecast/daily", {"user_id": user_id, "days": days})
        try:
            return [
                DailyBalance(
                    date=date.fromisoformat(day["date"][:10]),
                    balance_cents=int(day["balance_cents"]),
                )
                for day in data.get("daily", [])
            ]
        except (KeyError, ValueError, TypeError) as e:
            raise ForecastAPIError(f"Invalid forecast data: {e}") from e

    async def get_budget(self, user_id: str) -> BudgetSummary:
        """
        Fetch planned vs actual spend for the current budget period.

        Raises:
            ForecastAPIError: On timeout, HTTP errors, or invalid response
        """
        data = await self._get("/budget/summary", {"user_id": user_id})
        try:
            return BudgetSummary(
                planned_cents=int(data["planned_cents"]),
                actual_cents=int(data["actual_cents"]),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise ForecastAPIError(f"Invalid budget data: {e}") from e

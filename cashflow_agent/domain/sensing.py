"""Context sensing - gathers the financial snapshot the reasoner works on"""

import asyncio
import logging
from datetime import date, timedelta
from typing import List, Protocol

from cashflow_agent.config import settings
from cashflow_agent.domain.exceptions import SensingError
from cashflow_agent.domain.models import (
    PRIORITY_RANK,
    Bill,
    BudgetSummary,
    DailyBalance,
    Debt,
    FinancialSnapshot,
    Goal,
)
from cashflow_agent.utils.concurrency import with_timeout

logger = logging.getLogger(__name__)


class EntityReader(Protocol):
    """Read side of the bill/debt/goal store"""

    def list_bills(self, user_id: str) -> List[Bill]: ...

    def list_debts(self, user_id: str) -> List[Debt]: ...

    def list_goals(self, user_id: str) -> List[Goal]: ...


class ForecastProvider(Protocol):
    """External cash-flow forecast and budget source"""

    async def get_forecast(self, user_id: str, days: int) -> List[DailyBalance]: ...

    async def get_budget(self, user_id: str) -> BudgetSummary: ...


def select_relevant_bills(bills: List[Bill], today: date, window_days: int) -> List[Bill]:
    """Bills due within the window (overdue included) or flagged critical/high, most urgent first"""
    window_end = today + timedelta(days=window_days)
    relevant = [
        bill
        for bill in bills
        if (bill.due_date is not None and bill.due_date <= window_end)
        or bill.priority in ("critical", "high")
    ]
    return sorted(
        relevant,
        key=lambda b: (
            PRIORITY_RANK.get(b.priority, len(PRIORITY_RANK)),
            b.due_date is None,
            b.due_date or date.max,
        ),
    )


class ContextSensor:
    """Builds a FinancialSnapshot from the entity store and forecast provider"""

    def __init__(
        self,
        entities: EntityReader,
        forecast: ForecastProvider,
        timeout: float | None = None,
        horizon_days: int | None = None,
        bill_window_days: int | None = None,
    ):
        self.entities = entities
        self.forecast = forecast
        self.timeout = timeout or settings.sensing_timeout_seconds
        self.horizon_days = horizon_days or settings.forecast_horizon_days
        self.bill_window_days = bill_window_days or settings.upcoming_bill_window_days

    async def sense(self, user_id: str, today: date | None = None) -> FinancialSnapshot:
        """
        Gather bills, debts, goals, budget and forecast for a user.

        Remote reads run concurrently, each bounded by the sensing timeout.

        Raises:
            SensingError: If any read fails or times out
        """
        if today is None:
            today = date.today()

        try:
            bills = self.entities.list_bills(user_id)
            debts = self.entities.list_debts(user_id)
            goals = self.entities.list_goals(user_id)

            reads = [
                asyncio.ensure_future(
                    with_timeout(self.forecast.get_forecast(user_id, self.horizon_days), self.timeout)
                ),
                asyncio.ensure_future(with_timeout(self.forecast.get_budget(user_id), self.timeout)),
            ]
            try:
                forecast, budget = await asyncio.gather(*reads)
            finally:
                # A failed read must not leave its sibling running
                for read in reads:
                    read.cancel()
        except asyncio.TimeoutError as e:
            logger.warning("Sensing timed out", extra={"user_id": user_id, "timeout": self.timeout})
            raise SensingError(f"Financial data unavailable: timeout after {self.timeout}s") from e
        except Exception as e:
            raise SensingError(f"Financial data unavailable: {e}") from e

        return FinancialSnapshot(
            user_id=user_id,
            as_of=today,
            bills=select_relevant_bills(bills, today, self.bill_window_days),
            debts=sorted(debts, key=lambda d: d.priority),
            goals=sorted(goals, key=lambda g: g.priority),
            budget=budget,
            forecast=sorted(forecast, key=lambda day: day.date)[: self.horizon_days],
        )

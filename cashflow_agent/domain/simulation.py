"""Impact simulation - baseline vs with-plan cash-flow comparison"""

from datetime import date
from typing import Dict, List

from cashflow_agent.domain.models import (
    BillDeferTarget,
    BillPartPayTarget,
    DailyBalance,
    GoalPauseTarget,
    ImpactDelta,
    ImpactMetrics,
    ImpactResult,
    SuggestionTarget,
)

DAYS_PER_MONTH = 30


def summarize(series: List[DailyBalance]) -> ImpactMetrics:
    """Reduce a balance trajectory to its health metrics"""
    negative_days = [day for day in series if day.balance_cents < 0]
    return ImpactMetrics(
        min_balance_cents=min((day.balance_cents for day in series), default=0),
        days_in_negative=len(negative_days),
        total_shortfall_cents=sum(-day.balance_cents for day in negative_days),
        first_gap_date=negative_days[0].date if negative_days else None,
    )


def _cash_movements(target: SuggestionTarget) -> Dict[date, int]:
    """
    Net change in cash flow per date when the target is applied.

    The forecast already contains every bill's full outflow on its current due
    date, so re-timing a bill adds that outflow back and books the new ones.
    """
    movements: Dict[date, int] = {}

    def book(on: date | None, cents: int) -> None:
        if on is not None:
            movements[on] = movements.get(on, 0) + cents

    if isinstance(target, BillPartPayTarget):
        book(target.original_due_date, target.total_amount_cents)
        for part in target.parts:
            book(part.due_date, -part.amount_cents)
    elif isinstance(target, BillDeferTarget):
        book(target.original_due_date, target.amount_cents)
        book(target.new_due_date, -target.amount_cents)
    return movements


def _goal_relief(target: GoalPauseTarget, day_index: int) -> int:
    """Allocation kept in the account after day_index days, accrued daily"""
    paused_days = min(day_index + 1, target.pause_months * DAYS_PER_MONTH)
    return target.monthly_alloc_cents * paused_days // DAYS_PER_MONTH


def apply_target(forecast: List[DailyBalance], target: SuggestionTarget) -> List[DailyBalance]:
    """
    Project the forecast as if the target had been accepted.

    Movements dated before the first forecast day apply from day one;
    movements after the horizon never show up.
    """
    movements = _cash_movements(target)
    pending = sorted(movements.items())

    adjusted = []
    cumulative = 0
    cursor = 0
    for index, day in enumerate(forecast):
        while cursor < len(pending) and pending[cursor][0] <= day.date:
            cumulative += pending[cursor][1]
            cursor += 1

        balance = day.balance_cents + cumulative
        if isinstance(target, GoalPauseTarget):
            balance += _goal_relief(target, index)

        adjusted.append(DailyBalance(date=day.date, balance_cents=balance))
    return adjusted


def simulate_impact(
    forecast: List[DailyBalance],
    target: SuggestionTarget,
    horizon_days: int = 30,
) -> ImpactResult:
    """
    Compare the forecast with and without the target applied.

    Deterministic: identical inputs always produce identical metrics.
    """
    baseline_series = list(forecast[:horizon_days])
    plan_series = apply_target(baseline_series, target)

    baseline = summarize(baseline_series)
    with_plan = summarize(plan_series)

    delta = ImpactDelta(
        min_balance_delta=with_plan.min_balance_cents - baseline.min_balance_cents,
        days_in_negative_delta=with_plan.days_in_negative - baseline.days_in_negative,
        total_shortfall_delta=with_plan.total_shortfall_cents - baseline.total_shortfall_cents,
    )

    return ImpactResult(
        baseline=baseline,
        with_plan=with_plan,
        delta=delta,
        chart={"baseline": baseline_series, "withPlan": plan_series},
    )

"""JSON codec and validation for suggestion targets, impacts and traces.

Stored JSON uses camelCase keys since dashboards read it directly.
"""

from datetime import date
from typing import Any, Dict, List

from cashflow_agent.domain.exceptions import ValidationError
from cashflow_agent.domain.models import (
    BillDeferTarget,
    BillPartPayTarget,
    DailyBalance,
    GoalPauseTarget,
    ImpactMetrics,
    ImpactResult,
    PaymentPart,
    ReasoningStep,
    SuggestionKind,
    SuggestionTarget,
)


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_date(value: Any, field_name: str, required: bool = True) -> date | None:
    if value is None:
        if required:
            raise ValidationError(f"Missing {field_name}")
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError as e:
        raise ValidationError(f"Invalid {field_name}: {value!r}") from e


def validate_target(target: SuggestionTarget) -> None:
    """
    Check kind-specific invariants of a planned target.

    Raises:
        ValidationError: If the parameters cannot be applied as-is
    """
    if isinstance(target, BillPartPayTarget):
        if len(target.parts) not in (2, 3):
            raise ValidationError(f"Part-pay plan must have 2 or 3 parts, got {len(target.parts)}")
        if any(part.amount_cents < 0 for part in target.parts):
            raise ValidationError("Part-pay amounts must be non-negative")
        total = sum(part.amount_cents for part in target.parts)
        if total != target.total_amount_cents:
            raise ValidationError(
                f"Parts sum to {total} cents, bill total is {target.total_amount_cents}"
            )
    elif isinstance(target, BillDeferTarget):
        if target.new_due_date <= target.original_due_date:
            raise ValidationError("Deferred due date must be after the original due date")
    elif isinstance(target, GoalPauseTarget):
        if target.pause_months <= 0:
            raise ValidationError("Pause must last at least one month")
        if target.monthly_alloc_cents <= 0:
            raise ValidationError("Only goals with a monthly allocation can be paused")
    else:
        raise ValidationError(f"Unknown target type: {type(target).__name__}")


def target_to_json(target: SuggestionTarget) -> Dict[str, Any]:
    if isinstance(target, BillPartPayTarget):
        return {
            "billId": target.bill_id,
            "totalAmountCents": target.total_amount_cents,
            "originalDueDate": _iso(target.original_due_date),
            "gapDate": _iso(target.gap_date),
            "parts": [
                {"amountCents": part.amount_cents, "dueDate": _iso(part.due_date)}
                for part in target.parts
            ],
        }
    if isinstance(target, BillDeferTarget):
        return {
            "billId": target.bill_id,
            "amountCents": target.amount_cents,
            "originalDueDate": _iso(target.original_due_date),
            "newDueDate": _iso(target.new_due_date),
            "deferDays": target.defer_days,
        }
    if isinstance(target, GoalPauseTarget):
        return {
            "goalId": target.goal_id,
            "monthlyAllocCents": target.monthly_alloc_cents,
            "pauseMonths": target.pause_months,
        }
    raise ValidationError(f"Unknown target type: {type(target).__name__}")


def target_from_json(kind: str, data: Dict[str, Any]) -> SuggestionTarget:
    """
    Decode and validate a stored target.

    Raises:
        ValidationError: Unknown kind, missing keys or broken invariants
    """
    try:
        suggestion_kind = SuggestionKind(kind)
    except ValueError as e:
        raise ValidationError(f"Unknown suggestion kind: {kind}") from e

    try:
        if suggestion_kind is SuggestionKind.BILL_PARTPAY:
            target: SuggestionTarget = BillPartPayTarget(
                bill_id=str(data["billId"]),
                total_amount_cents=int(data["totalAmountCents"]),
                original_due_date=_parse_date(data.get("originalDueDate"), "originalDueDate", required=False),
                gap_date=_parse_date(data.get("gapDate"), "gapDate"),
                parts=[
                    PaymentPart(
                        amount_cents=int(part["amountCents"]),
                        due_date=_parse_date(part.get("dueDate"), "dueDate"),
                    )
                    for part in data["parts"]
                ],
            )
        elif suggestion_kind is SuggestionKind.BILL_DEFER:
            target = BillDeferTarget(
                bill_id=str(data["billId"]),
                amount_cents=int(data["amountCents"]),
                original_due_date=_parse_date(data.get("originalDueDate"), "originalDueDate"),
                new_due_date=_parse_date(data.get("newDueDate"), "newDueDate"),
                defer_days=int(data.get("deferDays", 14)),
            )
        else:
            target = GoalPauseTarget(
                goal_id=str(data["goalId"]),
                monthly_alloc_cents=int(data["monthlyAllocCents"]),
                pause_months=int(data["pauseMonths"]),
            )
    except (KeyError, TypeError) as e:
        raise ValidationError(f"Malformed {kind} target: {e}") from e

    validate_target(target)
    return target


def metrics_to_json(metrics: ImpactMetrics) -> Dict[str, Any]:
    return {
        "minBalance": metrics.min_balance_cents,
        "daysInNegative": metrics.days_in_negative,
        "totalShortfall": metrics.total_shortfall_cents,
        "firstGapDate": _iso(metrics.first_gap_date),
    }


def series_to_json(series: List[DailyBalance]) -> List[Dict[str, Any]]:
    return [{"date": day.date.isoformat(), "balance": day.balance_cents} for day in series]


def impact_to_json(impact: ImpactResult) -> Dict[str, Any]:
    """Stored impact snapshot; the chart is kept separately"""
    return {
        "baseline": metrics_to_json(impact.baseline),
        "withPlan": metrics_to_json(impact.with_plan),
        "delta": {
            "minBalanceDelta": impact.delta.min_balance_delta,
            "daysInNegativeDelta": impact.delta.days_in_negative_delta,
            "totalShortfallDelta": impact.delta.total_shortfall_delta,
        },
    }


def chart_to_json(impact: ImpactResult) -> Dict[str, List[Dict[str, Any]]]:
    return {name: series_to_json(series) for name, series in impact.chart.items()}


def trace_to_json(steps: List[ReasoningStep]) -> Dict[str, Any]:
    return {
        "steps": [
            {"tool": s.tool, "input": s.input, "output": s.output, "reasoning": s.reasoning}
            for s in steps
        ]
    }

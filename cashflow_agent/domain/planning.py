"""Parameter planning - turns heuristic candidates into concrete targets"""

from datetime import date, timedelta
from typing import List, Tuple

from cashflow_agent.domain.exceptions import ValidationError
from cashflow_agent.domain.models import (
    BillDeferTarget,
    BillPartPayTarget,
    Candidate,
    GoalPauseTarget,
    PaymentPart,
    SuggestionKind,
    SuggestionTarget,
)
from cashflow_agent.domain.serialization import validate_target

NEAR_GAP_DAYS = 7
DEFER_DAYS = 14
PAUSE_MONTHS = 2


def calculate_payment_parts(
    total_amount_cents: int,
    gap_date: date,
    today: date | None = None,
) -> List[PaymentPart]:
    """
    Split a bill into installments timed around the first cash-flow gap.

    Requirements:
    - Gap within 7 days: 3 parts - 30% in 2 days, 30% the day before the gap,
      40% a week after the gap
    - Otherwise: 2 parts - 50% in 3 days, 50% two days before the gap
    - Last part absorbs the rounding remainder so parts sum to the bill total

    Example:
        40001 cents, gap in 10 days → [20000, 20001]
    """
    if total_amount_cents <= 0:
        raise ValidationError("Cannot split a bill without a positive amount")

    if today is None:
        today = date.today()

    days_to_gap = (gap_date - today).days

    schedule: List[Tuple[int, date]]
    if days_to_gap <= NEAR_GAP_DAYS:
        schedule = [
            (30, today + timedelta(days=2)),
            (30, gap_date - timedelta(days=1)),
            (40, gap_date + timedelta(days=7)),
        ]
    else:
        schedule = [
            (50, today + timedelta(days=3)),
            (50, gap_date - timedelta(days=2)),
        ]

    amounts = [total_amount_cents * pct // 100 for pct, _ in schedule]
    # Last part absorbs remainder to ensure exact total
    amounts[-1] += total_amount_cents - sum(amounts)

    return [
        PaymentPart(amount_cents=amount, due_date=due_date)
        for amount, (_, due_date) in zip(amounts, schedule)
    ]


def plan(candidate: Candidate, today: date | None = None) -> SuggestionTarget:
    """
    Compute concrete, validated target parameters for a candidate.

    Raises:
        ValidationError: If the hint is incomplete or the plan breaks an invariant
    """
    if today is None:
        today = date.today()

    hint = candidate.target_hint
    try:
        if candidate.kind is SuggestionKind.BILL_PARTPAY:
            target: SuggestionTarget = BillPartPayTarget(
                bill_id=hint["bill_id"],
                total_amount_cents=hint["amount_cents"],
                original_due_date=hint["due_date"],
                gap_date=hint["gap_date"],
                parts=calculate_payment_parts(hint["amount_cents"], hint["gap_date"], today),
            )
        elif candidate.kind is SuggestionKind.BILL_DEFER:
            target = BillDeferTarget(
                bill_id=hint["bill_id"],
                amount_cents=hint["amount_cents"],
                original_due_date=hint["due_date"],
                new_due_date=hint["due_date"] + timedelta(days=DEFER_DAYS),
                defer_days=DEFER_DAYS,
            )
        elif candidate.kind is SuggestionKind.GOAL_PAUSE:
            target = GoalPauseTarget(
                goal_id=hint["goal_id"],
                monthly_alloc_cents=hint["monthly_alloc_cents"],
                pause_months=PAUSE_MONTHS,
            )
        else:
            raise ValidationError(f"No planner for kind {candidate.kind}")
    except KeyError as e:
        raise ValidationError(f"Incomplete {candidate.kind.value} hint: missing {e}") from e

    validate_target(target)
    return target

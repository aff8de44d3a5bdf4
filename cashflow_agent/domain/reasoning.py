"""Heuristic reasoning - proposes remediation candidates from a financial snapshot"""

from datetime import date, timedelta
from typing import Callable, List, Sequence

from cashflow_agent.domain.models import (
    BillDeferTarget,
    BillPartPayTarget,
    Candidate,
    FinancialSnapshot,
    GoalPauseTarget,
    ReasoningStep,
    SuggestionKind,
    SuggestionTarget,
)

# Fixed caps: at most a handful of suggestions per run to avoid suggestion fatigue
MAX_PARTPAY_SUGGESTIONS = 2
MAX_DEFER_SUGGESTIONS = 1
MAX_GOAL_PAUSE_SUGGESTIONS = 1

PARTPAY_MIN_AMOUNT_CENTS = 10_000  # Strictly above 100.00
DEFER_WINDOW_DAYS = 7
GOAL_PAUSE_MIN_GAPS = 3  # More than two negative days

Heuristic = Callable[[FinancialSnapshot, date], List[Candidate]]


def propose_bill_partpay(snapshot: FinancialSnapshot, today: date) -> List[Candidate]:
    """Split large pending bills that fall due before the first gap"""
    gaps = snapshot.gaps
    if not gaps:
        return []

    first_gap = gaps[0]
    eligible = [
        bill
        for bill in snapshot.bills
        if bill.due_date is not None
        and bill.due_date < first_gap.date
        and bill.amount_cents > PARTPAY_MIN_AMOUNT_CENTS
        and bill.status == "pending"
    ]

    step = ReasoningStep(
        tool="gap_analysis",
        input={"gapDate": first_gap.date.isoformat(), "shortfall": first_gap.shortfall_cents},
        output={"candidateBills": len(eligible)},
        reasoning="Found gap, looking for bills due before it that could be split",
    )

    return [
        Candidate(
            kind=SuggestionKind.BILL_PARTPAY,
            target_hint={
                "bill_id": bill.id,
                "amount_cents": bill.amount_cents,
                "due_date": bill.due_date,
                "gap_date": first_gap.date,
            },
            rationale={
                "description": bill.description,
                "days_to_gap": (first_gap.date - today).days,
                "is_overdue": bill.due_date < today,
            },
            trace=[step],
        )
        for bill in eligible[:MAX_PARTPAY_SUGGESTIONS]
    ]


def propose_bill_defer(snapshot: FinancialSnapshot, today: date) -> List[Candidate]:
    """Push back a non-critical bill due within the next week"""
    window_end = today + timedelta(days=DEFER_WINDOW_DAYS)
    eligible = [
        bill
        for bill in snapshot.bills
        if bill.priority != "critical"
        and bill.status == "pending"
        and bill.due_date is not None
        and today < bill.due_date <= window_end
    ]

    step = ReasoningStep(
        tool="defer_scan",
        input={"windowStart": today.isoformat(), "windowEnd": window_end.isoformat()},
        output={"candidateBills": len(eligible)},
        reasoning="Looking for non-critical bills due within a week that can move",
    )

    return [
        Candidate(
            kind=SuggestionKind.BILL_DEFER,
            target_hint={
                "bill_id": bill.id,
                "amount_cents": bill.amount_cents,
                "due_date": bill.due_date,
            },
            rationale={"description": bill.description, "is_overdue": False},
            trace=[step],
        )
        for bill in eligible[:MAX_DEFER_SUGGESTIONS]
    ]


def propose_goal_pause(snapshot: FinancialSnapshot, today: date) -> List[Candidate]:
    """Free up savings allocations when the forecast dips below zero repeatedly"""
    gaps = snapshot.gaps
    if len(gaps) < GOAL_PAUSE_MIN_GAPS:
        return []

    eligible = [
        goal
        for goal in snapshot.goals
        if goal.type != "buffer" and goal.monthly_alloc_cents > 0
    ]

    step = ReasoningStep(
        tool="goal_scan",
        input={"gapCount": len(gaps)},
        output={"candidateGoals": len(eligible)},
        reasoning="Multiple negative days, looking for non-buffer goals to pause",
    )

    return [
        Candidate(
            kind=SuggestionKind.GOAL_PAUSE,
            target_hint={"goal_id": goal.id, "monthly_alloc_cents": goal.monthly_alloc_cents},
            rationale={"label": goal.label, "is_overdue": False},
            trace=[step],
        )
        for goal in eligible[:MAX_GOAL_PAUSE_SUGGESTIONS]
    ]


# Evaluation order is also the tie-break order when confidences are equal
HEURISTICS: Sequence[Heuristic] = (
    propose_bill_partpay,
    propose_bill_defer,
    propose_goal_pause,
)


def reason(snapshot: FinancialSnapshot, today: date | None = None) -> List[Candidate]:
    """
    Run every heuristic against the snapshot and merge their candidates.

    Heuristics are independent and read only the snapshot, so their order
    of evaluation never changes what each one proposes.
    """
    if today is None:
        today = date.today()

    candidates: List[Candidate] = []
    for heuristic in HEURISTICS:
        candidates.extend(heuristic(snapshot, today))
    return candidates


def _format_amount(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def describe(candidate: Candidate, target: SuggestionTarget) -> str:
    """Human-readable explanation of a planned suggestion"""
    if isinstance(target, BillPartPayTarget):
        days = candidate.rationale.get("days_to_gap")
        return (
            f"Split \"{candidate.rationale['description']}\" into {len(target.parts)} payments. "
            f"Your balance is projected to go negative in {days} days, and spreading this bill "
            f"keeps more cash available until then."
        )
    if isinstance(target, BillDeferTarget):
        return (
            f"Move \"{candidate.rationale['description']}\" {target.defer_days} days later, "
            f"to {target.new_due_date.isoformat()}. It is not a critical bill, and deferring it "
            f"gives you more room this week."
        )
    if isinstance(target, GoalPauseTarget):
        return (
            f"Pause saving towards \"{candidate.rationale['label']}\" for {target.pause_months} months. "
            f"That frees {_format_amount(target.monthly_alloc_cents)} per month while your "
            f"forecast shows several days below zero."
        )
    return candidate.kind.value

"""Confidence scoring - ranks suggestions by how much they are likely to help"""

from typing import List

from cashflow_agent.domain.models import (
    Candidate,
    FinancialSnapshot,
    ImpactDelta,
    ScoredSuggestion,
    ScoringContext,
)

MIN_BALANCE_BASELINE_CENTS = 50_000  # 500.00 improvement saturates the balance component


def build_scoring_context(snapshot: FinancialSnapshot, candidate: Candidate) -> ScoringContext:
    """Contextual flags that raise urgency for a candidate"""
    return ScoringContext(
        has_gaps=bool(snapshot.gaps),
        is_overdue=bool(candidate.rationale.get("is_overdue", False)),
        budget_tight=snapshot.budget.is_tight,
    )


def score_confidence(delta: ImpactDelta, context: ScoringContext) -> float:
    """
    Calculate confidence from 0.0 (unlikely to help) to 1.0 (clearly helps).

    Scoring weights:
    - 30%: Minimum-balance change, normalized to ±500.00 (the only signed term)
    - 15%: Forecast has gaps (urgency: some action is needed)
    - 10%: Target bill is already overdue
    - 5%:  Budget is tight
    - 0.35 base so a neutral suggestion with no flags lands mid-low

    Confidence is a ranking signal, not a probability of success.
    """
    balance_score = delta.min_balance_delta / MIN_BALANCE_BASELINE_CENTS
    balance_score = max(-1.0, min(balance_score, 1.0))

    score = (
        0.35
        + (0.30 * balance_score)
        + (0.15 if context.has_gaps else 0.0)
        + (0.10 if context.is_overdue else 0.0)
        + (0.05 if context.budget_tight else 0.0)
    )

    return round(max(0.0, min(score, 1.0)), 3)


def rank_suggestions(suggestions: List[ScoredSuggestion]) -> List[ScoredSuggestion]:
    """Most important first; ties keep heuristic order"""
    return sorted(suggestions, key=lambda s: s.confidence, reverse=True)

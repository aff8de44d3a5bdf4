"""
Suggestion pipeline - sensing → reasoning → planning → simulation → scoring →
persistence, plus decision materialization and coaching.
"""

import asyncio
import logging
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from cashflow_agent.config import settings
from cashflow_agent.domain.coaching import coaching_message
from cashflow_agent.domain.exceptions import GenerationInProgressError, SimulationError, ValidationError
from cashflow_agent.domain.models import (
    Candidate,
    Decision,
    FinancialSnapshot,
    ReasoningStep,
    ScoredSuggestion,
    SuggestionStatus,
)
from cashflow_agent.domain.planning import plan
from cashflow_agent.domain.reasoning import describe, reason
from cashflow_agent.domain.scoring import build_scoring_context, rank_suggestions, score_confidence
from cashflow_agent.domain.sensing import ContextSensor, ForecastProvider
from cashflow_agent.domain.serialization import target_from_json, target_to_json
from cashflow_agent.domain.simulation import simulate_impact
from cashflow_agent.infrastructure.database.models import AgentSuggestion, ImpactSnapshot
from cashflow_agent.infrastructure.database.repositories import (
    EntityRepository,
    GenerationLeaseRepository,
    SuggestionRepository,
)
from cashflow_agent.materializer import DecisionMaterializer
from cashflow_agent.utils.concurrency import SingleFlight, generation_guard, with_timeout

logger = logging.getLogger(__name__)


def parse_decision(decision: str | Decision) -> Decision:
    try:
        return Decision(decision)
    except ValueError as e:
        raise ValidationError(f"Decision must be 'accept' or 'reject', got {decision!r}") from e


class SuggestionPipeline:
    """
    Entry point for callers (API layer, scheduled jobs).

    Each method is one discrete unit of work against the injected session;
    nothing is carried between calls except the process-wide single-flight
    guard. The per-user generation lease in the database covers other processes.
    """

    def __init__(
        self,
        db: Session,
        forecast: ForecastProvider,
        guard: Optional[SingleFlight] = None,
        sensing_timeout: float | None = None,
        simulation_timeout: float | None = None,
        horizon_days: int | None = None,
        lease_seconds: float | None = None,
        clock: Callable[[], date] = date.today,
    ):
        self.db = db
        self.forecast = forecast
        self.guard = guard or generation_guard
        self.simulation_timeout = simulation_timeout or settings.simulation_timeout_seconds
        self.horizon_days = horizon_days or settings.forecast_horizon_days
        self.lease_seconds = lease_seconds or settings.generation_lease_seconds
        self.clock = clock

        self.suggestions = SuggestionRepository(db)
        self.entities = EntityRepository(db)
        self.leases = GenerationLeaseRepository(db)
        self.sensor = ContextSensor(
            self.entities, forecast, timeout=sensing_timeout, horizon_days=self.horizon_days
        )
        self.materializer = DecisionMaterializer(self.entities)

    # Generation

    def evaluate(self, snapshot: FinancialSnapshot, candidate: Candidate, today: date) -> ScoredSuggestion:
        """Plan, simulate and score a single candidate"""
        target = plan(candidate, today)
        impact = simulate_impact(snapshot.forecast, target, self.horizon_days)
        context = build_scoring_context(snapshot, candidate)
        confidence = score_confidence(impact.delta, context)

        trace = list(candidate.trace) + [
            ReasoningStep(
                tool="parameter_planner",
                input={"kind": candidate.kind.value},
                output=target_to_json(target),
                reasoning="Computed concrete parameters for the suggestion",
            ),
            ReasoningStep(
                tool="impact_simulator",
                input={"horizonDays": self.horizon_days},
                output={
                    "minBalanceDelta": impact.delta.min_balance_delta,
                    "daysInNegativeDelta": impact.delta.days_in_negative_delta,
                    "totalShortfallDelta": impact.delta.total_shortfall_delta,
                },
                reasoning="Compared the forecast with and without the suggestion",
            ),
            ReasoningStep(
                tool="confidence_scorer",
                input={
                    "hasGaps": context.has_gaps,
                    "isOverdue": context.is_overdue,
                    "budgetTight": context.budget_tight,
                },
                output={"confidence": confidence},
                reasoning="Blended simulated impact with urgency flags",
            ),
        ]

        return ScoredSuggestion(
            kind=candidate.kind,
            target=target,
            impact=impact,
            confidence=confidence,
            reasoning=describe(candidate, target),
            trace=trace,
        )

    async def generate_suggestions(self, user_id: str, token_id: Optional[str] = None) -> List[AgentSuggestion]:
        """
        Sense, reason and persist ranked suggestions for a user.

        Flow:
        1. Claim the user's single-flight slot and database lease (reject if either is held)
        2. Gather the financial snapshot
        3. Run heuristics, then plan, simulate and score each candidate
        4. Sort by confidence, descending
        5. Persist as pending in that order

        Raises:
            GenerationInProgressError: Another generation is running for the user
            SensingError: Upstream data unavailable; nothing is persisted
        """
        async with self.guard.hold(user_id):
            holder = self._acquire_lease(user_id)
            try:
                today = self.clock()
                snapshot = await self.sensor.sense(user_id, today)

                candidates = reason(snapshot, today)
                ranked = rank_suggestions([self.evaluate(snapshot, c, today) for c in candidates])

                try:
                    records = self.suggestions.create_suggestions(user_id, token_id, ranked)
                    self.db.commit()
                except Exception:
                    self.db.rollback()
                    raise
            finally:
                self._release_lease(user_id, holder)

            return records

    def _acquire_lease(self, user_id: str) -> uuid.UUID:
        try:
            holder = self.leases.acquire(user_id, self.lease_seconds)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise GenerationInProgressError(f"Suggestion generation already running for {user_id}") from e
        return holder

    def _release_lease(self, user_id: str, holder: uuid.UUID) -> None:
        try:
            self.leases.release(user_id, holder)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def list_suggestions(self, user_id: str, status: Optional[str] = None, limit: int = 20) -> List[AgentSuggestion]:
        return self.suggestions.list_by_user(user_id, status=status, limit=limit)

    # Explanation and impact

    def explain_suggestion(self, suggestion_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Reasoning, trace, impact and confidence for a stored suggestion.

        Raises:
            NotFoundError: Unknown suggestion (or not owned, when user_id is given)
        """
        suggestion = self.suggestions.get_or_raise(suggestion_id, user_id)
        return {
            "reasoning": suggestion.reasoning,
            "trace": (suggestion.trace_json or {}).get("steps", []),
            "impact": suggestion.impact_json,
            "confidence": suggestion.confidence,
        }

    async def generate_impact_analysis(self, suggestion_id: str, user_id: Optional[str] = None) -> ImpactSnapshot:
        """
        Return the suggestion's impact snapshot, simulating it on first request.

        Once stored, a snapshot is never recomputed, so the numbers shown for a
        suggestion stay fixed even when the live forecast moves.

        Raises:
            NotFoundError: Unknown suggestion
            ValidationError: Stored target is malformed
            SimulationError: Forecast unavailable or timed out
        """
        suggestion = self.suggestions.get_or_raise(suggestion_id, user_id)

        snapshot = self.suggestions.get_impact_snapshot(suggestion.id)
        if snapshot is not None:
            return snapshot

        target = target_from_json(suggestion.kind, suggestion.target_json)

        try:
            forecast = await with_timeout(
                self.forecast.get_forecast(suggestion.user_id, self.horizon_days),
                self.simulation_timeout,
            )
        except asyncio.TimeoutError as e:
            raise SimulationError(f"Forecast timed out after {self.simulation_timeout}s") from e
        except Exception as e:
            raise SimulationError(f"Impact simulation failed: {e}") from e

        forecast = sorted(forecast, key=lambda day: day.date)
        impact = simulate_impact(forecast, target, self.horizon_days)

        try:
            snapshot = self.suggestions.create_impact_snapshot(
                suggestion, from_date=self.clock(), days=self.horizon_days, impact=impact
            )
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent request; the stored snapshot wins
            self.db.rollback()
            snapshot = self.suggestions.get_impact_snapshot(suggestion.id)
            if snapshot is None:
                raise
        except Exception:
            self.db.rollback()
            raise

        return snapshot

    # Decisions

    def materialize_suggestion(self, suggestion_id: str, decision: str | Decision, user_id: str) -> Dict[str, Any]:
        """
        Apply a user's decision to a pending suggestion.

        The status transition and any entity changes are committed together
        or not at all.

        Raises:
            ValidationError: Unknown decision or malformed target
            NotFoundError: Unknown suggestion, not owned by the user, or missing entity
            InvalidStateError: Suggestion already decided
        """
        choice = parse_decision(decision)
        new_status = SuggestionStatus.ACCEPTED if choice is Decision.ACCEPT else SuggestionStatus.REJECTED

        try:
            suggestion = self.suggestions.transition(suggestion_id, user_id, new_status)

            if choice is Decision.ACCEPT:
                result = self.materializer.materialize_by_kind(
                    suggestion.kind,
                    suggestion.target_json,
                    user_id,
                    suggestion.id,
                    today=self.clock(),
                )
            else:
                result = {"decision": "rejected"}

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return result

    def generate_post_decision_coaching(self, suggestion_id: str, decision: str | Decision, user_id: str) -> str:
        """
        Coaching message for a decision, based on the stored impact delta.

        Raises:
            NotFoundError: Unknown suggestion or not owned by the user
        """
        choice = parse_decision(decision)
        suggestion = self.suggestions.get_or_raise(suggestion_id, user_id)
        delta = (suggestion.impact_json or {}).get("delta", {})
        return coaching_message(choice, delta)

"""Data access layer for suggestions and the financial entities they act on"""

import uuid
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional
from sqlalchemy.orm import Session
from cashflow_agent.infrastructure.database.models import (
    AgentSuggestion,
    ImpactSnapshot,
    BillRecord,
    DebtRecord,
    GenerationLease,
    GoalRecord,
    PlannedTransaction,
)
from cashflow_agent.domain.exceptions import InvalidStateError, NotFoundError
from cashflow_agent.domain.models import (
    Bill,
    Debt,
    Goal,
    ImpactResult,
    PaymentPart,
    ScoredSuggestion,
    SuggestionSource,
    SuggestionStatus,
)
from cashflow_agent.domain.serialization import (
    chart_to_json,
    impact_to_json,
    target_to_json,
    trace_to_json,
)


def parse_suggestion_id(suggestion_id: str | uuid.UUID) -> Optional[uuid.UUID]:
    """Malformed ids are treated like unknown ones"""
    if isinstance(suggestion_id, uuid.UUID):
        return suggestion_id
    try:
        return uuid.UUID(str(suggestion_id))
    except ValueError:
        return None


class SuggestionRepository:
    """Repository for agent suggestions and their impact snapshots"""

    def __init__(self, db: Session):
        self.db = db

    def create_suggestions(
        self,
        user_id: str,
        token_id: Optional[str],
        suggestions: List[ScoredSuggestion],
    ) -> List[AgentSuggestion]:
        """Persist ranked suggestions as pending, preserving their order"""
        source = SuggestionSource.GUARDIAN if token_id else SuggestionSource.SYSTEM
        records = []
        for rank, suggestion in enumerate(suggestions):
            record = AgentSuggestion(
                user_id=user_id,
                token_id=token_id,
                source=source.value,
                kind=suggestion.kind.value,
                target_json=target_to_json(suggestion.target),
                impact_json=impact_to_json(suggestion.impact),
                reasoning=suggestion.reasoning,
                trace_json=trace_to_json(suggestion.trace),
                confidence=suggestion.confidence,
                rank=rank,
                status=SuggestionStatus.PENDING.value,
            )
            self.db.add(record)
            records.append(record)

        self.db.flush()  # Get IDs without committing
        return records

    def get(self, suggestion_id: str | uuid.UUID) -> Optional[AgentSuggestion]:
        parsed = parse_suggestion_id(suggestion_id)
        if parsed is None:
            return None
        return self.db.query(AgentSuggestion).filter(AgentSuggestion.id == parsed).first()

    def get_for_user(self, suggestion_id: str | uuid.UUID, user_id: str) -> Optional[AgentSuggestion]:
        """Fetch a suggestion only if it belongs to the user"""
        parsed = parse_suggestion_id(suggestion_id)
        if parsed is None:
            return None
        return (
            self.db.query(AgentSuggestion)
            .filter(AgentSuggestion.id == parsed, AgentSuggestion.user_id == user_id)
            .populate_existing()
            .first()
        )

    def get_or_raise(self, suggestion_id: str | uuid.UUID, user_id: Optional[str] = None) -> AgentSuggestion:
        suggestion = self.get_for_user(suggestion_id, user_id) if user_id else self.get(suggestion_id)
        if suggestion is None:
            raise NotFoundError("Suggestion not found")
        return suggestion

    def list_by_user(
        self,
        user_id: str,
        status: Optional[str] = None,
        limit: int = 20,
    ) -> List[AgentSuggestion]:
        """Recent suggestions for a user, newest batch first, in ranked order"""
        query = self.db.query(AgentSuggestion).filter(AgentSuggestion.user_id == user_id)
        if status:
            query = query.filter(AgentSuggestion.status == status)
        return (
            query.order_by(AgentSuggestion.created_at.desc(), AgentSuggestion.rank.asc())
            .limit(limit)
            .all()
        )

    def transition(
        self,
        suggestion_id: str | uuid.UUID,
        user_id: str,
        new_status: SuggestionStatus,
    ) -> AgentSuggestion:
        """
        Move a pending suggestion to a terminal status.

        Only the first caller to observe `pending` wins; the update is
        conditional on the current status. Not committed here.

        Raises:
            NotFoundError: Unknown id or owned by another user
            InvalidStateError: Suggestion already decided
        """
        parsed = parse_suggestion_id(suggestion_id)
        if parsed is None:
            raise NotFoundError("Suggestion not found")

        updated = (
            self.db.query(AgentSuggestion)
            .filter(
                AgentSuggestion.id == parsed,
                AgentSuggestion.user_id == user_id,
                AgentSuggestion.status == SuggestionStatus.PENDING.value,
            )
            .update(
                {"status": new_status.value, "decided_at": datetime.now(timezone.utc)},
                synchronize_session="fetch",
            )
        )

        suggestion = self.get_for_user(parsed, user_id)
        if suggestion is None:
            raise NotFoundError("Suggestion not found")
        if updated == 0:
            raise InvalidStateError(f"Suggestion already {suggestion.status}")
        return suggestion

    def get_impact_snapshot(self, suggestion_id: uuid.UUID) -> Optional[ImpactSnapshot]:
        return (
            self.db.query(ImpactSnapshot)
            .filter(ImpactSnapshot.suggestion_id == suggestion_id)
            .first()
        )

    def create_impact_snapshot(
        self,
        suggestion: AgentSuggestion,
        from_date: date,
        days: int,
        impact: ImpactResult,
    ) -> ImpactSnapshot:
        """Freeze a simulated impact for a suggestion"""
        impact_json = impact_to_json(impact)
        snapshot = ImpactSnapshot(
            suggestion_id=suggestion.id,
            user_id=suggestion.user_id,
            from_date=from_date,
            days=days,
            scenario={"kind": suggestion.kind, "target": suggestion.target_json},
            baseline=impact_json["baseline"],
            with_plan=impact_json["withPlan"],
            delta=impact_json["delta"],
            chart=chart_to_json(impact),
        )
        self.db.add(snapshot)
        self.db.flush()
        return snapshot


class GenerationLeaseRepository:
    """Per-user generation lease, shared by every process using the database"""

    def __init__(self, db: Session):
        self.db = db

    def acquire(self, user_id: str, ttl_seconds: float) -> uuid.UUID:
        """
        Insert the user's lease row, first clearing one older than the TTL.

        Not committed here. A live lease held elsewhere makes the flush fail
        with IntegrityError.
        """
        now = datetime.now(timezone.utc)
        (
            self.db.query(GenerationLease)
            .filter(
                GenerationLease.user_id == user_id,
                GenerationLease.acquired_at < now - timedelta(seconds=ttl_seconds),
            )
            .delete(synchronize_session="fetch")
        )

        holder = uuid.uuid4()
        self.db.add(GenerationLease(user_id=user_id, holder=holder, acquired_at=now))
        self.db.flush()
        return holder

    def release(self, user_id: str, holder: uuid.UUID) -> None:
        """Delete the lease only if this holder still owns it"""
        (
            self.db.query(GenerationLease)
            .filter(GenerationLease.user_id == user_id, GenerationLease.holder == holder)
            .delete(synchronize_session="fetch")
        )


class EntityRepository:
    """Repository for bills, debts, goals and planned transactions"""

    def __init__(self, db: Session):
        self.db = db

    def list_bills(self, user_id: str) -> List[Bill]:
        records = self.db.query(BillRecord).filter(BillRecord.user_id == user_id).all()
        return [
            Bill(
                id=r.id,
                description=r.description,
                amount_cents=r.amount_cents,
                due_date=r.due_date,
                priority=r.priority,
                status=r.status,
            )
            for r in records
        ]

    def list_debts(self, user_id: str) -> List[Debt]:
        records = (
            self.db.query(DebtRecord)
            .filter(DebtRecord.user_id == user_id, DebtRecord.active.is_(True))
            .order_by(DebtRecord.priority.asc())
            .all()
        )
        return [
            Debt(
                id=r.id,
                label=r.label,
                balance_cents=r.balance_cents,
                min_payment_cents=r.min_payment_cents,
                priority=r.priority,
            )
            for r in records
        ]

    def list_goals(self, user_id: str) -> List[Goal]:
        records = (
            self.db.query(GoalRecord)
            .filter(GoalRecord.user_id == user_id, GoalRecord.active.is_(True))
            .order_by(GoalRecord.priority.asc())
            .all()
        )
        return [
            Goal(
                id=r.id,
                label=r.label,
                type=r.type,
                monthly_alloc_cents=r.monthly_alloc_cents,
                priority=r.priority,
            )
            for r in records
        ]

    def get_bill(self, user_id: str, bill_id: str) -> BillRecord:
        bill = (
            self.db.query(BillRecord)
            .filter(BillRecord.id == bill_id, BillRecord.user_id == user_id)
            .first()
        )
        if bill is None:
            raise NotFoundError(f"Bill {bill_id} not found")
        return bill

    def get_goal(self, user_id: str, goal_id: str) -> GoalRecord:
        goal = (
            self.db.query(GoalRecord)
            .filter(GoalRecord.id == goal_id, GoalRecord.user_id == user_id)
            .first()
        )
        if goal is None:
            raise NotFoundError(f"Goal {goal_id} not found")
        return goal

    def planned_transactions_for(self, suggestion_id: uuid.UUID) -> List[PlannedTransaction]:
        return (
            self.db.query(PlannedTransaction)
            .filter(PlannedTransaction.suggestion_id == suggestion_id)
            .order_by(PlannedTransaction.part_index.asc())
            .all()
        )

    def create_planned_transactions(
        self,
        user_id: str,
        bill_id: str,
        suggestion_id: uuid.UUID,
        parts: List[PaymentPart],
    ) -> List[PlannedTransaction]:
        """One planned expense per part, linked to the bill and the suggestion"""
        transactions = []
        for index, part in enumerate(parts):
            txn = PlannedTransaction(
                user_id=user_id,
                bill_id=bill_id,
                suggestion_id=suggestion_id,
                part_index=index,
                amount_cents=part.amount_cents,
                due_date=part.due_date,
            )
            self.db.add(txn)
            transactions.append(txn)

        self.db.flush()
        return transactions

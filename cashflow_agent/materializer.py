"""Applies accepted suggestions to the user's financial entities"""

import logging
import uuid
from datetime import date
from typing import Any, Dict

from cashflow_agent.domain.exceptions import ValidationError
from cashflow_agent.domain.models import (
    BillDeferTarget,
    BillPartPayTarget,
    GoalPauseTarget,
)
from cashflow_agent.domain.serialization import target_from_json
from cashflow_agent.infrastructure.database.repositories import EntityRepository
from cashflow_agent.utils.date_utils import add_months

logger = logging.getLogger(__name__)


class DecisionMaterializer:
    """
    Turns an accepted suggestion into entity changes.

    Runs inside the caller's transaction: nothing here commits, so a failure
    leaves both the entities and the suggestion status untouched.
    """

    def __init__(self, entities: EntityRepository):
        self.entities = entities

    def materialize_by_kind(
        self,
        kind: str,
        target_json: Dict[str, Any],
        user_id: str,
        suggestion_id: uuid.UUID,
        today: date | None = None,
    ) -> Dict[str, Any]:
        """
        Apply the target of an accepted suggestion.

        Raises:
            ValidationError: Unknown kind or malformed target
            NotFoundError: Referenced bill/goal no longer exists
        """
        if today is None:
            today = date.today()

        target = target_from_json(kind, target_json)

        if isinstance(target, BillPartPayTarget):
            return self._create_planned_payments(target, user_id, suggestion_id)
        if isinstance(target, BillDeferTarget):
            return self._defer_bill(target, user_id)
        if isinstance(target, GoalPauseTarget):
            return self._pause_goal(target, user_id, today)
        raise ValidationError(f"Unknown suggestion kind: {kind}")

    def _create_planned_payments(
        self, target: BillPartPayTarget, user_id: str, suggestion_id: uuid.UUID
    ) -> Dict[str, Any]:
        bill = self.entities.get_bill(user_id, target.bill_id)

        transactions = self.entities.planned_transactions_for(suggestion_id)
        if transactions:
            logger.warning(
                "Planned payments already exist for suggestion",
                extra={"suggestion_id": str(suggestion_id)},
            )
        else:
            transactions = self.entities.create_planned_transactions(
                user_id=user_id,
                bill_id=bill.id,
                suggestion_id=suggestion_id,
                parts=target.parts,
            )

        return {
            "decision": "accepted",
            "kind": target.kind.value,
            "billId": bill.id,
            "transactionsCreated": len(transactions),
            "transactionIds": [str(t.id) for t in transactions],
            "parts": [
                {"amountCents": t.amount_cents, "dueDate": t.due_date.isoformat(), "type": t.type}
                for t in transactions
            ],
        }

    def _defer_bill(self, target: BillDeferTarget, user_id: str) -> Dict[str, Any]:
        bill = self.entities.get_bill(user_id, target.bill_id)

        changed = bill.due_date != target.new_due_date
        if changed:
            bill.due_date = target.new_due_date
            self.entities.db.flush()

        return {
            "decision": "accepted",
            "kind": target.kind.value,
            "billId": bill.id,
            "newDueDate": target.new_due_date.isoformat(),
            "changed": changed,
        }

    def _pause_goal(self, target: GoalPauseTarget, user_id: str, today: date) -> Dict[str, Any]:
        goal = self.entities.get_goal(user_id, target.goal_id)

        paused_until = add_months(today, target.pause_months)
        goal.pause_months = target.pause_months
        goal.paused_until = paused_until
        self.entities.db.flush()

        return {
            "decision": "accepted",
            "kind": target.kind.value,
            "goalId": goal.id,
            "pausedMonths": target.pause_months,
            "pausedUntil": paused_until.isoformat(),
        }

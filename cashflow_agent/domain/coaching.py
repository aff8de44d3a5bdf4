"""Post-decision coaching messages"""

from typing import Any, Dict

from cashflow_agent.domain.models import Decision


def coaching_message(decision: Decision, delta: Dict[str, Any]) -> str:
    """
    Short message reflecting the outcome of a decision.

    Args:
        decision: What the user chose
        delta: Stored impact delta (camelCase keys), may be empty
    """
    if decision is Decision.REJECT:
        return (
            "That's your call - you know your situation best. "
            "We'll keep an eye on your cash flow and suggest something else if it helps."
        )

    improvement = delta.get("minBalanceDelta") or 0
    if improvement > 0:
        return (
            f"Great choice! This improves your lowest projected balance by "
            f"{improvement / 100:,.2f} and lowers the risk of going negative."
        )
    return "Thanks for deciding. This gives you a bit more flexibility day to day."

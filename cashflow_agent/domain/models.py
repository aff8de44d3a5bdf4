"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, ClassVar, Dict, List, Union


class SuggestionKind(str, Enum):
    BILL_PARTPAY = "bill_partpay"
    BILL_DEFER = "bill_defer"
    GOAL_PAUSE = "goal_pause"


class SuggestionStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class SuggestionSource(str, Enum):
    SYSTEM = "system"
    GUARDIAN = "guardian"  # Generated during a delegated session


class Decision(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


# Sort order used when presenting bills: most urgent priority first
PRIORITY_RANK = {"critical": 0, "high": 1, "medium": 2, "low": 3}


@dataclass
class Bill:
    """Upcoming or unpaid bill"""

    id: str
    description: str
    amount_cents: int
    due_date: date | None
    priority: str  # "critical" | "high" | "medium" | "low"
    status: str  # "pending" | "paid"


@dataclass
class Debt:
    """Active debt"""

    id: str
    label: str
    balance_cents: int
    min_payment_cents: int
    priority: int


@dataclass
class Goal:
    """Savings goal with a monthly allocation"""

    id: str
    label: str
    type: str  # "buffer" goals are never paused
    monthly_alloc_cents: int
    priority: int


@dataclass
class BudgetSummary:
    """Planned vs actual spend for the current period"""

    planned_cents: int
    actual_cents: int

    @property
    def is_tight(self) -> bool:
        # 90% of the plan already spent
        if self.planned_cents <= 0:
            return self.actual_cents > 0
        return self.actual_cents * 10 >= self.planned_cents * 9


@dataclass
class DailyBalance:
    """Projected end-of-day balance"""

    date: date
    balance_cents: int


@dataclass
class Gap:
    """Forecast day with a negative balance"""

    date: date
    shortfall_cents: int


@dataclass
class FinancialSnapshot:
    """Everything the reasoner needs to know about a user at one point in time"""

    user_id: str
    as_of: date
    bills: List[Bill]
    debts: List[Debt]
    goals: List[Goal]
    budget: BudgetSummary
    forecast: List[DailyBalance]

    @property
    def gaps(self) -> List[Gap]:
        """Every forecast day below zero, in forecast order"""
        return [
            Gap(date=day.date, shortfall_cents=-day.balance_cents)
            for day in self.forecast
            if day.balance_cents < 0
        ]


@dataclass
class ReasoningStep:
    """One audit-trail entry explaining how a suggestion was derived"""

    tool: str
    input: Dict[str, Any]
    output: Dict[str, Any]
    reasoning: str


@dataclass
class Candidate:
    """Unscored suggestion proposal produced by a heuristic"""

    kind: SuggestionKind
    target_hint: Dict[str, Any]
    rationale: Dict[str, Any]
    trace: List[ReasoningStep] = field(default_factory=list)


@dataclass
class PaymentPart:
    """Single installment of a split bill"""

    amount_cents: int
    due_date: date


@dataclass
class BillPartPayTarget:
    kind: ClassVar[SuggestionKind] = SuggestionKind.BILL_PARTPAY

    bill_id: str
    total_amount_cents: int
    original_due_date: date | None
    gap_date: date
    parts: List[PaymentPart]


@dataclass
class BillDeferTarget:
    kind: ClassVar[SuggestionKind] = SuggestionKind.BILL_DEFER

    bill_id: str
    amount_cents: int
    original_due_date: date
    new_due_date: date
    defer_days: int = 14


@dataclass
class GoalPauseTarget:
    kind: ClassVar[SuggestionKind] = SuggestionKind.GOAL_PAUSE

    goal_id: str
    monthly_alloc_cents: int
    pause_months: int = 2


SuggestionTarget = Union[BillPartPayTarget, BillDeferTarget, GoalPauseTarget]


@dataclass
class ImpactMetrics:
    """Cash-flow health summary of one balance trajectory"""

    min_balance_cents: int
    days_in_negative: int
    total_shortfall_cents: int
    first_gap_date: date | None


@dataclass
class ImpactDelta:
    """with_plan minus baseline"""

    min_balance_delta: int
    days_in_negative_delta: int
    total_shortfall_delta: int


@dataclass
class ImpactResult:
    """Baseline vs with-plan comparison over the forecast horizon"""

    baseline: ImpactMetrics
    with_plan: ImpactMetrics
    delta: ImpactDelta
    chart: Dict[str, List[DailyBalance]]


@dataclass
class ScoringContext:
    has_gaps: bool
    is_overdue: bool
    budget_tight: bool


@dataclass
class ScoredSuggestion:
    """Fully evaluated suggestion, ready to persist"""

    kind: SuggestionKind
    target: SuggestionTarget
    impact: ImpactResult
    confidence: float
    reasoning: str
    trace: List[ReasoningStep]

"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from cashflow_agent.infrastructure.database.models import AgentSuggestion, ImpactSnapshot


class GenerateRequest(BaseModel):
    """Request body for POST /v1/suggestions"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    token_id: Optional[str] = Field(None, description="Delegated (guardian) session identifier")


class SuggestionSchema(BaseModel):
    """Stored suggestion as shown to dashboards"""

    suggestion_id: str
    user_id: str
    source: str
    kind: str
    target: Dict[str, Any]
    impact: Dict[str, Any]
    reasoning: str
    confidence: float
    rank: int
    status: str
    created_at: Optional[datetime] = None
    decided_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: AgentSuggestion) -> "SuggestionSchema":
        return cls(
            suggestion_id=str(record.id),
            user_id=record.user_id,
            source=record.source,
            kind=record.kind,
            target=record.target_json,
            impact=record.impact_json,
            reasoning=record.reasoning,
            confidence=record.confidence,
            rank=record.rank,
            status=record.status,
            created_at=record.created_at,
            decided_at=record.decided_at,
        )


class SuggestionListResponse(BaseModel):
    """Ranked suggestions, most important first"""

    user_id: str
    suggestions: List[SuggestionSchema]


class ReasoningStepSchema(BaseModel):
    tool: str
    input: Dict[str, Any]
    output: Dict[str, Any]
    reasoning: str


class ExplanationResponse(BaseModel):
    """Response for GET /v1/suggestions/{id}/explanation"""

    suggestion_id: str
    reasoning: str
    trace: List[ReasoningStepSchema]
    impact: Dict[str, Any]
    confidence: float


class ChartPoint(BaseModel):
    date: date
    balance: int


class ImpactAnalysisResponse(BaseModel):
    """Response for POST /v1/suggestions/{id}/impact"""

    suggestion_id: str
    from_date: date
    days: int
    baseline: Dict[str, Any]
    with_plan: Dict[str, Any]
    delta: Dict[str, Any]
    chart: Dict[str, List[ChartPoint]]

    @classmethod
    def from_snapshot(cls, snapshot: ImpactSnapshot) -> "ImpactAnalysisResponse":
        return cls(
            suggestion_id=str(snapshot.suggestion_id),
            from_date=snapshot.from_date,
            days=snapshot.days,
            baseline=snapshot.baseline,
            with_plan=snapshot.with_plan,
            delta=snapshot.delta,
            chart=snapshot.chart,
        )


class DecisionRequest(BaseModel):
    """Request body for POST /v1/suggestions/{id}/decision"""

    user_id: str = Field(..., min_length=1, description="User identifier")
    decision: Literal["accept", "reject"]


class DecisionResponse(BaseModel):
    """Response for POST /v1/suggestions/{id}/decision"""

    suggestion_id: str
    status: str
    result: Dict[str, Any]
    coaching: str


class CoachingResponse(BaseModel):
    """Response for GET /v1/suggestions/{id}/coaching"""

    suggestion_id: str
    message: str

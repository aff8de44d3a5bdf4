"""GET /v1/suggestions - Fetch a user's suggestion history"""

from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query

from cashflow_agent.api.v1.schemas import SuggestionListResponse, SuggestionSchema
from cashflow_agent.api.dependencies import get_pipeline
from cashflow_agent.pipeline import SuggestionPipeline

router = APIRouter()


@router.get("/suggestions", response_model=SuggestionListResponse)
def get_suggestion_history(
    user_id: str = Query(..., description="User identifier"),
    status: Optional[Literal["pending", "accepted", "rejected"]] = Query(None, description="Filter by status"),
    limit: int = Query(20, ge=1, le=100),
    pipeline: SuggestionPipeline = Depends(get_pipeline),
):
    """
    Retrieve recent suggestions for a user.

    Returns:
        Newest generation first, each generation in ranked order
    """
    records = pipeline.list_suggestions(user_id, status=status, limit=limit)

    return SuggestionListResponse(
        user_id=user_id,
        suggestions=[SuggestionSchema.from_record(r) for r in records],
    )

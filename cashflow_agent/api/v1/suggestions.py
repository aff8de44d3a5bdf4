"""/v1/suggestions - generate, explain, simulate and decide remediation suggestions"""

import time
import logging
from fastapi import APIRouter, Depends, HTTPException, Request

from cashflow_agent.api.v1.schemas import (
    CoachingResponse,
    DecisionRequest,
    DecisionResponse,
    ExplanationResponse,
    GenerateRequest,
    ImpactAnalysisResponse,
    SuggestionListResponse,
    SuggestionSchema,
)
from cashflow_agent.api.dependencies import get_pipeline, get_request_id
from cashflow_agent.pipeline import SuggestionPipeline
from cashflow_agent.domain.exceptions import (
    GenerationInProgressError,
    InvalidStateError,
    NotFoundError,
    SensingError,
    SimulationError,
    ValidationError,
)
from cashflow_agent.infrastructure.observability.metrics import (
    forecast_fetch_failures_counter,
    generation_rejected_counter,
    record_decision,
    record_generation,
)
from cashflow_agent.infrastructure.observability.logging import (
    log_generation,
    log_impact_analysis,
    log_materialization,
)

router = APIRouter()

SUGGESTION_NOT_FOUND = "Suggestion not found"


@router.post("/suggestions", response_model=SuggestionListResponse)
async def generate_suggestions(
    request_body: GenerateRequest,
    request: Request,
    pipeline: SuggestionPipeline = Depends(get_pipeline),
):
    """
    Generate ranked remediation suggestions for a user.

    Flow:
    1. Sense bills, goals, budget and 30-day forecast
    2. Run heuristics; plan, simulate and score each candidate
    3. Persist suggestions as pending, most confident first
    4. Return them in that order
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        records = await pipeline.generate_suggestions(request_body.user_id, request_body.token_id)

    except GenerationInProgressError as e:
        generation_rejected_counter.inc()
        logging.warning(f"Generation rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail="Suggestions are already being generated")

    except SensingError as e:
        forecast_fetch_failures_counter.labels(operation="sensing").inc()
        logging.error(f"Sensing failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="We couldn't refresh suggestions right now")

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    duration = time.time() - start_time
    record_generation([r.kind for r in records], [r.confidence for r in records], duration)
    log_generation(
        request_id,
        request_body.user_id,
        len(records),
        records[0].confidence if records else None,
        duration * 1000,
    )

    return SuggestionListResponse(
        user_id=request_body.user_id,
        suggestions=[SuggestionSchema.from_record(r) for r in records],
    )


@router.get("/suggestions/{suggestion_id}/explanation", response_model=ExplanationResponse)
def explain_suggestion(
    suggestion_id: str,
    user_id: str | None = None,
    pipeline: SuggestionPipeline = Depends(get_pipeline),
):
    """Reasoning, audit trail, impact and confidence for one suggestion"""
    try:
        explanation = pipeline.explain_suggestion(suggestion_id, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=SUGGESTION_NOT_FOUND)

    return ExplanationResponse(suggestion_id=suggestion_id, **explanation)


@router.post("/suggestions/{suggestion_id}/impact", response_model=ImpactAnalysisResponse)
async def generate_impact_analysis(
    suggestion_id: str,
    request: Request,
    user_id: str | None = None,
    pipeline: SuggestionPipeline = Depends(get_pipeline),
):
    """
    Baseline vs with-plan comparison and chart series.

    Computed on first request, then served from the stored snapshot.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        snapshot = await pipeline.generate_impact_analysis(suggestion_id, user_id)

    except NotFoundError:
        raise HTTPException(status_code=404, detail=SUGGESTION_NOT_FOUND)

    except ValidationError as e:
        logging.error(f"Stored suggestion target is malformed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except SimulationError as e:
        forecast_fetch_failures_counter.labels(operation="simulation").inc()
        logging.error(f"Impact simulation failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Impact analysis is unavailable right now")

    log_impact_analysis(
        request_id,
        suggestion_id,
        (snapshot.delta or {}).get("minBalanceDelta"),
        (time.time() - start_time) * 1000,
    )

    return ImpactAnalysisResponse.from_snapshot(snapshot)


@router.post("/suggestions/{suggestion_id}/decision", response_model=DecisionResponse)
def decide_suggestion(
    suggestion_id: str,
    request_body: DecisionRequest,
    request: Request,
    pipeline: SuggestionPipeline = Depends(get_pipeline),
):
    """
    Accept or reject a pending suggestion.

    Accepting applies its changes to bills/goals in the same transaction
    as the status update. The response includes a coaching message.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        result = pipeline.materialize_suggestion(suggestion_id, request_body.decision, request_body.user_id)
        coaching = pipeline.generate_post_decision_coaching(
            suggestion_id, request_body.decision, request_body.user_id
        )
        suggestion = pipeline.suggestions.get_or_raise(suggestion_id, request_body.user_id)

    except NotFoundError as e:
        logging.warning(f"Decision on missing suggestion or entity: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=404, detail=SUGGESTION_NOT_FOUND)

    except InvalidStateError:
        raise HTTPException(status_code=409, detail="This suggestion was already decided")

    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    duration_ms = (time.time() - start_time) * 1000
    record_decision(suggestion.kind, request_body.decision)
    log_materialization(
        request_id,
        request_body.user_id,
        str(suggestion.id),
        suggestion.kind,
        request_body.decision,
        duration_ms,
    )

    return DecisionResponse(
        suggestion_id=str(suggestion.id),
        status=suggestion.status,
        result=result,
        coaching=coaching,
    )


@router.get("/suggestions/{suggestion_id}/coaching", response_model=CoachingResponse)
def get_coaching(
    suggestion_id: str,
    user_id: str,
    decision: str,
    pipeline: SuggestionPipeline = Depends(get_pipeline),
):
    """Coaching message for a decision on a suggestion"""
    try:
        message = pipeline.generate_post_decision_coaching(suggestion_id, decision, user_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail=SUGGESTION_NOT_FOUND)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return CoachingResponse(suggestion_id=suggestion_id, message=message)

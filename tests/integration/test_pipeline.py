"""Integration tests for the suggestion pipeline against a real database session"""

import asyncio
import uuid
import pytest
from datetime import datetime, timedelta, timezone
from cashflow_agent.domain.models import DailyBalance
from cashflow_agent.domain.exceptions import (
    ForecastAPIError,
    GenerationInProgressError,
    InvalidStateError,
    NotFoundError,
    SensingError,
    SimulationError,
    ValidationError,
)
from cashflow_agent.infrastructure.database.models import (
    AgentSuggestion,
    BillRecord,
    GenerationLease,
    GoalRecord,
    ImpactSnapshot,
    PlannedTransaction,
)
from cashflow_agent.pipeline import SuggestionPipeline
from cashflow_agent.utils.concurrency import SingleFlight, generation_guard

pytestmark = pytest.mark.integration


@pytest.fixture
def seeded(add_bill, add_goal, add_debt):
    """Electricity due before the gap, streaming deferrable, one savings goal"""
    add_bill("electricity", 40000, 8, priority="medium")
    add_bill("streaming", 15000, 5, priority="low")
    add_bill("insurance", 60000, 25, priority="low")
    add_goal("vacation", 30000)
    add_goal("rainy_day", 20000, goal_type="buffer", priority=0)
    add_debt("card", 250000)


def by_kind(records, kind):
    return [r for r in records if r.kind == kind]


async def test_generate_ranks_and_persists(pipeline, seeded, db):
    records = await pipeline.generate_suggestions("user_1")

    assert [r.kind for r in records] == ["bill_defer", "goal_pause", "bill_partpay", "bill_partpay"]
    assert [r.confidence for r in records] == [0.59, 0.572, 0.5, 0.5]
    assert [r.rank for r in records] == [0, 1, 2, 3]
    assert all(r.status == "pending" and r.source == "system" for r in records)

    stored = db.query(AgentSuggestion).filter(AgentSuggestion.user_id == "user_1").count()
    assert stored == 4


async def test_generate_partpay_parameters(pipeline, seeded, today):
    records = await pipeline.generate_suggestions("user_1")

    electricity = [r for r in by_kind(records, "bill_partpay") if r.target_json["billId"] == "electricity"][0]
    parts = electricity.target_json["parts"]
    assert [p["amountCents"] for p in parts] == [20000, 20000]
    assert [p["dueDate"] for p in parts] == [
        (today + timedelta(days=3)).isoformat(),
        (today + timedelta(days=8)).isoformat(),
    ]


async def test_generate_stores_reasoning_trace(pipeline, seeded):
    records = await pipeline.generate_suggestions("user_1")

    tools = [step["tool"] for step in records[0].trace_json["steps"]]
    assert tools == ["defer_scan", "parameter_planner", "impact_simulator", "confidence_scorer"]
    assert "Streaming" in records[0].reasoning
    assert records[0].impact_json["delta"]["minBalanceDelta"] == 15000


async def test_generate_with_delegated_session(pipeline, seeded):
    records = await pipeline.generate_suggestions("user_1", token_id="tok_guardian")

    assert {r.source for r in records} == {"guardian"}
    assert {r.token_id for r in records} == {"tok_guardian"}


async def test_generate_with_healthy_forecast(db, seeded, provider_factory, today):
    pipeline = SuggestionPipeline(db, provider_factory(balances=[80000] * 30), clock=lambda: today)

    records = await pipeline.generate_suggestions("user_1")

    # No gaps: only the defer heuristic applies
    assert [r.kind for r in records] == ["bill_defer"]
    assert records[0].confidence == 0.35


async def test_generate_sensing_failure_persists_nothing(db, seeded, provider_factory, today):
    provider = provider_factory(error=ForecastAPIError("Forecast API unreachable"))
    pipeline = SuggestionPipeline(db, provider, clock=lambda: today)

    with pytest.raises(SensingError):
        await pipeline.generate_suggestions("user_1")

    assert db.query(AgentSuggestion).count() == 0


async def test_generate_sensing_timeout(db, seeded, provider_factory, today):
    provider = provider_factory(delay=0.5)
    pipeline = SuggestionPipeline(db, provider, sensing_timeout=0.05, clock=lambda: today)

    with pytest.raises(SensingError):
        await pipeline.generate_suggestions("user_1")

    assert db.query(AgentSuggestion).count() == 0


async def test_concurrent_generation_is_single_flight(db, seeded, provider_factory, gap_balances, today):
    provider = provider_factory(balances=gap_balances, delay=0.05)
    pipeline = SuggestionPipeline(db, provider, guard=SingleFlight(), clock=lambda: today)

    results = await asyncio.gather(
        pipeline.generate_suggestions("user_1"),
        pipeline.generate_suggestions("user_1"),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], GenerationInProgressError)
    assert db.query(AgentSuggestion).count() == 4
    assert not pipeline.guard.is_busy("user_1")


async def test_generation_slot_released_after_failure(db, seeded, provider_factory, today):
    provider = provider_factory(error=ForecastAPIError("down"))
    pipeline = SuggestionPipeline(db, provider, clock=lambda: today)

    with pytest.raises(SensingError):
        await pipeline.generate_suggestions("user_1")

    assert not pipeline.guard.is_busy("user_1")
    assert db.query(GenerationLease).count() == 0


def hold_lease(session, user_id: str, acquired_at: datetime) -> uuid.UUID:
    """Commit a lease row from another session, as a second worker would"""
    holder = uuid.uuid4()
    session.add(GenerationLease(user_id=user_id, holder=holder, acquired_at=acquired_at))
    session.commit()
    return holder


def test_pipelines_share_the_process_guard(db, forecast_provider):
    assert SuggestionPipeline(db, forecast_provider).guard is generation_guard
    assert SuggestionPipeline(db, forecast_provider).guard is SuggestionPipeline(db, forecast_provider).guard


async def test_generation_is_exclusive_across_workers(db, seeded, session_factory, provider_factory, gap_balances, today):
    """Separate sessions and guards only share the database lease"""
    provider = provider_factory(balances=gap_balances, delay=0.05)
    first = SuggestionPipeline(db, provider, guard=SingleFlight(), clock=lambda: today)
    second = SuggestionPipeline(session_factory(), provider, guard=SingleFlight(), clock=lambda: today)

    results = await asyncio.gather(
        first.generate_suggestions("user_1"),
        second.generate_suggestions("user_1"),
        return_exceptions=True,
    )

    errors = [r for r in results if isinstance(r, Exception)]
    assert len(errors) == 1
    assert isinstance(errors[0], GenerationInProgressError)
    assert db.query(AgentSuggestion).count() == 4
    assert db.query(GenerationLease).count() == 0


async def test_generation_rejected_while_lease_held_elsewhere(pipeline, seeded, session_factory, db):
    other = session_factory()
    holder = hold_lease(other, "user_1", datetime.now(timezone.utc))

    with pytest.raises(GenerationInProgressError):
        await pipeline.generate_suggestions("user_1")

    assert db.query(AgentSuggestion).count() == 0
    lease = db.query(GenerationLease).one()
    assert lease.holder == holder
    assert not pipeline.guard.is_busy("user_1")


async def test_abandoned_lease_is_taken_over(pipeline, seeded, session_factory, db):
    hold_lease(session_factory(), "user_1", datetime.now(timezone.utc) - timedelta(hours=1))

    records = await pipeline.generate_suggestions("user_1")

    assert len(records) == 4
    assert db.query(GenerationLease).count() == 0


async def test_lease_is_per_user(pipeline, seeded, session_factory, db):
    hold_lease(session_factory(), "user_2", datetime.now(timezone.utc))

    records = await pipeline.generate_suggestions("user_1")

    assert len(records) == 4
    assert db.query(GenerationLease).filter(GenerationLease.user_id == "user_2").count() == 1


async def test_list_suggestions(pipeline, seeded):
    await pipeline.generate_suggestions("user_1")

    assert len(pipeline.list_suggestions("user_1")) == 4
    assert len(pipeline.list_suggestions("user_1", limit=2)) == 2
    assert pipeline.list_suggestions("user_1", status="accepted") == []
    assert pipeline.list_suggestions("user_2") == []


async def test_explain_suggestion(pipeline, seeded):
    records = await pipeline.generate_suggestions("user_1")

    explanation = pipeline.explain_suggestion(str(records[1].id), "user_1")

    assert explanation["confidence"] == records[1].confidence
    assert explanation["reasoning"] == records[1].reasoning
    assert explanation["impact"]["delta"] == records[1].impact_json["delta"]
    assert explanation["trace"][0]["tool"] == "goal_scan"


async def test_explain_unknown_or_foreign_suggestion(pipeline, seeded):
    records = await pipeline.generate_suggestions("user_1")

    with pytest.raises(NotFoundError):
        pipeline.explain_suggestion("00000000-0000-0000-0000-000000000000")
    with pytest.raises(NotFoundError):
        pipeline.explain_suggestion("not-a-uuid")
    with pytest.raises(NotFoundError):
        pipeline.explain_suggestion(str(records[0].id), "user_2")


async def test_impact_analysis_is_computed_once(pipeline, seeded, forecast_provider, db, today):
    records = await pipeline.generate_suggestions("user_1")
    suggestion_id = str(records[0].id)
    calls_after_generation = forecast_provider.forecast_calls

    first = await pipeline.generate_impact_analysis(suggestion_id, "user_1")

    # Live forecast moves; the stored snapshot must not
    forecast_provider.forecast = [
        DailyBalance(date=d.date, balance_cents=d.balance_cents - 99999) for d in forecast_provider.forecast
    ]
    second = await pipeline.generate_impact_analysis(suggestion_id, "user_1")

    assert forecast_provider.forecast_calls == calls_after_generation + 1
    assert second.id == first.id
    assert second.delta == first.delta
    assert first.delta["minBalanceDelta"] == 15000
    assert first.from_date == today
    assert len(first.chart["baseline"]) == 30
    assert db.query(ImpactSnapshot).count() == 1


async def test_impact_analysis_forecast_failure(pipeline, seeded, forecast_provider):
    records = await pipeline.generate_suggestions("user_1")
    forecast_provider.error = ForecastAPIError("Forecast API error: 503")

    with pytest.raises(SimulationError):
        await pipeline.generate_impact_analysis(str(records[0].id))


async def test_impact_analysis_unknown_suggestion(pipeline):
    with pytest.raises(NotFoundError):
        await pipeline.generate_impact_analysis("00000000-0000-0000-0000-000000000000")


async def test_impact_analysis_malformed_target(pipeline, seeded, forecast_provider, db):
    records = await pipeline.generate_suggestions("user_1")
    partpay = by_kind(records, "bill_partpay")[0]
    partpay.target_json = {**partpay.target_json, "totalAmountCents": partpay.target_json["totalAmountCents"] + 1}
    db.commit()
    calls_after_generation = forecast_provider.forecast_calls

    with pytest.raises(ValidationError):
        await pipeline.generate_impact_analysis(str(partpay.id), "user_1")

    assert forecast_provider.forecast_calls == calls_after_generation
    assert db.query(ImpactSnapshot).count() == 0


async def test_accept_partpay_creates_planned_transactions(pipeline, seeded, db):
    records = await pipeline.generate_suggestions("user_1")
    partpay = [r for r in by_kind(records, "bill_partpay") if r.target_json["billId"] == "electricity"][0]

    result = pipeline.materialize_suggestion(str(partpay.id), "accept", "user_1")

    assert result["transactionsCreated"] == 2
    txns = db.query(PlannedTransaction).filter(PlannedTransaction.suggestion_id == partpay.id).all()
    assert sum(t.amount_cents for t in txns) == 40000
    assert {t.bill_id for t in txns} == {"electricity"}
    assert db.get(AgentSuggestion, partpay.id).status == "accepted"
    assert db.get(AgentSuggestion, partpay.id).decided_at is not None


async def test_accept_twice_is_rejected(pipeline, seeded, db):
    records = await pipeline.generate_suggestions("user_1")
    partpay = by_kind(records, "bill_partpay")[0]
    pipeline.materialize_suggestion(str(partpay.id), "accept", "user_1")

    with pytest.raises(InvalidStateError):
        pipeline.materialize_suggestion(str(partpay.id), "accept", "user_1")
    with pytest.raises(InvalidStateError):
        pipeline.materialize_suggestion(str(partpay.id), "reject", "user_1")

    assert db.query(PlannedTransaction).count() == 2


@pytest.mark.parametrize("late_decision", ["accept", "reject"])
async def test_decision_race_across_sessions(pipeline, seeded, session_factory, forecast_provider, db, today, late_decision):
    """A worker that read the suggestion as pending loses once another worker has decided it"""
    records = await pipeline.generate_suggestions("user_1")
    partpay = by_kind(records, "bill_partpay")[0]
    other = SuggestionPipeline(session_factory(), forecast_provider, clock=lambda: today)
    assert other.suggestions.get_or_raise(str(partpay.id), "user_1").status == "pending"

    pipeline.materialize_suggestion(str(partpay.id), "accept", "user_1")
    with pytest.raises(InvalidStateError):
        other.materialize_suggestion(str(partpay.id), late_decision, "user_1")

    db.expire_all()
    assert db.get(AgentSuggestion, partpay.id).status == "accepted"
    assert db.query(PlannedTransaction).count() == 2


async def test_accept_defer_moves_bill(pipeline, seeded, db, today):
    records = await pipeline.generate_suggestions("user_1")
    defer = by_kind(records, "bill_defer")[0]

    result = pipeline.materialize_suggestion(str(defer.id), "accept", "user_1")

    assert result["changed"] is True
    assert db.get(BillRecord, "streaming").due_date == today + timedelta(days=19)


async def test_accept_goal_pause(pipeline, seeded, db):
    records = await pipeline.generate_suggestions("user_1")
    pause = by_kind(records, "goal_pause")[0]

    result = pipeline.materialize_suggestion(str(pause.id), "accept", "user_1")

    goal = db.get(GoalRecord, "vacation")
    assert goal.pause_months == 2
    assert goal.paused_until.isoformat() == result["pausedUntil"]
    assert db.get(GoalRecord, "rainy_day").paused_until is None


async def test_reject_leaves_entities_untouched(pipeline, seeded, db, today):
    records = await pipeline.generate_suggestions("user_1")

    for record in records:
        assert pipeline.materialize_suggestion(str(record.id), "reject", "user_1") == {"decision": "rejected"}

    assert db.query(PlannedTransaction).count() == 0
    assert db.get(BillRecord, "streaming").due_date == today + timedelta(days=5)
    assert db.get(GoalRecord, "vacation").paused_until is None
    assert {r.status for r in pipeline.list_suggestions("user_1")} == {"rejected"}


async def test_decision_by_other_user_is_not_found(pipeline, seeded, db):
    records = await pipeline.generate_suggestions("user_1")

    with pytest.raises(NotFoundError):
        pipeline.materialize_suggestion(str(records[0].id), "accept", "user_2")

    assert db.get(AgentSuggestion, records[0].id).status == "pending"


async def test_failed_materialization_keeps_suggestion_pending(pipeline, seeded, db):
    records = await pipeline.generate_suggestions("user_1")
    defer = by_kind(records, "bill_defer")[0]
    db.query(BillRecord).filter(BillRecord.id == "streaming").delete()
    db.commit()

    with pytest.raises(NotFoundError):
        pipeline.materialize_suggestion(str(defer.id), "accept", "user_1")

    assert db.get(AgentSuggestion, defer.id).status == "pending"
    assert db.get(AgentSuggestion, defer.id).decided_at is None


async def test_unknown_decision(pipeline, seeded):
    records = await pipeline.generate_suggestions("user_1")

    with pytest.raises(ValidationError):
        pipeline.materialize_suggestion(str(records[0].id), "maybe", "user_1")


async def test_coaching_after_decision(pipeline, seeded):
    records = await pipeline.generate_suggestions("user_1")
    defer = records[0]

    accepted = pipeline.generate_post_decision_coaching(str(defer.id), "accept", "user_1")
    rejected = pipeline.generate_post_decision_coaching(str(defer.id), "reject", "user_1")

    assert "150.00" in accepted
    assert "your call" in rejected
    with pytest.raises(NotFoundError):
        pipeline.generate_post_decision_coaching(str(defer.id), "accept", "user_2")

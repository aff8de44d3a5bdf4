"""Pytest fixtures for testing"""

import asyncio
import pytest
from datetime import date, timedelta
from typing import Callable, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from cashflow_agent.api.main import create_app
from cashflow_agent.api.dependencies import get_forecast_client
from cashflow_agent.infrastructure.database.models import Base, BillRecord, GoalRecord, DebtRecord
from cashflow_agent.infrastructure.database.session import get_db
from cashflow_agent.domain.models import BudgetSummary, DailyBalance
from cashflow_agent.pipeline import SuggestionPipeline
from cashflow_agent.utils.concurrency import SingleFlight


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def build_forecast(balances: List[int], start: Optional[date] = None) -> List[DailyBalance]:
    start = start or date.today()
    return [
        DailyBalance(date=start + timedelta(days=i), balance_cents=balance)
        for i, balance in enumerate(balances)
    ]


class FakeForecastProvider:
    """In-memory forecast provider with optional latency and failure injection"""

    def __init__(
        self,
        balances: Optional[List[int]] = None,
        budget: Optional[BudgetSummary] = None,
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.forecast = build_forecast(balances if balances is not None else [50_000] * 30)
        self.budget = budget or BudgetSummary(planned_cents=500_000, actual_cents=300_000)
        self.delay = delay
        self.error = error
        self.forecast_calls = 0

    async def get_forecast(self, user_id: str, days: int) -> List[DailyBalance]:
        self.forecast_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return list(self.forecast[:days])

    async def get_budget(self, user_id: str) -> BudgetSummary:
        if self.error:
            raise self.error
        return self.budget


# Positive for nine days, negative on days 10-14, recovers after payday
GAP_BALANCES = [30_000, 28_000, 26_000, 24_000, 22_000, 20_000, 18_000, 16_000, 9_000, 3_000] + [
    -12_000, -12_500, -13_000, -9_000, -4_000
] + [150_000 - i * 1_000 for i in range(15)]


@pytest.fixture
def today() -> date:
    return date.today()


@pytest.fixture
def gap_balances() -> List[int]:
    """30-day forecast with five negative days starting at day 10"""
    return list(GAP_BALANCES)


@pytest.fixture
def forecast_provider(gap_balances: List[int]) -> FakeForecastProvider:
    return FakeForecastProvider(balances=gap_balances)


@pytest.fixture
def provider_factory() -> Callable[..., FakeForecastProvider]:
    return FakeForecastProvider


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> Generator[Callable[[], Session], None, None]:
    """Extra sessions on the test database, standing in for other workers"""
    sessions = []

    def _open() -> Session:
        session = TestingSessionLocal()
        sessions.append(session)
        return session

    yield _open
    for session in sessions:
        session.close()


@pytest.fixture
def add_bill(db: Session, today: date) -> Callable[..., BillRecord]:
    """Insert a bill due `due_in` days from today"""

    def _add(
        bill_id: str,
        amount_cents: int,
        due_in: Optional[int],
        priority: str = "medium",
        status: str = "pending",
        user_id: str = "user_1",
        description: Optional[str] = None,
    ) -> BillRecord:
        bill = BillRecord(
            id=bill_id,
            user_id=user_id,
            description=description or bill_id.replace("_", " ").title(),
            amount_cents=amount_cents,
            due_date=today + timedelta(days=due_in) if due_in is not None else None,
            priority=priority,
            status=status,
        )
        db.add(bill)
        db.commit()
        return bill

    return _add


@pytest.fixture
def add_goal(db: Session) -> Callable[..., GoalRecord]:
    def _add(
        goal_id: str,
        monthly_alloc_cents: int,
        goal_type: str = "savings",
        priority: int = 1,
        user_id: str = "user_1",
    ) -> GoalRecord:
        goal = GoalRecord(
            id=goal_id,
            user_id=user_id,
            label=goal_id.replace("_", " ").title(),
            type=goal_type,
            monthly_alloc_cents=monthly_alloc_cents,
            priority=priority,
        )
        db.add(goal)
        db.commit()
        return goal

    return _add


@pytest.fixture
def add_debt(db: Session) -> Callable[..., DebtRecord]:
    def _add(debt_id: str, balance_cents: int, priority: int = 1, user_id: str = "user_1") -> DebtRecord:
        debt = DebtRecord(
            id=debt_id,
            user_id=user_id,
            label=debt_id.replace("_", " ").title(),
            balance_cents=balance_cents,
            min_payment_cents=balance_cents // 20,
            priority=priority,
        )
        db.add(debt)
        db.commit()
        return debt

    return _add


@pytest.fixture
def pipeline(db: Session, forecast_provider: FakeForecastProvider, today: date) -> SuggestionPipeline:
    return SuggestionPipeline(
        db,
        forecast_provider,
        guard=SingleFlight(),
        sensing_timeout=1.0,
        simulation_timeout=1.0,
        clock=lambda: today,
    )


@pytest.fixture
def client(db: Session, forecast_provider: FakeForecastProvider) -> TestClient:
    """Create FastAPI test client with test database and fake forecast provider"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_forecast_client] = lambda: forecast_provider
    return TestClient(app)

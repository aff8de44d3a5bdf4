"""SQLAlchemy ORM models for suggestions, impact snapshots and the financial entities they act on"""

import uuid
from sqlalchemy import (
    Column,
    String,
    BigInteger,
    Boolean,
    Float,
    DateTime,
    Date,
    Integer,
    ForeignKey,
    Text,
    JSON,
    Uuid,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class AgentSuggestion(Base):
    """Remediation suggestion with its reasoning trace and simulated impact"""

    __tablename__ = "agent_suggestion"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    token_id = Column(Text, nullable=True)  # Delegated (guardian) session
    source = Column(String(16), nullable=False, default="system")
    kind = Column(String(32), nullable=False)
    target_json = Column(JSON, nullable=False)
    impact_json = Column(JSON, nullable=False)
    reasoning = Column(Text, nullable=False)
    trace_json = Column(JSON, nullable=False)
    confidence = Column(Float, nullable=False)
    rank = Column(Integer, nullable=False, default=0)  # Position in the generated list
    status = Column(String(16), nullable=False, default="pending")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    decided_at = Column(DateTime(timezone=True), nullable=True)

    impact_snapshot = relationship(
        "ImpactSnapshot", back_populates="suggestion", uselist=False, cascade="all, delete-orphan"
    )


class ImpactSnapshot(Base):
    """Frozen before/after comparison for one suggestion, computed once"""

    __tablename__ = "impact_snapshot"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    suggestion_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("agent_suggestion.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    user_id = Column(Text, nullable=False, index=True)
    from_date = Column(Date, nullable=False)
    days = Column(Integer, nullable=False, default=30)
    scenario = Column(JSON, nullable=False)
    baseline = Column(JSON, nullable=False)
    with_plan = Column(JSON, nullable=False)
    delta = Column(JSON, nullable=False)
    chart = Column(JSON, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    suggestion = relationship("AgentSuggestion", back_populates="impact_snapshot")


class BillRecord(Base):
    """Bill as stored by the user's financial plan"""

    __tablename__ = "bill"

    id = Column(String(64), primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=True)
    priority = Column(String(16), nullable=False, default="medium")
    status = Column(String(16), nullable=False, default="pending")


class DebtRecord(Base):
    """Debt as stored by the user's financial plan"""

    __tablename__ = "debt"

    id = Column(String(64), primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False, index=True)
    label = Column(Text, nullable=False)
    balance_cents = Column(BigInteger, nullable=False, default=0)
    min_payment_cents = Column(BigInteger, nullable=False, default=0)
    priority = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)


class GoalRecord(Base):
    """Savings goal; pause fields are written when a goal_pause is accepted"""

    __tablename__ = "goal"

    id = Column(String(64), primary_key=True, default=_new_id)
    user_id = Column(Text, nullable=False, index=True)
    label = Column(Text, nullable=False)
    type = Column(String(32), nullable=False, default="savings")
    monthly_alloc_cents = Column(BigInteger, nullable=False, default=0)
    priority = Column(Integer, nullable=False, default=0)
    active = Column(Boolean, nullable=False, default=True)
    pause_months = Column(Integer, nullable=True)
    paused_until = Column(Date, nullable=True)


class PlannedTransaction(Base):
    """Planned expense created from an accepted part-pay suggestion"""

    __tablename__ = "planned_transaction"
    __table_args__ = (UniqueConstraint("suggestion_id", "part_index", name="uq_planned_txn_part"),)

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Text, nullable=False, index=True)
    bill_id = Column(String(64), ForeignKey("bill.id"), nullable=False)
    suggestion_id = Column(Uuid(as_uuid=True), ForeignKey("agent_suggestion.id"), nullable=False)
    part_index = Column(Integer, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    due_date = Column(Date, nullable=False)
    type = Column(String(32), nullable=False, default="planned_expense")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class GenerationLease(Base):
    """Held while suggestions are generated for a user; at most one row per user"""

    __tablename__ = "generation_lease"

    user_id = Column(Text, primary_key=True)
    holder = Column(Uuid(as_uuid=True), nullable=False)
    acquired_at = Column(DateTime(timezone=True), nullable=False)

"""Signal model for the append-only town pulse signal log."""
from sqlalchemy import Column, String, DateTime, Integer, Float, Index
from datetime import datetime, timezone
import uuid
from pulse.core.database import Base


class PulseSignal(Base):
    """One weighted observation for a scope. Rows are only ever inserted."""

    __tablename__ = "pulse_signals"

    __table_args__ = (
        Index("ix_pulse_signals_scope_created", "scope_ref", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, nullable=True, index=True)
    scope_ref = Column(String, nullable=False, index=True)
    category = Column(String, nullable=False)
    signal_kind = Column(String, nullable=False)  # busy, slow, event_spike, post_success
    day_of_week = Column(Integer, nullable=True)  # 0 = Sunday, scope-local
    hour = Column(Integer, nullable=True)  # scope-local
    weight = Column(Float, default=1.0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

"""Cached model rows, one per scope and model kind."""
from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint
from datetime import datetime, timezone
import uuid
from pulse.core.database import Base


class PulseModelRow(Base):
    """Last computed model for a scope (town pulse or post timing)."""

    __tablename__ = "pulse_models"

    __table_args__ = (
        UniqueConstraint("scope_ref", "model_kind", name="uq_pulse_models_scope_kind"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, nullable=True, index=True)
    scope_ref = Column(String, nullable=False)
    model_kind = Column(String, nullable=False)  # town_pulse, post_timing
    model = Column(JSON, nullable=False)
    computed_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

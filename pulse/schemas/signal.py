"""Signal record schemas."""
from datetime import datetime
from typing import Literal, Optional, get_args

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pulse.utils.time import ensure_utc


Category = Literal["cafe", "fitness", "salon", "retail", "service", "food", "mixed"]
SignalKind = Literal["busy", "slow", "event_spike", "post_success"]

CATEGORIES = get_args(Category)
SIGNAL_KINDS = get_args(SignalKind)


class SignalInput(BaseModel):
    """An already-classified, already-weighted observation offered for ingestion."""
    signal_kind: SignalKind
    weight: Optional[float] = None
    occurred_at: Optional[datetime] = None


class SignalRecord(BaseModel):
    """
    Write-once weighted observation for one scope.

    day_of_week/hour are resolved in the scope's timezone at ingestion and
    never recomputed.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    scope_key: str = Field(min_length=1)
    tenant_id: Optional[str] = None
    category: Category
    signal_kind: SignalKind
    day_of_week: int = Field(ge=0, le=6)
    hour: int = Field(ge=0, le=23)
    weight: float = Field(ge=0.05, le=50)
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

"""Town pulse model schemas."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from pulse.schemas.signal import Category
from pulse.utils.time import ensure_utc


EventEnergy = Literal["low", "medium", "high"]
Trend = Literal["up", "steady", "down"]


class Window(BaseModel):
    """An hour-of-week slot."""
    dow: int = Field(ge=0, le=6)
    hour: int = Field(ge=0, le=23)


class CategoryTrend(BaseModel):
    category: Category
    trend: Trend


class PulseModelData(BaseModel):
    """Compact recommendation model derived from a scope's signals."""
    busy_windows: List[Window] = Field(default_factory=list, max_length=4)
    slow_windows: List[Window] = Field(default_factory=list, max_length=4)
    event_energy: EventEnergy = "low"
    seasonal_notes: str = Field(min_length=1)
    category_trends: List[CategoryTrend] = Field(default_factory=list, max_length=4)


class StoredModel(BaseModel):
    """Backend-neutral cached model row; `model` is the serialized payload."""
    id: str = Field(min_length=1)
    scope_key: str = Field(min_length=1)
    model_kind: str = Field(min_length=1)
    tenant_id: Optional[str] = None
    model: dict
    computed_at: datetime

    @field_validator("computed_at")
    @classmethod
    def normalize_computed_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class PulseModelRecord(BaseModel):
    """Cached town pulse model for one scope."""
    id: str
    scope_key: str
    tenant_id: Optional[str] = None
    model: PulseModelData
    computed_at: datetime

"""Per-brand post timing schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from pulse.utils.time import ensure_utc


class PostMetrics(BaseModel):
    """One engagement snapshot for a post."""
    views: float = Field(default=0, ge=0)
    likes: float = Field(default=0, ge=0)
    comments: float = Field(default=0, ge=0)
    shares: float = Field(default=0, ge=0)
    saves: float = Field(default=0, ge=0)
    clicks: float = Field(default=0, ge=0)
    redemptions: float = Field(default=0, ge=0)


class PostPerformance(BaseModel):
    """A published post joined to its metric snapshots."""
    id: str = Field(min_length=1)
    platform: str = Field(min_length=1)
    posted_at: datetime
    metrics: List[PostMetrics] = Field(default_factory=list)

    @field_validator("posted_at")
    @classmethod
    def normalize_posted_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class HourScore(BaseModel):
    hour: int = Field(ge=0, le=23)
    score: float
    samples: int = Field(ge=0)


class DayScore(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    score: float
    samples: int = Field(ge=0)


class TimingExplainability(BaseModel):
    score_formula: str
    decay: str
    notes: List[str] = Field(default_factory=list)


class TimingModelData(BaseModel):
    """Best posting hours/days for one brand on one platform."""
    range_days: int = Field(ge=1, le=365)
    sample_size: int = Field(ge=0)
    fallback_used: bool
    hourly_scores: List[HourScore] = Field(min_length=24, max_length=24)
    day_of_week_scores: List[DayScore] = Field(min_length=7, max_length=7)
    best_hours: List[int] = Field(min_length=1, max_length=5)
    best_days: List[int] = Field(min_length=1, max_length=7)
    best_time_label: str = Field(min_length=1)
    explainability: TimingExplainability


class TimingModelRecord(BaseModel):
    """Cached timing model for a brand/platform pair."""
    id: str
    tenant_id: Optional[str] = None
    brand_id: str
    platform: str
    model: TimingModelData
    computed_at: datetime


class PostNowDecision(BaseModel):
    """Whether to post right now, with a confidence in [0, 1]."""
    post_now: bool
    confidence: float = Field(ge=0, le=1)
    reason: str
    next_best_hour: Optional[int] = None

"""Per-brand post timing engine: best hours and days from post performance."""
import numpy as np
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from pulse.schemas.timing import (
    DayScore,
    HourScore,
    PostMetrics,
    PostNowDecision,
    PostPerformance,
    TimingExplainability,
    TimingModelData,
)
from pulse.utils.time import ensure_utc, hour_label, resolve_day_hour, day_of_week_index, utcnow


DEFAULT_BEST_HOURS = [11, 15, 18]
DEFAULT_BEST_DAYS = [2, 3, 4]
MAX_BEST = 3

MIN_RANGE_DAYS = 7
MAX_RANGE_DAYS = 365
DEFAULT_RANGE_DAYS = 60

# Raw score for a post with no metric snapshots
NO_METRICS_SCORE = 0.75
MIN_POST_SCORE = 0.1
DECAY_DAYS = 30.0

SCORE_FORMULA = (
    "engagement_score = log1p(views/100 + likes + comments*2 + shares*3 "
    "+ saves*2 + clicks*2 + redemptions*4)"
)
DECAY_FORMULA = "weight = exp(-daysAgo/30)"
FALLBACK_NOTE = "No matching post history in selected range; using default high-performing windows."
RECENCY_NOTE = "More recent posts are weighted higher than older posts."


def clamp_range_days(range_days: Optional[int], default: int = DEFAULT_RANGE_DAYS) -> int:
    """Clamp a timing lookback into [MIN_RANGE_DAYS, MAX_RANGE_DAYS]."""
    value = default if range_days is None else int(range_days)
    return max(MIN_RANGE_DAYS, min(MAX_RANGE_DAYS, value))


def engagement_score(metrics: PostMetrics) -> float:
    """Weighted engagement total for one metric snapshot."""
    return (
        metrics.views / 100
        + metrics.likes
        + metrics.comments * 2
        + metrics.shares * 3
        + metrics.saves * 2
        + metrics.clicks * 2
        + metrics.redemptions * 4
    )


def post_score(post: PostPerformance) -> float:
    """
    Dampened performance score for one post.

    Mean engagement across the post's snapshots, log1p-compressed and
    floored at MIN_POST_SCORE.
    """
    if post.metrics:
        raw = float(np.mean([engagement_score(m) for m in post.metrics]))
    else:
        raw = NO_METRICS_SCORE
    return max(MIN_POST_SCORE, float(np.log1p(raw)))


def decay_weight(days_ago: float) -> float:
    return float(np.exp(-max(0.0, days_ago) / DECAY_DAYS))


def _weighted_means(
    buckets: np.ndarray,
    scores: np.ndarray,
    weights: np.ndarray,
    size: int
):
    weighted = np.bincount(buckets, weights=scores * weights, minlength=size)
    totals = np.bincount(buckets, weights=weights, minlength=size)
    samples = np.bincount(buckets, minlength=size)
    means = np.divide(weighted, totals, out=np.zeros(size), where=totals > 0)
    return np.round(means, 4), samples


def best_indexes(scores: Sequence[float], samples: Sequence[int], fallback: List[int]) -> List[int]:
    """Indexes with samples, ranked by score then samples (ties by index)."""
    ranked = sorted(
        (i for i in range(len(scores)) if samples[i] > 0),
        key=lambda i: (-scores[i], -samples[i], i)
    )
    return ranked[:MAX_BEST] if ranked else list(fallback)


def build_timing_model(
    posts: Sequence[PostPerformance],
    timezone: str,
    range_days: Optional[int] = None,
    now: Optional[datetime] = None
) -> TimingModelData:
    """
    Build the timing model for one brand/platform.

    Each post contributes its score to its local hour and local day bucket,
    weighted by recency. Bucket score is the weighted mean; samples is the
    post count.

    Args:
        posts: Posts for the brand/platform (older than the window are ignored)
        timezone: Brand timezone for local hour/day resolution
        range_days: Lookback window (clamped to [7, 365], default 60)
        now: Build time (defaults to current UTC time)

    Returns:
        TimingModelData with 24 hourly and 7 daily scores
    """
    now = ensure_utc(now or utcnow())
    days = clamp_range_days(range_days)
    cutoff = now - timedelta(days=days)

    in_window = [p for p in posts if p.posted_at >= cutoff]

    hours, weekdays, scores, weights = [], [], [], []
    for post in in_window:
        dow, hour = resolve_day_hour(post.posted_at, timezone)
        days_ago = (now - post.posted_at).total_seconds() / 86400
        hours.append(hour)
        weekdays.append(dow)
        scores.append(post_score(post))
        weights.append(decay_weight(days_ago))

    score_arr = np.asarray(scores, dtype=float)
    weight_arr = np.asarray(weights, dtype=float)
    hourly, hour_samples = _weighted_means(np.asarray(hours, dtype=int), score_arr, weight_arr, 24)
    daily, day_samples = _weighted_means(np.asarray(weekdays, dtype=int), score_arr, weight_arr, 7)

    fallback_used = len(in_window) == 0
    if fallback_used:
        best_hours = list(DEFAULT_BEST_HOURS)
        best_days = list(DEFAULT_BEST_DAYS)
    else:
        best_hours = best_indexes(hourly.tolist(), hour_samples.tolist(), DEFAULT_BEST_HOURS)
        best_days = best_indexes(daily.tolist(), day_samples.tolist(), DEFAULT_BEST_DAYS)

    return TimingModelData(
        range_days=days,
        sample_size=len(in_window),
        fallback_used=fallback_used,
        hourly_scores=[
            HourScore(hour=h, score=float(hourly[h]), samples=int(hour_samples[h]))
            for h in range(24)
        ],
        day_of_week_scores=[
            DayScore(day_of_week=d, score=float(daily[d]), samples=int(day_samples[d]))
            for d in range(7)
        ],
        best_hours=best_hours,
        best_days=best_days,
        best_time_label=f"{hour_label(best_hours[0])} ({timezone})",
        explainability=TimingExplainability(
            score_formula=SCORE_FORMULA,
            decay=DECAY_FORMULA,
            notes=[FALLBACK_NOTE if fallback_used else RECENCY_NOTE],
        ),
    )


def recommend_post_now(model: TimingModelData, local_now: datetime) -> PostNowDecision:
    """
    Decide whether posting at `local_now` lands in a best window.

    `local_now` must already be in the brand's timezone. Confidence grows
    with the number of posts behind the model and stays below 1.
    """
    hour = local_now.hour
    dow = day_of_week_index(local_now)

    good_hour = hour in model.best_hours
    good_day = model.fallback_used or dow in model.best_days
    post_now = good_hour and good_day

    evidence = 1 - float(np.exp(-model.sample_size / 10))
    confidence = round(0.3 + 0.65 * evidence, 2)

    upcoming = sorted(model.best_hours)
    next_best_hour = None
    if not post_now:
        next_best_hour = next((h for h in upcoming if h > hour), upcoming[0])

    if post_now:
        reason = f"{hour_label(hour)} is one of the best posting hours"
    elif good_hour:
        reason = "Good hour, but today is not one of the best posting days"
    else:
        reason = f"Better window coming at {hour_label(next_best_hour)}"
    if model.fallback_used:
        reason += " (based on default windows)"

    return PostNowDecision(
        post_now=post_now,
        confidence=confidence,
        reason=reason,
        next_best_hour=next_best_hour,
    )

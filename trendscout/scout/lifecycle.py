"""Lifecycle classification for trending topics.

Classifies where a topic sits in its emergence -> growth -> peak -> decline
arc from the growth between its last two volume samples, and derives a
predicted peak date, expected duration and confidence from that.
"""

import random
from datetime import datetime
from typing import Optional, Sequence, Union

from trendscout.core.errors import InsufficientData
from trendscout.core.logging import get_logger
from trendscout.core.time import add_days, utc_now
from trendscout.scout.types import LifecycleStage, LifecyclePrediction, VolumeSample

logger = get_logger(__name__)

# Stage thresholds on growth rate (%), checked in this order, exclusive
EMERGING_GROWTH = 50.0
GROWING_GROWTH = 0.0
PEAK_GROWTH = -20.0

DAYS_TO_PEAK = {
    LifecycleStage.EMERGING: 14,
    LifecycleStage.GROWING: 7,
    LifecycleStage.PEAK: 0,
    LifecycleStage.DECLINING: 0,
}

MIN_DURATION_DAYS = 60
MAX_DURATION_DAYS = 90

HistoryPoint = Union[VolumeSample, float, int]


def _volume(point: HistoryPoint) -> float:
    return float(point.volume) if isinstance(point, VolumeSample) else float(point)


def percent_change(previous: float, current: float) -> float:
    """Percentage change from previous to current; 0 when previous is 0."""
    if previous == 0:
        return 0.0
    return (current - previous) / previous * 100


def growth_rate(history: Sequence[HistoryPoint]) -> float:
    """Growth between the last two samples, 0 with fewer than two."""
    if len(history) < 2:
        return 0.0
    return percent_change(_volume(history[-2]), _volume(history[-1]))


def classify_stage(rate: float) -> LifecycleStage:
    """Map a growth rate onto exactly one lifecycle stage."""
    if rate > EMERGING_GROWTH:
        return LifecycleStage.EMERGING
    if rate > GROWING_GROWTH:
        return LifecycleStage.GROWING
    if rate > PEAK_GROWTH:
        return LifecycleStage.PEAK
    return LifecycleStage.DECLINING


def days_to_peak(stage: LifecycleStage) -> int:
    return DAYS_TO_PEAK[stage]


def confidence_for(sample_count: int) -> int:
    """Step function of history length: 85 (>=7), 65 (>=3), else 40."""
    if sample_count >= 7:
        return 85
    if sample_count >= 3:
        return 65
    return 40


def expected_duration_days(rng: Optional[random.Random] = None) -> int:
    """
    Expected trend lifetime in days, within [60, 90].

    Without an rng this is the fixed midpoint so predictions are
    reproducible; pass a seeded ``random.Random`` to spread estimates
    across the band.
    """
    if rng is None:
        return (MIN_DURATION_DAYS + MAX_DURATION_DAYS) // 2
    return rng.randint(MIN_DURATION_DAYS, MAX_DURATION_DAYS)


def predict_lifecycle(
    topic: str,
    history: Sequence[HistoryPoint],
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None
) -> LifecyclePrediction:
    """
    Predict the lifecycle of a topic from its volume history.

    Args:
        topic: Topic being classified
        history: Volume samples ordered oldest -> newest
        now: Reference time for the peak date (defaults to current UTC)
        rng: Optional random source for the duration estimate

    Returns:
        LifecyclePrediction

    Raises:
        InsufficientData: if the history is empty
    """
    if not history:
        raise InsufficientData(f"No volume history for topic '{topic}'")

    now = now or utc_now()
    rate = growth_rate(history)
    stage = classify_stage(rate)

    prediction = LifecyclePrediction(
        topic=topic,
        current_stage=stage,
        growth_rate=rate,
        predicted_peak_date=add_days(now, days_to_peak(stage)),
        expected_duration_days=expected_duration_days(rng),
        confidence=confidence_for(len(history)),
    )

    logger.debug(
        f"Lifecycle for '{topic}': {stage.value} (growth {rate:.1f}%, "
        f"{len(history)} samples, confidence {prediction.confidence})"
    )
    return prediction

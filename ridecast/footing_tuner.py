"""Feedback-driven tuning of the footing drying rate.

Riders report what the footing was actually like; each report is compared
with the score predicted for that date. When a clear majority of recent
predictions lean the same way, the drying rate is nudged one step so the
moisture model catches up with the real arena.
"""

from __future__ import annotations

import datetime as dt
from typing import TYPE_CHECKING, Iterable, Optional

from ridecast.domain import (
    MAX_DRYING_RATE,
    MIN_DRYING_RATE,
    AccuracyStats,
    FeedbackClassification,
    FootingFeedback,
    FootingRating,
    RideScore,
    TuneResult,
    WeatherSettingsUpdate,
)
from utils.logging_utils import get_tagged_logger

if TYPE_CHECKING:  # stores import summarize_accuracy from here
    from ridecast.stores.base import FeedbackStore, SettingsStore

logger = get_tagged_logger(__name__, tag="footing_tuner")

MIN_FEEDBACK_COUNT = 5
FEEDBACK_WINDOW = 10
AGREEMENT_THRESHOLD = 0.6
ADJUSTMENT_STEP = 5.0
TUNE_COOLDOWN = dt.timedelta(hours=24)


def _rank(enum_cls, value) -> int:
    """Rank of a score/footing label; anything unrecognised ranks lowest."""
    try:
        return enum_cls(value).rank
    except ValueError:
        return 0


def classify_feedback(predicted_score, actual_footing) -> FeedbackClassification:
    """Compare a predicted score with the reported footing."""
    predicted = _rank(RideScore, predicted_score)
    actual = _rank(FootingRating, actual_footing)
    if predicted == actual:
        return FeedbackClassification.CORRECT
    if predicted > actual:
        return FeedbackClassification.TOO_CONSERVATIVE
    return FeedbackClassification.TOO_AGGRESSIVE


def summarize_accuracy(feedback: Iterable[FootingFeedback]) -> AccuracyStats:
    """Classification counts over feedback that carries a prediction.

    The percentage stays None until MIN_FEEDBACK_COUNT samples exist.
    """
    classes = [
        classify_feedback(f.predicted_score, f.actual_footing)
        for f in feedback
        if f.predicted_score is not None
    ]
    total = len(classes)
    correct = classes.count(FeedbackClassification.CORRECT)
    return AccuracyStats(
        total=total,
        correct=correct,
        too_conservative=classes.count(FeedbackClassification.TOO_CONSERVATIVE),
        too_aggressive=classes.count(FeedbackClassification.TOO_AGGRESSIVE),
        accuracy_pct=round(correct / total * 100) if total >= MIN_FEEDBACK_COUNT else None,
    )


def _as_utc(ts: dt.datetime) -> dt.datetime:
    return ts if ts.tzinfo else ts.replace(tzinfo=dt.timezone.utc)


def check_and_tune_drying_rate(
    settings_store: SettingsStore,
    feedback_store: FeedbackStore,
    *,
    now: Optional[dt.datetime] = None,
) -> TuneResult:
    """
    Adjust `footing_dry_hours_per_inch` by one step if recent feedback agrees.

    Looks at the latest FEEDBACK_WINDOW reports, keeping those that carry a
    prediction. Mostly too_conservative lowers the rate (arena dries faster
    than modeled); mostly too_aggressive raises it. Tuning runs at most once
    per TUNE_COOLDOWN and the rate never leaves [MIN_DRYING_RATE,
    MAX_DRYING_RATE]. Store errors propagate to the caller.
    """
    now = _as_utc(now or dt.datetime.now(dt.timezone.utc))
    settings = settings_store.get_settings()

    if not settings.auto_tune_drying_rate:
        return TuneResult(adjusted=False, reason="auto-tune disabled")

    if settings.last_tuned_at and now - _as_utc(settings.last_tuned_at) < TUNE_COOLDOWN:
        return TuneResult(adjusted=False, reason="already tuned today")

    recent = feedback_store.get_recent_feedback(limit=FEEDBACK_WINDOW)
    graded = [f for f in recent if f.predicted_score is not None]
    if len(graded) < MIN_FEEDBACK_COUNT:
        return TuneResult(
            adjusted=False,
            reason=f"need {MIN_FEEDBACK_COUNT} feedbacks, have {len(graded)}",
        )

    classes = [classify_feedback(f.predicted_score, f.actual_footing) for f in graded]
    total = len(classes)
    conservative = classes.count(FeedbackClassification.TOO_CONSERVATIVE) / total
    aggressive = classes.count(FeedbackClassification.TOO_AGGRESSIVE) / total

    old_rate = settings.footing_dry_hours_per_inch
    new_rate = old_rate
    if conservative >= AGREEMENT_THRESHOLD:
        new_rate = max(MIN_DRYING_RATE, old_rate - ADJUSTMENT_STEP)
    elif aggressive >= AGREEMENT_THRESHOLD:
        new_rate = min(MAX_DRYING_RATE, old_rate + ADJUSTMENT_STEP)

    if new_rate == old_rate:
        logger.debug(
            "No drying-rate change",
            extra={"conservative": conservative, "aggressive": aggressive, "rate": old_rate},
        )
        return TuneResult(adjusted=False, reason="no clear trend")

    settings_store.update_settings(
        WeatherSettingsUpdate(footing_dry_hours_per_inch=new_rate, last_tuned_at=now)
    )
    logger.info(
        "Tuned drying rate",
        extra={"old_rate": old_rate, "new_rate": new_rate, "sample": total},
    )
    return TuneResult(adjusted=True, old_rate=old_rate, new_rate=new_rate)

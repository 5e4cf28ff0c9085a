"""HTTP API for ride-day scoring, footing feedback and the ride schedule."""

import datetime as dt
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from ridecast import store_manager
from ridecast.alerts import get_alerts
from ridecast.config import settings
from ridecast.data_sources import ForecastProviderError, build_data_source
from ridecast.domain import (
    AccuracyStats,
    FootingFeedback,
    FootingRating,
    RideSlot,
    ScoredDay,
    TuneResult,
    WeatherAlert,
    WeatherForecast,
    WeatherSettings,
    WeatherSettingsUpdate,
)
from ridecast.footing_tuner import check_and_tune_drying_rate
from ridecast.forecast_service import build_ride_days, get_forecast
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="ridecast/api")

router = APIRouter()
DATA_SOURCE = build_data_source(settings)


class FeedbackRequest(BaseModel):
    """Incoming rider footing report."""
    model_config = ConfigDict(extra="forbid")

    date: dt.date
    actual_footing: FootingRating
    ride_session_id: Optional[str] = None


class FeedbackLookupResponse(BaseModel):
    """Feedback for one date; null when the rider has not reported yet."""
    feedback: Optional[FootingFeedback] = None


class RideSlotRequest(BaseModel):
    """Incoming weekly ride slot (day_of_week 0 = Sunday)."""
    model_config = ConfigDict(extra="forbid")

    day_of_week: int = Field(ge=0, le=6)
    start_time: dt.time
    end_time: dt.time


def _require_location(weather_settings: WeatherSettings) -> tuple[float, float]:
    """Raise a 400 if the farm location has not been configured."""
    if not weather_settings.has_location:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Location not configured")
    return weather_settings.location_lat, weather_settings.location_lng


def _load_forecast(weather_settings: WeatherSettings) -> WeatherForecast:
    """Fetch (or reuse) the forecast for the configured location."""
    lat, lng = _require_location(weather_settings)
    try:
        return get_forecast(
            lat,
            lng,
            data_source=DATA_SOURCE,
            rain_window_hours=weather_settings.rain_window_hours,
        )
    except ForecastProviderError as exc:
        logger.error("Forecast provider failed", extra={"error": str(exc)})
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Weather provider unavailable")


def _run_auto_tune() -> None:
    """Background tuning check after new feedback; failures are only logged."""
    try:
        result = check_and_tune_drying_rate(store_manager.settings_store(), store_manager.feedback_store())
    except Exception as exc:
        logger.error("Auto-tune check failed", extra={"error": str(exc)})
        return
    logger.info("Auto-tune check finished", extra=result.model_dump())


@router.get("/weather/settings", response_model=WeatherSettings)
def read_settings():
    """Return the farm-wide weather settings."""
    return store_manager.settings_store().get_settings()


@router.put("/weather/settings", response_model=WeatherSettings)
def write_settings(update: WeatherSettingsUpdate):
    """Apply a partial settings update."""
    logger.info("Updating weather settings", extra={"fields": sorted(update.changes())})
    return store_manager.settings_store().update_settings(update)


@router.get("/weather/forecast", response_model=WeatherForecast)
def read_forecast():
    """Return the raw forecast bundle for the configured location."""
    return _load_forecast(store_manager.settings_store().get_settings())


@router.get("/weather/ride-days", response_model=List[ScoredDay])
def read_ride_days():
    """Score each forecast day and persist prediction snapshots."""
    weather_settings = store_manager.settings_store().get_settings()
    forecast = _load_forecast(weather_settings)
    return build_ride_days(
        forecast,
        weather_settings,
        store_manager.ride_slot_store().list_slots(),
        snapshot_store=store_manager.snapshot_store(),
        retention_days=settings.snapshot_retention_days,
    )


@router.get("/weather/alerts", response_model=List[WeatherAlert])
def read_alerts():
    """Return hazard alerts for current conditions."""
    weather_settings = store_manager.settings_store().get_settings()
    forecast = _load_forecast(weather_settings)
    return get_alerts(forecast.current, weather_settings)


@router.get("/footing-feedback", response_model=FeedbackLookupResponse)
def read_feedback(date: dt.date = Query(...)):
    """Return the rider's feedback for a date, if any."""
    return FeedbackLookupResponse(feedback=store_manager.feedback_store().get_feedback_for_date(date))


@router.post("/footing-feedback", response_model=FootingFeedback, status_code=status.HTTP_201_CREATED)
def submit_feedback(req: FeedbackRequest, background_tasks: BackgroundTasks):
    """Record footing feedback and queue a drying-rate tuning check."""
    feedback = store_manager.feedback_store().create_feedback(
        req.date,
        req.actual_footing,
        ride_session_id=req.ride_session_id or None,
    )
    background_tasks.add_task(_run_auto_tune)
    return feedback


@router.get("/footing-feedback/accuracy", response_model=AccuracyStats)
def read_accuracy():
    """Return prediction accuracy against rider feedback."""
    return store_manager.feedback_store().get_accuracy_stats()


@router.post("/footing-feedback/tune", response_model=TuneResult)
def tune_now():
    """Run a drying-rate tuning check immediately."""
    return check_and_tune_drying_rate(store_manager.settings_store(), store_manager.feedback_store())


@router.get("/ride-slots", response_model=List[RideSlot])
def read_ride_slots():
    """Return the weekly ride schedule."""
    return store_manager.ride_slot_store().list_slots()


@router.post("/ride-slots", response_model=RideSlot, status_code=status.HTTP_201_CREATED)
def add_ride_slot(req: RideSlotRequest):
    """Add a weekly ride slot."""
    return store_manager.ride_slot_store().add_slot(req.day_of_week, req.start_time, req.end_time)

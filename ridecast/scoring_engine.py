"""Deterministic ride-day scoring.

This module turns one day's forecast (plus hour-level detail for the next two
days and the footing moisture estimate) into a green/yellow/red ScoredDay
with ordered reasons and non-scoring notes. Scores only ever escalate; each
reason carries an explicit priority that decides its position in the output.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Iterable, Sequence

from ridecast.domain import (
    NEVER_DRIES_HOURS,
    CurrentWeather,
    DailyForecast,
    HourlyForecast,
    HourlyRain,
    MoistureEstimate,
    RideScore,
    RideSlot,
    ScoredDay,
    WeatherSettings,
)
from ridecast.moisture_model import estimate_future_moisture, estimate_moisture
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="scoring_engine")

GOOD_CONDITIONS = "Good riding conditions"
INDOOR_ARENA = "Indoor arena available"
HOURLY_DAYS = 2  # days 0 and 1 get hour-aware rain checks
RAIN_PROBABILITY_LIMIT = 60.0
ALL_DAY_FRACTION = 0.8
DEFAULT_DAYLIGHT = (dt.time(6), dt.time(20))
BLANKET_WINDOW = (dt.time(20), dt.time(9))
_ONE_HOUR = dt.timedelta(hours=1)


class ReasonPriority(IntEnum):
    """Lower sorts first in the reason list."""
    FOOTING = 0
    RIDE_SLOT = 1
    RAIN = 2
    CONDITIONS = 3
    ARENA = 8


class ReasonKind(str, Enum):
    """What kind of hazard produced a reason."""
    FOOTING = "footing"
    RAIN = "rain"
    COLD = "cold"
    HEAT = "heat"
    WIND = "wind"
    ARENA = "arena"


_ARENA_MITIGATES = {ReasonKind.RAIN, ReasonKind.WIND}


@dataclass(frozen=True)
class Reason:
    """One scoring reason with its ordering priority."""
    priority: ReasonPriority
    kind: ReasonKind
    text: str


@dataclass
class _Verdict:
    """Running score for a day; reasons accumulate in check order."""
    score: RideScore = RideScore.GREEN
    reasons: list[Reason] = field(default_factory=list)

    def flag(self, score: RideScore, kind: ReasonKind, priority: ReasonPriority, text: str) -> None:
        self.score = escalate(self.score, score)
        self.reasons.append(Reason(priority=priority, kind=kind, text=text))

    def ordered_texts(self) -> list[str]:
        # sorted() is stable, so check order survives inside a priority
        return [r.text for r in sorted(self.reasons, key=lambda r: r.priority)]


def escalate(current: RideScore | str, candidate: RideScore | str) -> RideScore:
    """Return the more severe of two scores (green < yellow < red)."""
    current, candidate = RideScore(current), RideScore(candidate)
    return max(current, candidate, key=lambda s: s.rank)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _num(value: float) -> str:
    """Render 105.0 as "105" and 72.5 as "72.5"."""
    return f"{value:g}"


def _inches(value: float) -> str:
    return _num(round(value, 2))


def _percent(fraction_or_pct: float) -> str:
    return f"{round(fraction_or_pct):d}"


def _hour_label(ts: dt.datetime | dt.time) -> str:
    """12-hour clock label, e.g. 2pm or 7:30am."""
    hour12 = ts.hour % 12 or 12
    suffix = "am" if ts.hour < 12 else "pm"
    if ts.minute:
        return f"{hour12}:{ts.minute:02d}{suffix}"
    return f"{hour12}{suffix}"


def _span(first: dt.datetime, last: dt.datetime) -> str:
    return f"{_hour_label(first)}–{_hour_label(last + _ONE_HOUR)}"


def _local_tz(tz_offset_minutes: int) -> dt.timezone:
    return dt.timezone(dt.timedelta(minutes=tz_offset_minutes))


def _to_local(ts: dt.datetime, tz: dt.timezone) -> dt.datetime:
    """Localize a UTC timestamp (naive values are taken as UTC)."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(tz)


# ---------------------------------------------------------------------------
# Daily checks
# ---------------------------------------------------------------------------


def _check_daily_rain(verdict: _Verdict, forecast: DailyForecast, settings: WeatherSettings,
                      day_index: int) -> None:
    """Coarse whole-day rain check used when no hourly breakdown applies."""
    amount = forecast.precipitation_inches
    chance = forecast.precipitation_chance
    if amount > 0 and amount >= settings.rain_cutoff_inches:
        verdict.flag(RideScore.RED, ReasonKind.RAIN, ReasonPriority.RAIN, f'Rain: {_inches(amount)}" expected')
    elif chance > RAIN_PROBABILITY_LIMIT:
        text = f"{_percent(chance)}% chance of rain"
        if amount > 0:
            text += f' ({_inches(amount)}" expected)'
        if day_index >= HOURLY_DAYS:
            text += " (timing unavailable)"
        verdict.flag(RideScore.YELLOW, ReasonKind.RAIN, ReasonPriority.RAIN, text)


def _check_cold(verdict: _Verdict, temp_f: float, settings: WeatherSettings) -> None:
    if temp_f <= settings.cold_alert_temp_f:
        verdict.flag(RideScore.RED, ReasonKind.COLD, ReasonPriority.CONDITIONS, f"Cold: {_num(temp_f)}°F daytime")
    elif temp_f <= settings.cold_alert_temp_f + 10:
        verdict.flag(RideScore.YELLOW, ReasonKind.COLD, ReasonPriority.CONDITIONS, f"Chilly: {_num(temp_f)}°F daytime")


def _check_heat(verdict: _Verdict, temp_f: float, settings: WeatherSettings) -> None:
    if temp_f >= settings.heat_alert_temp_f:
        verdict.flag(RideScore.RED, ReasonKind.HEAT, ReasonPriority.CONDITIONS, f"Heat: {_num(temp_f)}°F daytime")
    elif temp_f >= settings.heat_alert_temp_f - 10:
        verdict.flag(RideScore.YELLOW, ReasonKind.HEAT, ReasonPriority.CONDITIONS, f"Warm: {_num(temp_f)}°F daytime")


def _check_wind(verdict: _Verdict, wind_mph: float, settings: WeatherSettings) -> None:
    if wind_mph >= settings.wind_cutoff_mph:
        verdict.flag(RideScore.RED, ReasonKind.WIND, ReasonPriority.CONDITIONS, f"Wind: {_num(wind_mph)} mph")
    elif wind_mph >= settings.wind_cutoff_mph - 10:
        verdict.flag(RideScore.YELLOW, ReasonKind.WIND, ReasonPriority.CONDITIONS, f"Breezy: {_num(wind_mph)} mph")


def _apply_indoor_arena(verdict: _Verdict, settings: WeatherSettings) -> None:
    """Red caused only by rain/wind becomes yellow when riding indoors is possible."""
    if verdict.score != RideScore.RED or not settings.has_indoor_arena:
        return
    if verdict.reasons and all(r.kind in _ARENA_MITIGATES for r in verdict.reasons):
        verdict.score = RideScore.YELLOW
        verdict.reasons.append(Reason(ReasonPriority.ARENA, ReasonKind.ARENA, INDOOR_ARENA))


# ---------------------------------------------------------------------------
# Hour-aware rain checks
# ---------------------------------------------------------------------------

_LocalHour = tuple[dt.datetime, HourlyForecast]


def _hours_for_date(hourly: Iterable[HourlyForecast], day: dt.date, tz: dt.timezone) -> list[_LocalHour]:
    local = ((_to_local(h.hour, tz), h) for h in hourly)
    return sorted((pair for pair in local if pair[0].date() == day), key=lambda pair: pair[0])


def _daylight_bounds(forecast: DailyForecast, tz: dt.timezone) -> tuple[dt.datetime, dt.datetime]:
    """Daylight window; the sunrise hour counts as daylight."""
    if forecast.sunrise and forecast.sunset:
        sunrise = _to_local(forecast.sunrise, tz)
        return sunrise.replace(minute=0, second=0, microsecond=0), _to_local(forecast.sunset, tz)
    start, end = DEFAULT_DAYLIGHT
    return (dt.datetime.combine(forecast.date, start, tzinfo=tz),
            dt.datetime.combine(forecast.date, end, tzinfo=tz))


def _rain_blocks(rainy: Sequence[_LocalHour]) -> list[tuple[dt.datetime, dt.datetime]]:
    """Group rainy hours into contiguous (first, last) blocks."""
    blocks: list[tuple[dt.datetime, dt.datetime]] = []
    for ts, _hour in rainy:
        if blocks and ts - blocks[-1][1] == _ONE_HOUR:
            blocks[-1] = (blocks[-1][0], ts)
        else:
            blocks.append((ts, ts))
    return blocks


def summarize_rain(day_hours: Sequence[_LocalHour], daytime: Sequence[_LocalHour],
                   daylight_hours: int = 0) -> tuple[str | None, bool]:
    """
    Describe when it rains on a day.

    `daylight_hours` is the length of the whole daylight window; rows missing
    from the start of a partial day still count as dry hours.

    Returns (summary, overnight_only). Summary is None when no hour has rain.
    """
    rainy_all = [pair for pair in day_hours if pair[1].rain_inches > 0]
    if not rainy_all:
        return None, False

    rainy_day = [pair for pair in daytime if pair[1].rain_inches > 0]
    if not rainy_day:
        spans = ", ".join(_span(*b) for b in _rain_blocks(rainy_all))
        return f"Rain overnight {spans}", True

    if len(rainy_day) >= ALL_DAY_FRACTION * max(daylight_hours, len(daytime)):
        return "Rain all day", False

    blocks = _rain_blocks(rainy_day)
    if len(blocks) <= 2:
        return "Rain " + ", ".join(_span(*b) for b in blocks), False
    return "Scattered showers throughout the day", False


def _slot_overlaps(ts: dt.datetime, slot: RideSlot) -> bool:
    """True if the hour starting at ts intersects the slot's time range."""
    hour_start = ts.hour * 60 + ts.minute
    hour_end = hour_start + 60
    slot_start = slot.start_time.hour * 60 + slot.start_time.minute
    slot_end = slot.end_time.hour * 60 + slot.end_time.minute
    if slot_end <= slot_start:
        slot_end = 24 * 60
    return hour_start < slot_end and hour_end > slot_start


def _weekday_sunday_first(day: dt.date) -> int:
    return (day.weekday() + 1) % 7


def _check_ride_slots(verdict: _Verdict, forecast: DailyForecast, day_hours: Sequence[_LocalHour],
                      ride_slots: Sequence[RideSlot], settings: WeatherSettings) -> None:
    """Apply the rain thresholds to each of the rider's slots on this weekday."""
    weekday = _weekday_sunday_first(forecast.date)
    for slot in ride_slots:
        if slot.day_of_week != weekday:
            continue
        slot_hours = [h for ts, h in day_hours if _slot_overlaps(ts, slot)]
        if not slot_hours:
            continue
        amount = sum(h.rain_inches for h in slot_hours)
        max_pop = max(h.pop for h in slot_hours) * 100
        label = f"{_hour_label(slot.start_time)}–{_hour_label(slot.end_time)}"
        if amount > 0 and amount >= settings.rain_cutoff_inches:
            verdict.flag(RideScore.RED, ReasonKind.RAIN, ReasonPriority.RIDE_SLOT,
                         f'Rain during your {label} ride ({_inches(amount)}")')
        elif max_pop > RAIN_PROBABILITY_LIMIT:
            verdict.flag(RideScore.YELLOW, ReasonKind.RAIN, ReasonPriority.RIDE_SLOT,
                         f"{_percent(max_pop)}% chance of rain during your {label} ride")


def _check_hourly_rain(verdict: _Verdict, notes: list[str], forecast: DailyForecast,
                       day_hours: Sequence[_LocalHour], ride_slots: Sequence[RideSlot],
                       settings: WeatherSettings, tz: dt.timezone) -> None:
    """Daylight-windowed rain check that replaces the coarse daily one."""
    start, end = _daylight_bounds(forecast, tz)
    daytime = [pair for pair in day_hours if start <= pair[0] < end]
    daylight_hours = math.ceil((end - start) / _ONE_HOUR)
    summary, overnight_only = summarize_rain(day_hours, daytime, daylight_hours)

    total = sum(h.rain_inches for _ts, h in daytime)
    max_pop = max((h.pop for _ts, h in daytime), default=0.0) * 100

    if total > 0 and total >= settings.rain_cutoff_inches:
        verdict.flag(RideScore.RED, ReasonKind.RAIN, ReasonPriority.RAIN, summary or f'Rain: {_inches(total)}" expected')
    elif max_pop > RAIN_PROBABILITY_LIMIT:
        text = f"{_percent(max_pop)}% chance of rain during daylight"
        if summary and not overnight_only:
            text += f" ({summary})"
        verdict.flag(RideScore.YELLOW, ReasonKind.RAIN, ReasonPriority.RAIN, text)

    _check_ride_slots(verdict, forecast, day_hours, ride_slots, settings)

    if total == 0 and overnight_only:
        notes.append(summary)


# ---------------------------------------------------------------------------
# Footing and blanket overlays
# ---------------------------------------------------------------------------


def _apply_footing(verdict: _Verdict, moisture: MoistureEstimate, forecasts: Sequence[DailyForecast],
                   day_index: int, settings: WeatherSettings) -> MoistureEstimate:
    """Escalate on projected footing moisture; returns the projection used."""
    projection = estimate_future_moisture(moisture.current_moisture, forecasts, day_index, settings)
    level = projection.moisture

    if projection.rain_inches > 0:
        context = "forecast rain"
    elif day_index == 0:
        context = "recent rain"
    else:
        context = "accumulated moisture"

    if projection.hours_to_dry >= NEVER_DRIES_HOURS:
        drying = "not drying at current rates"
    else:
        drying = f"~{projection.hours_to_dry}h to dry"

    if level > 0 and level >= settings.footing_danger_inches:
        verdict.flag(RideScore.RED, ReasonKind.FOOTING, ReasonPriority.FOOTING,
                     f'Unsafe footing: {_inches(level)}" moisture from {context}, {drying}')
    elif level > 0 and level >= settings.footing_caution_inches:
        verdict.flag(RideScore.YELLOW, ReasonKind.FOOTING, ReasonPriority.FOOTING,
                     f'Soft footing: {_inches(level)}" moisture from {context}, {drying}')

    return MoistureEstimate(current_moisture=level, hours_to_dry=projection.hours_to_dry)


def overnight_low(forecast: DailyForecast, hourly: Iterable[HourlyForecast] | None,
                  tz: dt.timezone) -> tuple[float, bool]:
    """Lowest temperature from 8pm on the date to 9am the next day.

    Returns (low, from_hourly); falls back to the daily low without hourly data.
    """
    start = dt.datetime.combine(forecast.date, BLANKET_WINDOW[0], tzinfo=tz)
    end = dt.datetime.combine(forecast.date + dt.timedelta(days=1), BLANKET_WINDOW[1], tzinfo=tz)
    temps = [
        h.temp_f for h in (hourly or [])
        if h.temp_f is not None and start <= _to_local(h.hour, tz) <= end
    ]
    if temps:
        return min(temps), True
    return forecast.low_f, False


def _blanket_note(forecast: DailyForecast, hourly: Iterable[HourlyForecast] | None,
                  settings: WeatherSettings, tz: dt.timezone) -> str | None:
    low, from_hourly = overnight_low(forecast, hourly, tz)
    if low > settings.cold_alert_temp_f:
        return None
    if from_hourly:
        return f"Blanket advisory: overnight low near {_num(low)}°F (8pm–9am)"
    return f"Blanket advisory: low of {_num(low)}°F forecast"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def score_day(
    forecast: DailyForecast,
    settings: WeatherSettings,
    *,
    day_index: int = 0,
    forecasts: Sequence[DailyForecast] | None = None,
    moisture: MoistureEstimate | None = None,
    hourly: Sequence[HourlyForecast] | None = None,
    ride_slots: Sequence[RideSlot] | None = None,
    tz_offset_minutes: int = 0,
) -> ScoredDay:
    """
    Score a single forecast day.

    `forecasts` is the full forecast array `day_index` points into (used for
    moisture projection); `moisture` is the current estimate, and the footing
    overlay is skipped when it is None.
    """
    tz = _local_tz(tz_offset_minutes)
    verdict = _Verdict()
    notes: list[str] = []

    day_hours: list[_LocalHour] = []
    if hourly and day_index < HOURLY_DAYS:
        day_hours = _hours_for_date(hourly, forecast.date, tz)

    if day_hours:
        _check_hourly_rain(verdict, notes, forecast, day_hours, ride_slots or [], settings, tz)
    else:
        _check_daily_rain(verdict, forecast, settings, day_index)

    temp_f = forecast.daytime_temp_f
    _check_cold(verdict, temp_f, settings)
    _check_heat(verdict, temp_f, settings)
    _check_wind(verdict, forecast.wind_speed_mph, settings)
    _apply_indoor_arena(verdict, settings)

    projected: MoistureEstimate | None = None
    if moisture is not None:
        series = list(forecasts) if forecasts else [forecast]
        index = day_index if forecasts else 0
        projected = _apply_footing(verdict, moisture, series, index, settings)
        if verdict.score == RideScore.RED:
            # footing red cannot be ridden around indoors
            verdict.reasons = [r for r in verdict.reasons if r.kind != ReasonKind.ARENA]

    reasons = verdict.ordered_texts() or [GOOD_CONDITIONS]

    note = _blanket_note(forecast, hourly, settings, tz)
    if note:
        notes.append(note)

    logger.debug(
        "Scored day",
        extra={"date": forecast.date.isoformat(), "score": verdict.score.value, "reasons": reasons},
    )
    return ScoredDay(
        date=forecast.date,
        score=verdict.score,
        reasons=reasons,
        notes=notes,
        forecast=forecast,
        moisture=projected,
    )


def score_days(
    forecasts: Sequence[DailyForecast],
    settings: WeatherSettings,
    recent_rain: Sequence[HourlyRain] | None = None,
    current_weather: CurrentWeather | None = None,
    hourly: Sequence[HourlyForecast] | None = None,
    ride_slots: Sequence[RideSlot] | None = None,
    tz_offset_minutes: int = 0,
) -> list[ScoredDay]:
    """Score every forecast day; the footing overlay needs both rain history and current weather."""
    forecasts = list(forecasts)
    moisture: MoistureEstimate | None = None
    if forecasts and recent_rain and current_weather is not None:
        moisture = estimate_moisture(recent_rain, forecasts[0], current_weather,
                                     settings.footing_dry_hours_per_inch)
        logger.debug(
            "Estimated footing moisture",
            extra={"moisture": moisture.current_moisture, "hours_to_dry": moisture.hours_to_dry},
        )
    else:
        logger.info("Recent rain or current weather unavailable; skipping footing overlay")

    return [
        score_day(
            f,
            settings,
            day_index=i,
            forecasts=forecasts,
            moisture=moisture,
            hourly=hourly,
            ride_slots=ride_slots,
            tz_offset_minutes=tz_offset_minutes,
        )
        for i, f in enumerate(forecasts)
    ]

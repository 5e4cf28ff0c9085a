"""Right-now hazard alerts derived from current conditions."""

from __future__ import annotations

from typing import List

from ridecast.domain import AlertType, CurrentWeather, RideScore, WeatherAlert, WeatherSettings


def _num(value: float) -> str:
    return f"{value:g}"


def get_alerts(current: CurrentWeather, settings: WeatherSettings) -> List[WeatherAlert]:
    """
    Check current weather against the farm thresholds.

    Order is fixed: cold/blanket, heat, wind, rain. Cold and blanket are
    mutually exclusive; the rest are independent.
    """
    alerts: List[WeatherAlert] = []
    temp = current.temperature_f

    if temp <= settings.cold_alert_temp_f:
        alerts.append(WeatherAlert(
            type=AlertType.COLD,
            message=f"Current temp {_num(temp)}°F: consider blanketing",
            severity=RideScore.RED,
        ))
    elif temp <= settings.cold_alert_temp_f + 10:
        alerts.append(WeatherAlert(
            type=AlertType.BLANKET,
            message=f"Temp dropping to {_num(temp)}°F: check blanket needs",
            severity=RideScore.YELLOW,
        ))

    if temp >= settings.heat_alert_temp_f:
        alerts.append(WeatherAlert(
            type=AlertType.HEAT,
            message=f"Current temp {_num(temp)}°F: limit exercise and ensure water access",
            severity=RideScore.RED,
        ))

    if current.wind_speed_mph >= settings.wind_cutoff_mph:
        alerts.append(WeatherAlert(
            type=AlertType.WIND,
            message=f"Wind at {_num(current.wind_speed_mph)} mph: secure loose items",
            severity=RideScore.RED,
        ))

    if current.precipitation_inches > 0:
        alerts.append(WeatherAlert(
            type=AlertType.RAIN,
            message="Active precipitation: footing may be affected",
            severity=RideScore.YELLOW,
        ))

    return alerts

from ridecast.alerts import get_alerts
from ridecast.domain import AlertType, CurrentWeather, RideScore, WeatherSettings


def current(**overrides) -> CurrentWeather:
    base = {"temperature_f": 60.0, "wind_speed_mph": 5.0, "precipitation_inches": 0.0}
    base.update(overrides)
    return CurrentWeather(**base)


def test_pleasant_conditions_have_no_alerts():
    assert get_alerts(current(), WeatherSettings()) == []


def test_cold_alert_is_red_and_suppresses_blanket():
    alerts = get_alerts(current(temperature_f=28.0), WeatherSettings())
    assert [a.type for a in alerts] == [AlertType.COLD]
    assert alerts[0].severity == RideScore.RED
    assert alerts[0].message == "Current temp 28°F: consider blanketing"


def test_blanket_alert_within_ten_degrees_of_cold_threshold():
    alerts = get_alerts(current(temperature_f=40.0), WeatherSettings())
    assert [a.type for a in alerts] == [AlertType.BLANKET]
    assert alerts[0].severity == RideScore.YELLOW


def test_heat_wind_and_rain_are_independent():
    alerts = get_alerts(
        current(temperature_f=99.0, wind_speed_mph=30.0, precipitation_inches=0.02),
        WeatherSettings(),
    )
    assert [a.type for a in alerts] == [AlertType.HEAT, AlertType.WIND, AlertType.RAIN]
    assert [a.severity for a in alerts] == [RideScore.RED, RideScore.RED, RideScore.YELLOW]
    assert alerts[1].message == "Wind at 30 mph: secure loose items"


def test_thresholds_come_from_settings():
    settings = WeatherSettings(cold_alert_temp_f=20.0, heat_alert_temp_f=80.0)
    alerts = get_alerts(current(temperature_f=82.0), settings)
    assert [a.type for a in alerts] == [AlertType.HEAT]

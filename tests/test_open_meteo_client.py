import datetime as dt
import unittest

import requests

from ridecast.data_sources import open_meteo_client
from ridecast.data_sources.base import ForecastProviderError

UTC = dt.timezone.utc
NOW = dt.datetime(2026, 6, 1, 17, 20, tzinfo=UTC)
THIS_HOUR = dt.datetime(2026, 6, 1, 17, tzinfo=UTC)
OFFSET = -18000  # UTC-5


def _unix(ts: dt.datetime) -> int:
    return int(ts.timestamp())


class DummyResp:
    def __init__(self, payload, error=None):
        self._payload = payload
        self._error = error

    def raise_for_status(self):
        if self._error:
            raise self._error

    def json(self):
        return self._payload


def _make_payload():
    hours = [THIS_HOUR + dt.timedelta(hours=k) for k in range(-3, 3)]
    local_midnight = dt.datetime(2026, 6, 1, 5, tzinfo=UTC)
    return {
        "utc_offset_seconds": OFFSET,
        "current": {
            "time": _unix(NOW),
            "temperature_2m": 68.5,
            "apparent_temperature": 67.0,
            "relative_humidity_2m": 55,
            "precipitation": 0.02,
            "weather_code": 61,
            "wind_speed_10m": 9.0,
            "wind_gusts_10m": 15.0,
            "uv_index": 4.2,
        },
        "current_units": {"temperature_2m": "°F", "precipitation": "inch", "wind_speed_10m": "mp/h"},
        "hourly": {
            "time": [_unix(h) for h in hours],
            "temperature_2m": [60.0, 61.0, 62.0, 63.0, 64.0, 65.0],
            "precipitation": [0.1, 0.0, 0.2, 0.05, 0.0, 0.3],
            "precipitation_probability": [90, 20, 80, 70, 10, 95],
        },
        "hourly_units": {"temperature_2m": "°F", "precipitation": "inch", "precipitation_probability": "%"},
        "daily": {
            "time": [_unix(local_midnight), _unix(local_midnight + dt.timedelta(days=1))],
            "weather_code": [61, 0],
            "temperature_2m_max": [72.0, 80.0],
            "temperature_2m_min": [55.0, 58.0],
            "precipitation_sum": [0.4, 0.0],
            "precipitation_probability_max": [90, 5],
            "wind_speed_10m_max": [12.0, 6.0],
            "cloud_cover_mean": [85, 10],
            "relative_humidity_2m_mean": [70, 50],
            "sunrise": [_unix(dt.datetime(2026, 6, 1, 10, 30, tzinfo=UTC)), _unix(dt.datetime(2026, 6, 2, 10, 30, tzinfo=UTC))],
            "sunset": [_unix(dt.datetime(2026, 6, 2, 1, 30, tzinfo=UTC)), _unix(dt.datetime(2026, 6, 3, 1, 30, tzinfo=UTC))],
        },
        "daily_units": {"temperature_2m_max": "°F", "precipitation_sum": "inch"},
    }


class TestOpenMeteoClient(unittest.TestCase):
    def setUp(self):
        self._orig_get = open_meteo_client.session.get
        self.calls = []

    def tearDown(self):
        open_meteo_client.session.get = self._orig_get

    def _serve(self, resp):
        def fake_get(url, params=None, timeout=None):
            self.calls.append({"url": url, "params": params, "timeout": timeout})
            return resp

        open_meteo_client.session.get = fake_get

    def test_fetch_forecast_requests_imperial_unixtime(self):
        self._serve(DummyResp(_make_payload()))
        open_meteo_client.fetch_forecast(40.1, -88.2, forecast_days=8, past_hours=2, timeout=3.0)
        call = self.calls[0]
        self.assertEqual(call["url"], open_meteo_client.OPEN_METEO_WEATHER_URL)
        self.assertEqual(call["timeout"], 3.0)
        params = call["params"]
        self.assertEqual(params["precipitation_unit"], "inch")
        self.assertEqual(params["temperature_unit"], "fahrenheit")
        self.assertEqual(params["timeformat"], "unixtime")
        self.assertEqual(params["past_hours"], 2)
        self.assertIn("precipitation_probability_max", params["daily"])

    def test_fetch_forecast_parses_bundle(self):
        self._serve(DummyResp(_make_payload()))
        forecast = open_meteo_client.fetch_forecast(40.1, -88.2, past_hours=2, hourly_hours=48)

        self.assertEqual(forecast.utc_offset_seconds, OFFSET)
        self.assertEqual(forecast.current.temperature_f, 68.5)
        self.assertEqual(forecast.current.condition, "Rain")
        self.assertEqual(forecast.current.precipitation_inches, 0.02)
        self.assertEqual(forecast.current.precipitation_chance, 70.0)

        # two hours before the current hour are history; the 3-hour-old row is outside the window
        self.assertEqual([r.hour for r in forecast.recent_rain],
                         [THIS_HOUR - dt.timedelta(hours=2), THIS_HOUR - dt.timedelta(hours=1)])
        self.assertEqual([r.rain_inches for r in forecast.recent_rain], [0.0, 0.2])

        self.assertEqual(len(forecast.hourly), 3)
        self.assertEqual(forecast.hourly[0].hour, THIS_HOUR)
        self.assertAlmostEqual(forecast.hourly[2].pop, 0.95)

        self.assertEqual([d.date for d in forecast.daily], [dt.date(2026, 6, 1), dt.date(2026, 6, 2)])
        first = forecast.daily[0]
        self.assertEqual(first.high_f, 72.0)
        self.assertEqual(first.precipitation_chance, 90.0)
        self.assertEqual(first.precipitation_inches, 0.4)
        self.assertEqual(first.clouds_pct, 85.0)
        self.assertEqual(first.sunrise, dt.datetime(2026, 6, 1, 10, 30, tzinfo=UTC))

    def test_http_error_raises_provider_error(self):
        self._serve(DummyResp({}, error=requests.HTTPError("500 Server Error")))
        with self.assertRaises(ForecastProviderError):
            open_meteo_client.fetch_forecast(40.1, -88.2)

    def test_missing_sections_raise_provider_error(self):
        payload = _make_payload()
        del payload["daily"]
        self._serve(DummyResp(payload))
        with self.assertRaises(ForecastProviderError):
            open_meteo_client.fetch_forecast(40.1, -88.2)

    def test_warns_on_unexpected_units(self):
        with self.assertLogs(open_meteo_client.logger.logger, level="WARNING") as cm:
            open_meteo_client._warn_on_unexpected_units({"temperature_2m": "K"}, context="test")
        self.assertTrue(any("Unexpected Open-Meteo unit" in line for line in cm.output))


if __name__ == "__main__":
    unittest.main()

import datetime as dt
import unittest

from fastapi.testclient import TestClient

from ridecast import forecast_service, store_manager
from ridecast.data_sources import CallableForecastDataSource, ForecastProviderError
from ridecast.domain import (
    CurrentWeather,
    DailyForecast,
    HourlyRain,
    MoistureEstimate,
    RideScore,
    ScoredDay,
    WeatherForecast,
    WeatherSettingsUpdate,
)
from ridecast.main import app as fastapi_app

UTC = dt.timezone.utc
TODAY = dt.date.today()


def _mock_forecast(temperature_f: float = 70.0, precipitation: float = 0.0) -> WeatherForecast:
    return WeatherForecast(
        current=CurrentWeather(
            temperature_f=temperature_f,
            wind_speed_mph=5.0,
            precipitation_inches=precipitation,
            as_of=dt.datetime.now(UTC),
        ),
        daily=[
            DailyForecast(date=TODAY, high_f=72.0, low_f=55.0, clouds_pct=20.0, wind_speed_mph=6.0),
            DailyForecast(date=TODAY + dt.timedelta(days=1), high_f=68.0, low_f=50.0, clouds_pct=95.0,
                          precipitation_chance=90.0, precipitation_inches=0.8),
        ],
        recent_rain=[HourlyRain(hour=dt.datetime.now(UTC).replace(minute=0, second=0, microsecond=0), rain_inches=0.0)],
    )


def _scored(date: dt.date, score: RideScore) -> ScoredDay:
    return ScoredDay(
        date=date,
        score=score,
        reasons=["Rain: 0.4\" expected"],
        forecast=DailyForecast(date=date, high_f=60.0, low_f=45.0),
    )


class TestApi(unittest.TestCase):
    def setUp(self):
        import ridecast.api as api_mod

        self.api_mod = api_mod
        self._orig_data_source = api_mod.DATA_SOURCE
        store_manager.use_in_memory_stores_for_tests()
        forecast_service.use_in_memory_cache_for_tests()
        self.fetches = []
        self.forecast = _mock_forecast()
        api_mod.DATA_SOURCE = CallableForecastDataSource(forecast=self._fake_fetch)
        self.client = TestClient(fastapi_app)

    def tearDown(self):
        self.api_mod.DATA_SOURCE = self._orig_data_source

    def _fake_fetch(self, latitude, longitude, **kwargs):
        self.fetches.append((latitude, longitude, kwargs))
        return self.forecast

    def _set_location(self):
        resp = self.client.put("/v1/weather/settings", json={"location_lat": 40.1, "location_lng": -88.2})
        self.assertEqual(resp.status_code, 200)

    # Settings ---------------------------------------------------------------

    def test_settings_defaults(self):
        resp = self.client.get("/v1/weather/settings")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertIsNone(body["location_lat"])
        self.assertEqual(body["rain_cutoff_inches"], 0.25)
        self.assertEqual(body["footing_dry_hours_per_inch"], 60.0)
        self.assertTrue(body["auto_tune_drying_rate"])

    def test_settings_update_is_partial_and_clamped(self):
        resp = self.client.put(
            "/v1/weather/settings",
            json={"wind_cutoff_mph": 18, "footing_dry_hours_per_inch": 400},
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["wind_cutoff_mph"], 18.0)
        self.assertEqual(body["footing_dry_hours_per_inch"], 120.0)
        self.assertEqual(body["rain_cutoff_inches"], 0.25)

        again = self.client.get("/v1/weather/settings").json()
        self.assertEqual(again["wind_cutoff_mph"], 18.0)

    def test_settings_update_rejects_invalid_values(self):
        resp = self.client.put("/v1/weather/settings", json={"rain_cutoff_inches": -1})
        self.assertEqual(resp.status_code, 422)

    # Forecast / ride days ---------------------------------------------------

    def test_ride_days_require_location(self):
        resp = self.client.get("/v1/weather/ride-days")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Location not configured")
        self.assertEqual(self.fetches, [])

    def test_ride_days_scores_and_snapshots(self):
        self._set_location()
        resp = self.client.get("/v1/weather/ride-days")
        self.assertEqual(resp.status_code, 200)
        days = resp.json()
        self.assertEqual([d["date"] for d in days], [TODAY.isoformat(), (TODAY + dt.timedelta(days=1)).isoformat()])
        self.assertEqual(days[0]["score"], "green")
        self.assertEqual(days[1]["score"], "red")

        snap = store_manager.snapshot_store().get_snapshot(TODAY + dt.timedelta(days=1))
        self.assertIsNotNone(snap)
        self.assertEqual(snap.score, RideScore.RED)
        self.assertEqual(self.fetches[0][:2], (40.1, -88.2))
        self.assertEqual(self.fetches[0][2]["past_hours"], 48)

    def test_forecast_is_cached_between_requests(self):
        self._set_location()
        self.client.get("/v1/weather/forecast")
        self.client.get("/v1/weather/ride-days")
        self.assertEqual(len(self.fetches), 1)

    def test_provider_failure_maps_to_503(self):
        def broken(*_args, **_kwargs):
            raise ForecastProviderError("upstream 500")

        self.api_mod.DATA_SOURCE = CallableForecastDataSource(forecast=broken)
        self._set_location()
        resp = self.client.get("/v1/weather/ride-days")
        self.assertEqual(resp.status_code, 503)

    def test_alerts(self):
        self.forecast = _mock_forecast(temperature_f=38.0, precipitation=0.05)
        self._set_location()
        resp = self.client.get("/v1/weather/alerts")
        self.assertEqual(resp.status_code, 200)
        alerts = resp.json()
        self.assertEqual([a["type"] for a in alerts], ["blanket", "rain"])
        self.assertEqual(alerts[0]["severity"], "yellow")

    # Footing feedback -------------------------------------------------------

    def test_feedback_lookup_is_null_before_submission(self):
        resp = self.client.get("/v1/footing-feedback", params={"date": TODAY.isoformat()})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"feedback": None})

    def test_submit_feedback_copies_prediction(self):
        store_manager.snapshot_store().upsert_snapshot(
            TODAY, _scored(TODAY, RideScore.YELLOW), MoistureEstimate(current_moisture=0.2, hours_to_dry=8), 60.0
        )
        resp = self.client.post(
            "/v1/footing-feedback",
            json={"date": TODAY.isoformat(), "actual_footing": "soft", "ride_session_id": "ride-7"},
        )
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body["predicted_score"], "yellow")
        self.assertEqual(body["predicted_moisture"], 0.2)
        self.assertEqual(body["ride_session_id"], "ride-7")

        lookup = self.client.get("/v1/footing-feedback", params={"date": TODAY.isoformat()}).json()
        self.assertEqual(lookup["feedback"]["actual_footing"], "soft")

    def test_submit_feedback_rejects_unknown_rating(self):
        resp = self.client.post("/v1/footing-feedback", json={"date": TODAY.isoformat(), "actual_footing": "muddy"})
        self.assertEqual(resp.status_code, 422)

    def test_feedback_triggers_auto_tune(self):
        store_manager.settings_store().update_settings(
            WeatherSettingsUpdate(last_tuned_at=dt.datetime.now(UTC) - dt.timedelta(days=2))
        )
        for offset in range(5):
            day = TODAY - dt.timedelta(days=offset)
            store_manager.snapshot_store().upsert_snapshot(day, _scored(day, RideScore.RED), None, 60.0)
            self.client.post("/v1/footing-feedback", json={"date": day.isoformat(), "actual_footing": "good"})

        settings = self.client.get("/v1/weather/settings").json()
        self.assertEqual(settings["footing_dry_hours_per_inch"], 55.0)

    def test_accuracy(self):
        for offset, footing in enumerate(["good", "good", "soft", "unsafe", "unsafe"]):
            day = TODAY - dt.timedelta(days=offset)
            store_manager.snapshot_store().upsert_snapshot(day, _scored(day, RideScore.RED), None, 60.0)
            store_manager.feedback_store().create_feedback(day, footing)
        resp = self.client.get("/v1/footing-feedback/accuracy")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.json(),
            {"total": 5, "correct": 2, "too_conservative": 3, "too_aggressive": 0, "accuracy_pct": 40},
        )

    def test_manual_tune_reports_reason(self):
        resp = self.client.post("/v1/footing-feedback/tune")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertFalse(body["adjusted"])
        self.assertEqual(body["reason"], "need 5 feedbacks, have 0")

    # Ride slots -------------------------------------------------------------

    def test_ride_slots(self):
        resp = self.client.post(
            "/v1/ride-slots",
            json={"day_of_week": 6, "start_time": "08:30:00", "end_time": "10:00:00"},
        )
        self.assertEqual(resp.status_code, 201)
        self.assertIsNotNone(resp.json()["id"])

        listed = self.client.get("/v1/ride-slots").json()
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0]["day_of_week"], 6)
        self.assertEqual(listed[0]["start_time"], "08:30:00")

    def test_ride_slot_day_out_of_range(self):
        resp = self.client.post(
            "/v1/ride-slots",
            json={"day_of_week": 7, "start_time": "08:30:00", "end_time": "10:00:00"},
        )
        self.assertEqual(resp.status_code, 422)


if __name__ == "__main__":
    unittest.main()

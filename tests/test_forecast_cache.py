import datetime as dt
import unittest

from ridecast.domain import CurrentWeather, DailyForecast, HourlyRain, WeatherForecast
from ridecast.forecast_cache import InMemoryForecastCache, RedisForecastCache, cache_key

UTC = dt.timezone.utc


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.expires = {}

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.expires[key] = ttl

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)
        self.expires.pop(key, None)

    def scan_iter(self, pattern):
        prefix = pattern.rstrip("*")
        return [k for k in list(self.store.keys()) if k.startswith(prefix)]


class BrokenRedis(FakeRedis):
    def get(self, key):
        raise ConnectionError("redis down")

    def setex(self, key, ttl, value):
        raise ConnectionError("redis down")


def _forecast() -> WeatherForecast:
    return WeatherForecast(
        current=CurrentWeather(temperature_f=61.0, wind_speed_mph=4.0, as_of=dt.datetime(2026, 6, 1, 12, tzinfo=UTC)),
        daily=[DailyForecast(date=dt.date(2026, 6, 1), high_f=70.0, low_f=50.0)],
        recent_rain=[HourlyRain(hour=dt.datetime(2026, 6, 1, 10, tzinfo=UTC), rain_inches=0.1)],
        utc_offset_seconds=-18000,
    )


class TestCacheKey(unittest.TestCase):
    def test_key_uses_coordinates(self):
        self.assertEqual(cache_key(40.1, -88.2), "forecast:40.1,-88.2")


class TestInMemoryForecastCache(unittest.TestCase):
    def test_set_and_get(self):
        cache = InMemoryForecastCache(ttl_seconds=900)
        forecast = _forecast()
        cache.set(40.1, -88.2, forecast)
        self.assertEqual(cache.get(40.1, -88.2), forecast)
        self.assertIsNone(cache.get(41.0, -88.2))

    def test_expired_entry_is_evicted(self):
        cache = InMemoryForecastCache(ttl_seconds=-1)
        cache.set(40.1, -88.2, _forecast())
        self.assertIsNone(cache.get(40.1, -88.2))

    def test_clear(self):
        cache = InMemoryForecastCache()
        cache.set(40.1, -88.2, _forecast())
        cache.clear()
        self.assertIsNone(cache.get(40.1, -88.2))


class TestRedisForecastCache(unittest.TestCase):
    def test_round_trip_uses_setex_ttl(self):
        client = FakeRedis()
        cache = RedisForecastCache(client, ttl_seconds=900)
        forecast = _forecast()
        cache.set(40.1, -88.2, forecast)
        self.assertEqual(client.expires["forecast:40.1,-88.2"], 900)
        self.assertEqual(cache.get(40.1, -88.2), forecast)

    def test_corrupt_payload_is_a_miss(self):
        client = FakeRedis()
        client.store["forecast:40.1,-88.2"] = b"not json"
        self.assertIsNone(RedisForecastCache(client).get(40.1, -88.2))

    def test_redis_errors_degrade_to_miss(self):
        cache = RedisForecastCache(BrokenRedis())
        cache.set(40.1, -88.2, _forecast())
        self.assertIsNone(cache.get(40.1, -88.2))

    def test_clear_removes_prefixed_keys(self):
        client = FakeRedis()
        client.store["other"] = b"keep"
        cache = RedisForecastCache(client)
        cache.set(40.1, -88.2, _forecast())
        cache.clear()
        self.assertEqual(list(client.store), ["other"])


if __name__ == "__main__":
    unittest.main()

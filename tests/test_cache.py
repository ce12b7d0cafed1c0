import unittest
from unittest.mock import patch

from data_sources import cache


class TestCachedDecorator(unittest.TestCase):
    def setUp(self):
        cache.clear_cache()

    def tearDown(self):
        cache.clear_cache()

    def test_hit_within_ttl(self):
        calls = []

        @cache.cached(ttl_seconds=60, key_prefix="weather")
        def fetch(x):
            calls.append(x)
            return {"value": x}

        self.assertEqual(fetch(1), {"value": 1})
        self.assertEqual(fetch(1), {"value": 1})
        self.assertEqual(calls, [1])

    def test_none_is_not_cached(self):
        calls = []

        @cache.cached(ttl_seconds=60, key_prefix="places")
        def fetch():
            calls.append(1)
            return None

        self.assertIsNone(fetch())
        self.assertIsNone(fetch())
        self.assertEqual(len(calls), 2)

    def test_cache_skip_marker_is_removed_and_not_cached(self):
        calls = []

        @cache.cached(ttl_seconds=60, key_prefix="places")
        def fetch():
            calls.append(1)
            return {"photos": [], "_cache_skip": True}

        self.assertEqual(fetch(), {"photos": []})
        fetch()
        self.assertEqual(len(calls), 2)

    def test_expired_entry_refetches(self):
        values = iter([{"v": 1}, {"v": 2}])

        @cache.cached(ttl_seconds=10, key_prefix="autocomplete")
        def fetch():
            return next(values)

        with patch("data_sources.cache.time.time", return_value=1000.0):
            self.assertEqual(fetch(), {"v": 1})
        with patch("data_sources.cache.time.time", return_value=1011.0):
            self.assertEqual(fetch(), {"v": 2})

    def test_stale_entry_served_when_refetch_fails(self):
        values = iter([{"v": 1}, None])

        @cache.cached(ttl_seconds=10, key_prefix="geocoding")
        def fetch():
            return next(values)

        with patch("data_sources.cache.time.time", return_value=1000.0):
            fetch()
        with patch("data_sources.cache.time.time", return_value=2000.0):
            result = fetch()
        self.assertEqual(result, {"v": 1, "_stale_cache": True})

    def test_key_func_groups_calls(self):
        calls = []

        @cache.cached(ttl_seconds=60, key_prefix="geocoding",
                      key_func=lambda lat, lon: (round(lat, 2), round(lon, 2)))
        def fetch(lat, lon):
            calls.append((lat, lon))
            return {"lat": lat}

        fetch(1.001, 2.001)
        fetch(1.002, 2.002)
        self.assertEqual(len(calls), 1)

    def test_clear_by_type_and_stats(self):
        @cache.cached(ttl_seconds=60, key_prefix="weather")
        def weather(x):
            return {"w": x}

        @cache.cached(ttl_seconds=60, key_prefix="places")
        def places(x):
            return {"p": x}

        weather(1)
        weather(2)
        places(1)

        stats = cache.get_cache_stats()
        self.assertEqual(stats["entries_by_type"], {"weather": 2, "places": 1})
        self.assertFalse(stats["redis_available"])

        self.assertEqual(cache.clear_cache("weather"), 2)
        self.assertEqual(cache.get_cache_stats()["total_entries"], 1)

    def test_cleanup_expired_uses_type_ttl(self):
        @cache.cached(ttl_seconds=600, key_prefix="weather")
        def weather():
            return {"w": 1}

        with patch("data_sources.cache.time.time", return_value=1000.0):
            weather()
        with patch("data_sources.cache.time.time", return_value=1000.0 + 601):
            self.assertEqual(cache.cleanup_expired_cache(), 1)


if __name__ == "__main__":
    unittest.main()

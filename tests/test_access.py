import unittest

from roster_mapper.access import is_access_code_valid
from roster_mapper.ratelimit import SlidingWindowLimiter, client_key


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class AccessCodeTests(unittest.TestCase):
    def test_open_when_unconfigured(self):
        self.assertTrue(is_access_code_valid("", None))
        self.assertTrue(is_access_code_valid(None, "anything"))

    def test_exact_match_required(self):
        self.assertTrue(is_access_code_valid("open-sesame", "open-sesame"))
        self.assertFalse(is_access_code_valid("open-sesame", "open-sesam"))
        self.assertFalse(is_access_code_valid("open-sesame", ""))


class RateLimitTests(unittest.TestCase):
    def test_window_slides(self):
        clock = FakeClock()
        limiter = SlidingWindowLimiter(60, 2, clock=clock)
        self.assertTrue(limiter.hit("1.2.3.4").ok)
        clock.now += 10
        self.assertTrue(limiter.hit("1.2.3.4").ok)

        blocked = limiter.hit("1.2.3.4")
        self.assertFalse(blocked.ok)
        self.assertEqual(blocked.retry_after, 50)
        self.assertTrue(limiter.hit("5.6.7.8").ok)

        clock.now += 50
        self.assertTrue(limiter.hit("1.2.3.4").ok)

    def test_reset_clears_counts(self):
        limiter = SlidingWindowLimiter(60, 1, clock=FakeClock())
        limiter.hit("a")
        self.assertFalse(limiter.hit("a").ok)
        limiter.reset()
        self.assertTrue(limiter.hit("a").ok)

    def test_invalid_limits(self):
        with self.assertRaises(ValueError):
            SlidingWindowLimiter(0, 5)

    def test_client_key_prefers_forwarded_for(self):
        self.assertEqual(client_key({"X-Forwarded-For": "9.9.9.9, 10.0.0.1", "X-Real-IP": "1.1.1.1"}), "9.9.9.9")
        self.assertEqual(client_key({"x-real-ip": "1.1.1.1"}), "1.1.1.1")
        self.assertEqual(client_key({"Fly-Client-IP": "2.2.2.2"}), "2.2.2.2")
        self.assertEqual(client_key({}), "unknown")


if __name__ == "__main__":
    unittest.main()

"""Tests for the BackoffStrategy class."""

import unittest

from catalog_crawler.backoff import BackoffStrategy


class TestBackoffStrategy(unittest.TestCase):
    """Verify exponential backoff produces correct sleep durations."""

    def test_first_attempt_returns_base(self):
        """First retry should sleep approximately the base duration."""
        backoff = BackoffStrategy(base_seconds=1.0, max_seconds=30.0)
        sleep = backoff.get_sleep(attempt=1)
        # base * 2^0 = 1.0, plus up to 10% jitter
        self.assertGreaterEqual(sleep, 1.0)
        self.assertLessEqual(sleep, 1.1)

    def test_exponential_growth(self):
        """Each subsequent attempt should double the sleep time."""
        backoff = BackoffStrategy(base_seconds=0.5, max_seconds=100.0, jitter_ratio=0.0)
        self.assertEqual(
            [backoff.get_sleep(attempt=n) for n in (1, 2, 3)],
            [0.5, 1.0, 2.0],
        )

    def test_respects_max_seconds(self):
        """Sleep duration should never exceed max_seconds (plus jitter)."""
        backoff = BackoffStrategy(base_seconds=1.0, max_seconds=5.0)
        sleep = backoff.get_sleep(attempt=20)
        self.assertLessEqual(sleep, 5.5)

    def test_jitter_is_non_negative(self):
        backoff = BackoffStrategy(base_seconds=0.1, max_seconds=1.0)
        for attempt in range(1, 10):
            self.assertGreater(backoff.get_sleep(attempt), 0)

    def test_error_type_does_not_change_delay(self):
        backoff = BackoffStrategy(jitter_ratio=0.0)
        self.assertEqual(backoff.get_sleep(1, "server_error"), backoff.get_sleep(1, "transport_error"))


class TestFixedBackoff(unittest.TestCase):
    """Verify the fixed variant never grows."""

    def test_fixed_delay(self):
        backoff = BackoffStrategy.fixed(0.75)
        self.assertEqual({backoff.get_sleep(n) for n in range(1, 6)}, {0.75})

    def test_rejects_shrinking_factor(self):
        with self.assertRaises(ValueError):
            BackoffStrategy(factor=0.5)

    def test_rejects_negative_durations(self):
        with self.assertRaises(ValueError):
            BackoffStrategy(base_seconds=-1)


if __name__ == "__main__":
    unittest.main()

"""Tests for the FetchClient retry loop."""

import unittest

from catalog_crawler.backoff import BackoffStrategy
from catalog_crawler.cancel import CancelToken
from catalog_crawler.client import FetchClient
from catalog_crawler.errors import CrawlCancelled, FetchError, TransportError
from catalog_crawler.metrics import MetricsCollector
from catalog_crawler.models import ContentKind, RawResponse
from catalog_crawler.transport import Transport

URL = "https://api.example.com/items?page=1"


def _ok(body=b"ok", content_type="text/html"):
    return RawResponse(status=200, headers={"content-type": content_type}, body=body)


def _status(status, **headers):
    return RawResponse(status=status, headers=headers, body=b"")


def _throttled(seconds):
    return RawResponse(status=429, headers={"x-ratelimit-reset-after": str(seconds)}, body=b"")


class ScriptedTransport(Transport):
    """Replays a fixed list of responses; exceptions in the list are raised."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests = []
        self.closed = False

    def send(self, request, timeout):
        self.requests.append((request, timeout))
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def close(self):
        self.closed = True


def _client(transport, **kwargs):
    sleeps = []
    kwargs.setdefault("backoff", BackoffStrategy.fixed(0.25))
    client = FetchClient(transport, sleep=sleeps.append, **kwargs)
    return client, sleeps


class TestSuccess(unittest.TestCase):
    """Verify the happy path returns a decoded payload."""

    def test_returns_payload(self):
        transport = ScriptedTransport(_ok(b"<html/>"))
        client, sleeps = _client(transport)
        payload = client.fetch(client.build_request(URL))
        self.assertEqual(payload.body, b"<html/>")
        self.assertEqual(payload.status, 200)
        self.assertEqual(payload.attempts, 1)
        self.assertIs(payload.kind, ContentKind.HTML)
        self.assertEqual(sleeps, [])

    def test_json_content_type_sets_kind(self):
        transport = ScriptedTransport(_ok(b"[]", content_type="application/json"))
        client, _ = _client(transport)
        self.assertIs(client.fetch(client.build_request(URL)).kind, ContentKind.JSON)

    def test_timeout_is_passed_to_transport(self):
        transport = ScriptedTransport(_ok())
        client, _ = _client(transport, timeout=4.5)
        client.fetch(client.build_request(URL))
        self.assertEqual(transport.requests[0][1], 4.5)


class TestRateLimiting(unittest.TestCase):
    """Verify 429 handling honours the server's wait exactly."""

    def test_waits_sum_of_declared_retry_after(self):
        """Several 429s followed by a 200 sleep exactly the declared durations."""
        transport = ScriptedTransport(_throttled(1.5), _throttled(0), _throttled(2.25), _ok(b"done"))
        client, sleeps = _client(transport)
        payload = client.fetch(client.build_request(URL))
        self.assertEqual(payload.body, b"done")
        self.assertEqual(sleeps, [1.5, 0.0, 2.25])
        self.assertEqual(sum(sleeps), 3.75)
        self.assertEqual(payload.waited_seconds, 3.75)
        self.assertEqual(payload.attempts, 4)

    def test_retries_same_request_unmodified(self):
        transport = ScriptedTransport(_throttled(1), _ok())
        client, _ = _client(transport)
        request = client.build_request(URL)
        client.fetch(request)
        self.assertIs(transport.requests[0][0], request)
        self.assertIs(transport.requests[1][0], request)

    def test_rate_limit_does_not_use_server_error_budget(self):
        """Many 429s do not count against max_attempts."""
        transport = ScriptedTransport(*([_throttled(0.1)] * 5), _ok())
        client, sleeps = _client(transport, max_attempts=2)
        client.fetch(client.build_request(URL))
        self.assertEqual(len(sleeps), 5)

    def test_unparsable_reset_header_is_terminal(self):
        """Without a default wait the page fails instead of proceeding."""
        transport = ScriptedTransport(_status(429, **{"x-ratelimit-reset-after": "later"}))
        client, sleeps = _client(transport)
        with self.assertRaises(FetchError) as ctx:
            client.fetch(client.build_request(URL))
        self.assertEqual(ctx.exception.status, 429)
        self.assertEqual(len(transport.requests), 1)
        self.assertEqual(sleeps, [])

    def test_default_wait_replaces_missing_header(self):
        transport = ScriptedTransport(_status(429), _ok())
        client, sleeps = _client(transport, default_rate_limit_wait=3.0)
        client.fetch(client.build_request(URL))
        self.assertEqual(sleeps, [3.0])

    def test_retry_count_ceiling(self):
        transport = ScriptedTransport(_throttled(1), _throttled(1), _throttled(1), _ok())
        client, sleeps = _client(transport, max_rate_limit_retries=2)
        with self.assertRaises(FetchError) as ctx:
            client.fetch(client.build_request(URL))
        self.assertIn("rate limited", str(ctx.exception))
        self.assertEqual(sleeps, [1.0, 1.0])
        self.assertEqual(len(transport.requests), 3)

    def test_cumulative_wait_ceiling(self):
        transport = ScriptedTransport(_throttled(4), _throttled(4), _ok())
        client, sleeps = _client(transport, max_rate_limit_wait=6.0)
        with self.assertRaises(FetchError):
            client.fetch(client.build_request(URL))
        self.assertEqual(sleeps, [4.0])


class TestErrors(unittest.TestCase):
    """Verify retry budgets for server, transport and client errors."""

    def test_not_found_is_attempted_once(self):
        transport = ScriptedTransport(_status(404))
        client, sleeps = _client(transport)
        with self.assertRaises(FetchError) as ctx:
            client.fetch(client.build_request(URL))
        self.assertEqual(ctx.exception.status, 404)
        self.assertEqual(ctx.exception.attempts, 1)
        self.assertEqual(len(transport.requests), 1)
        self.assertEqual(sleeps, [])

    def test_server_errors_beyond_cap_are_terminal(self):
        transport = ScriptedTransport(_status(500), _status(500), _status(503))
        client, sleeps = _client(transport, max_attempts=3)
        with self.assertRaises(FetchError) as ctx:
            client.fetch(client.build_request(URL))
        self.assertEqual(ctx.exception.status, 503)
        self.assertEqual(ctx.exception.attempts, 3)
        self.assertEqual(sleeps, [0.25, 0.25])

    def test_server_error_then_success(self):
        transport = ScriptedTransport(_status(502), _ok(b"recovered"))
        client, sleeps = _client(transport)
        self.assertEqual(client.fetch(client.build_request(URL)).body, b"recovered")
        self.assertEqual(sleeps, [0.25])

    def test_transport_error_is_retried(self):
        transport = ScriptedTransport(TransportError("timed out", cause=TimeoutError()), _ok())
        client, sleeps = _client(transport)
        self.assertEqual(client.fetch(client.build_request(URL)).attempts, 2)
        self.assertEqual(sleeps, [0.25])

    def test_transport_errors_exhaust_cap(self):
        transport = ScriptedTransport(*[TransportError("reset", cause=ConnectionResetError())] * 2)
        client, _ = _client(transport, max_attempts=2)
        with self.assertRaises(FetchError) as ctx:
            client.fetch(client.build_request(URL))
        self.assertIsNone(ctx.exception.status)
        self.assertIn("transport error", str(ctx.exception))

    def test_backoff_grows_with_failures(self):
        transport = ScriptedTransport(_status(500), _status(500), _ok())
        client, sleeps = _client(
            transport, backoff=BackoffStrategy(base_seconds=1.0, max_seconds=10.0, jitter_ratio=0.0)
        )
        client.fetch(client.build_request(URL))
        self.assertEqual(sleeps, [1.0, 2.0])

    def test_disallowed_domain_makes_no_request(self):
        transport = ScriptedTransport(_ok())
        client, _ = _client(transport, allowed_domains=("nyaa.land",))
        with self.assertRaises(FetchError) as ctx:
            client.fetch(client.build_request("https://evil.example.org/"))
        self.assertEqual(ctx.exception.attempts, 0)
        self.assertEqual(transport.requests, [])

    def test_allowed_domain_passes(self):
        transport = ScriptedTransport(_ok())
        client, _ = _client(transport, allowed_domains=("Nyaa.Land",))
        client.fetch(client.build_request("https://nyaa.land/?p=1"))
        self.assertEqual(len(transport.requests), 1)

    def test_invalid_settings_rejected(self):
        with self.assertRaises(ValueError):
            FetchClient(ScriptedTransport(), max_attempts=0)
        with self.assertRaises(ValueError):
            FetchClient(ScriptedTransport(), timeout=0)


class TestRequestBuilding(unittest.TestCase):
    """Verify headers attached to built requests."""

    def test_user_agent_and_auth(self):
        client = FetchClient(ScriptedTransport(), user_agent="Mozilla/5.0", auth=lambda: "secret")
        request = client.build_request(URL)
        self.assertEqual(request.headers["User-Agent"], "Mozilla/5.0")
        self.assertEqual(request.headers["Authorization"], "secret")

    def test_unauthenticated_by_default(self):
        client = FetchClient(ScriptedTransport())
        self.assertNotIn("Authorization", client.build_request(URL).headers)

    def test_custom_auth_header_and_extra_headers(self):
        client = FetchClient(
            ScriptedTransport(),
            headers={"Accept": "application/json"},
            auth=lambda: "k",
            auth_header="X-Api-Key",
        )
        request = client.build_request(URL)
        self.assertEqual(request.headers["X-Api-Key"], "k")
        self.assertEqual(request.headers["Accept"], "application/json")


class TestCancellationAndResources(unittest.TestCase):
    def test_cancelled_before_fetch(self):
        token = CancelToken()
        token.cancel()
        transport = ScriptedTransport(_ok())
        client = FetchClient(transport, cancel_token=token)
        with self.assertRaises(CrawlCancelled):
            client.fetch(client.build_request(URL))
        self.assertEqual(transport.requests, [])

    def test_cancel_interrupts_rate_limit_sleep(self):
        """The default sleeper wakes up as soon as the token is cancelled."""
        token = CancelToken()

        class CancellingTransport(ScriptedTransport):
            def send(self, request, timeout):
                response = super().send(request, timeout)
                token.cancel()
                return response

        transport = CancellingTransport(_throttled(3600), _ok())
        client = FetchClient(transport, cancel_token=token)
        with self.assertRaises(CrawlCancelled):
            client.fetch(client.build_request(URL))
        self.assertEqual(len(transport.requests), 1)

    def test_context_manager_closes_transport(self):
        transport = ScriptedTransport()
        with FetchClient(transport):
            pass
        self.assertTrue(transport.closed)


class TestMetrics(unittest.TestCase):
    def test_every_attempt_is_recorded(self):
        metrics = MetricsCollector()
        transport = ScriptedTransport(_throttled(1), _status(500), _ok())
        client, _ = _client(transport, metrics=metrics)
        client.fetch(client.build_request(URL))
        stats = metrics.snapshot()
        self.assertEqual(stats.total_attempts, 3)
        self.assertEqual(stats.rate_limited_count, 1)
        self.assertEqual(stats.server_error_count, 1)
        self.assertEqual(stats.success_count, 1)
        self.assertEqual(stats.total_wait_seconds, 1.25)


if __name__ == "__main__":
    unittest.main()

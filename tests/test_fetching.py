"""Tests for retry policies and the structured topic client."""

import pytest
import requests

from ftportal.core.retry import (
    RetryPolicy,
    linear_backoff,
    navigation_policy,
    rate_limit_aware_backoff,
    retry_on,
    structured_fetch_policy,
)
from ftportal.errors import NavigationError, PermanentFetchError, TransientFetchError
from ftportal.ingest.topic_details import TopicDetailsClient, extract_topic_slug

ENDPOINT = "https://portal.test/data/topicDetails"


class SleepRecorder:
    def __init__(self):
        self.delays = []

    def __call__(self, seconds):
        self.delays.append(round(seconds, 3))


class Flaky:
    """Callable failing with the queued exceptions before returning `value`."""

    def __init__(self, errors, value="ok"):
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    def __call__(self, *args):
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


class TestRetryPolicy:
    """Tests for RetryPolicy and the preset policies."""

    def test_succeeds_after_retries(self):
        sleep = SleepRecorder()
        fn = Flaky([NavigationError("a"), NavigationError("b")])
        assert navigation_policy(3, sleep=sleep).call(fn, "https://x") == "ok"
        assert fn.calls == 3
        assert sleep.delays == [0.8, 1.6]

    def test_gives_up_and_reraises_last(self):
        sleep = SleepRecorder()
        fn = Flaky([NavigationError("a"), NavigationError("last")])
        with pytest.raises(NavigationError, match="last"):
            navigation_policy(2, sleep=sleep).call(fn)
        assert fn.calls == 2

    def test_non_retryable_raises_immediately(self):
        sleep = SleepRecorder()
        fn = Flaky([ValueError("bad input")])
        with pytest.raises(ValueError):
            navigation_policy(3, sleep=sleep).call(fn)
        assert fn.calls == 1
        assert sleep.delays == []

    def test_rate_limited_backoff_is_longer(self):
        sleep = SleepRecorder()
        fn = Flaky([
            TransientFetchError("slow down", status=429),
            TransientFetchError("server", status=503),
        ])
        structured_fetch_policy(3, sleep=sleep).call(fn)
        assert sleep.delays == [1.5, 1.2]

    def test_single_attempt_never_sleeps(self):
        sleep = SleepRecorder()
        with pytest.raises(TransientFetchError):
            structured_fetch_policy(1, sleep=sleep).call(Flaky([TransientFetchError("x", status=500)]))
        assert sleep.delays == []

    def test_zero_attempts_still_tries_once(self):
        fn = Flaky([])
        assert RetryPolicy(attempts=0, sleep=SleepRecorder()).call(fn) == "ok"
        assert fn.calls == 1

    def test_backoff_functions(self):
        assert linear_backoff(0.5)(3, RuntimeError()) == 1.5
        backoff = rate_limit_aware_backoff()
        assert backoff(2, TransientFetchError("x", status=429)) == 3.0
        assert backoff(2, TransientFetchError("x", status=502)) == 1.2
        assert backoff(2, RuntimeError()) == 1.2
        assert retry_on(KeyError, ValueError)(KeyError()) is True
        assert retry_on(KeyError)(ValueError()) is False


class FakeResponse:
    def __init__(self, status_code, data=None, body_is_json=True):
        self.status_code = status_code
        self.data = data
        self.body_is_json = body_is_json

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if not self.body_is_json:
            raise ValueError("No JSON object could be decoded")
        return self.data


class FakeSession:
    """requests.Session stand-in replaying a response (or exception) per url."""

    def __init__(self, responses):
        self.responses = responses
        self.headers = {}
        self.urls = []

    def get(self, url, timeout=None):
        self.urls.append(url)
        queue = self.responses.get(url)
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, Exception):
            raise result
        return result


def make_client(responses, attempts=2):
    session = FakeSession(responses)
    sleep = SleepRecorder()
    client = TopicDetailsClient(
        ENDPOINT,
        lang="en",
        policy=structured_fetch_policy(attempts, sleep=sleep),
        session_factory=lambda: session,
        min_interval=0,
    )
    return client, session, sleep


def topic_url(slug):
    return f"{ENDPOINT}/{slug}.json?lang=en"


class TestTopicDetailsClient:
    """Tests for TopicDetailsClient."""

    PAYLOAD = {"TopicDetails": {"identifier": "HORIZON-X-01", "title": "A topic"}}

    def test_url_and_headers(self):
        client, session, _ = make_client({topic_url("HORIZON-X-01"): [FakeResponse(200, self.PAYLOAD)]})
        assert client.fetch_payload("HORIZON-X-01") == self.PAYLOAD
        assert session.urls == [topic_url("HORIZON-X-01")]
        assert session.headers["Accept"].startswith("application/json")

    def test_fetch_topic_unwraps(self):
        client, _, _ = make_client({topic_url("HORIZON-X-01"): [FakeResponse(200, self.PAYLOAD)]})
        assert client.fetch_topic("HORIZON-X-01") == {"identifier": "HORIZON-X-01", "title": "A topic"}

    def test_transient_then_success(self):
        client, session, sleep = make_client({
            topic_url("HORIZON-X-01"): [FakeResponse(503), FakeResponse(200, self.PAYLOAD)],
        })
        assert client.fetch_payload("HORIZON-X-01") == self.PAYLOAD
        assert len(session.urls) == 2
        assert sleep.delays == [0.6]

    def test_network_error_is_transient(self):
        client, session, _ = make_client({
            topic_url("HORIZON-X-01"): [requests.ConnectionError("reset"), FakeResponse(200, self.PAYLOAD)],
        })
        assert client.fetch_payload("HORIZON-X-01") == self.PAYLOAD
        assert len(session.urls) == 2

    def test_not_found_falls_back_to_lowercase(self):
        client, session, sleep = make_client({
            topic_url("HORIZON-X-01"): [FakeResponse(404)],
            topic_url("horizon-x-01"): [FakeResponse(200, self.PAYLOAD)],
        })
        assert client.fetch_payload("HORIZON-X-01") == self.PAYLOAD
        assert session.urls == [topic_url("HORIZON-X-01"), topic_url("horizon-x-01")]
        assert sleep.delays == []

    def test_rate_limited_everywhere_gives_empty(self):
        client, session, sleep = make_client({
            topic_url("HORIZON-X-01"): [FakeResponse(429)],
            topic_url("horizon-x-01"): [FakeResponse(429)],
        })
        assert client.fetch_payload("HORIZON-X-01") == {}
        assert len(session.urls) == 4
        assert sleep.delays == [1.5, 1.5]

    def test_lowercase_slug_has_no_fallback(self):
        client, session, _ = make_client({topic_url("topic-1"): [FakeResponse(404)]})
        assert client.fetch_payload("topic-1") == {}
        assert session.urls == [topic_url("topic-1")]

    def test_invalid_json_is_permanent(self):
        client, _, _ = make_client({topic_url("t1"): [FakeResponse(200, body_is_json=False)]})
        with pytest.raises(PermanentFetchError):
            client.get_json(topic_url("t1"))

    def test_non_dict_payload(self):
        client, _, _ = make_client({topic_url("t1"): [FakeResponse(200, ["not", "a", "dict"])]})
        assert client.fetch_payload("t1") == {}
        assert client.fetch_topic("t1") == {}

    def test_empty_slug(self):
        client, session, _ = make_client({})
        assert client.fetch_payload("") == {}
        assert session.urls == []


class TestExtractTopicSlug:
    """Tests for extract_topic_slug."""

    @pytest.mark.parametrize("url,expected", [
        ("https://portal.test/topic-details/HORIZON-CL4-2025-01", "HORIZON-CL4-2025-01"),
        ("https://portal.test/screen/opportunities/topic-details/abc-1?lang=en", "abc-1"),
        ("https://portal.test/tender-details/xyz", ""),
        ("", ""),
        (None, ""),
    ])
    def test_slug(self, url, expected):
        assert extract_topic_slug(url) == expected

import pytest

from songskip import retry
from songskip.constants import POLL_INTERVAL_SEC, RETRY_BUDGET_SEC, RETRY_MAX_DELAY_SEC
from songskip.retry import backoff_delay, retry_with_backoff


@pytest.fixture(autouse=True)
def sleeps(monkeypatch):
    calls = []
    monkeypatch.setattr(retry.time, "sleep", calls.append)
    return calls


def test_returns_first_success(sleeps):
    attempts = []

    @retry_with_backoff(max_attempts=3, exceptions=(ConnectionError,))
    def flaky():
        attempts.append(1)
        if len(attempts) < 3:
            raise ConnectionError("reset")
        return "ok"

    assert flaky() == "ok"
    assert len(attempts) == 3
    assert len(sleeps) == 2


def test_returns_none_after_last_attempt(sleeps):
    @retry_with_backoff(max_attempts=2, exceptions=(ConnectionError,))
    def broken():
        raise ConnectionError("reset")

    assert broken() is None
    assert len(sleeps) == 1


def test_other_exceptions_propagate(sleeps):
    @retry_with_backoff(max_attempts=3, exceptions=(ConnectionError,))
    def broken():
        raise ValueError("bad payload")

    with pytest.raises(ValueError):
        broken()
    assert sleeps == []


def test_backoff_delay_is_capped_and_jittered():
    for attempt in range(1, 8):
        delay = backoff_delay(attempt, base_delay=0.25, max_delay=1.0)
        assert 0 <= delay <= 1.5


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def monotonic(self):
        return self.now

    def sleep(self, seconds):
        self.now += seconds


def test_retries_stop_at_time_budget(monkeypatch):
    clock = FakeClock()
    monkeypatch.setattr(retry.time, "monotonic", clock.monotonic)
    monkeypatch.setattr(retry.time, "sleep", clock.sleep)
    monkeypatch.setattr(retry, "backoff_delay", lambda attempt, base_delay, max_delay: 0.6)
    attempts = []

    @retry_with_backoff(max_attempts=10, budget=1.5, exceptions=(ConnectionError,))
    def slow():
        attempts.append(clock.now)
        clock.now += 0.2
        raise ConnectionError("timed out")

    assert slow() is None
    # 0.2 + 0.6 + 0.2 = 1.0, one more 0.6 backoff would overrun 1.5
    assert len(attempts) == 2
    assert clock.now - 100.0 <= 1.5


def test_default_budget_fits_in_poll_interval():
    assert RETRY_BUDGET_SEC < POLL_INTERVAL_SEC
    assert RETRY_MAX_DELAY_SEC <= RETRY_BUDGET_SEC

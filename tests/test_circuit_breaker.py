import logging
import time

from frontdesk.circuit_breaker import CircuitBreaker


class TestCircuitBreaker:
    def test_starts_closed(self):
        cb = CircuitBreaker()
        assert cb.should_try() is True

    def test_stays_closed_below_threshold(self):
        cb = CircuitBreaker(failure_threshold=3)
        cb.record_failure()
        cb.record_failure()
        assert cb.should_try() is True

    def test_opens_at_threshold(self):
        cb = CircuitBreaker(failure_threshold=3)
        for _ in range(3):
            cb.record_failure()
        assert cb.should_try() is False
    def test_half_open_after_cooldown(self):
        cb = CircuitBreaker(failure_threshold=1, cooldown_seconds=0.0)
        cb.record_failure()
        assert cb.should_try() is True

    def test_closes_on_success(self):
        cb = CircuitBreaker(failure_threshold=2)
        cb.record_failure()
        cb.record_failure()
        assert cb.should_try() is False
        cb._opened_at = time.monotonic() - 100
        assert cb.should_try() is True
        cb.record_success()
        cb.record_failure()
        assert cb.should_try() is True

    def test_failed_trial_restarts_cooldown(self):
        cb = CircuitBreaker(failure_threshold=2, cooldown_seconds=60.0)
        cb.record_failure()
        cb.record_failure()
        cb._opened_at = time.monotonic() - 100
        assert cb.should_try() is True
        cb.record_failure()
        assert cb.should_try() is False

    def test_success_resets_failures(self):
        cb = CircuitBreaker(failure_threshold=3)
        cb.record_failure()
        cb.record_failure()
        cb.record_success()
        cb.record_failure()
        assert cb.should_try() is True

    def test_logs_opening_once(self, caplog):
        cb = CircuitBreaker(failure_threshold=1, label="private API")
        with caplog.at_level(logging.WARNING, logger="frontdesk.circuit_breaker"):
            cb.record_failure()
            cb.record_failure()
        opened = [r for r in caplog.records if "OPENED" in r.getMessage()]
        assert len(opened) == 1
        assert "private API" in opened[0].getMessage()

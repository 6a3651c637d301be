"""Generic retry executor tests."""

import pydantic
import pytest
from unittest.mock import patch

from replayable_http.backoff import ConstantBackoff
from replayable_http.cancel import CancellationToken
from replayable_http.errors import Cancelled, DeadlineExceeded
from replayable_http.retry import (
    DEFAULT_ATTEMPTS,
    DEFAULT_RETRY_CONFIG,
    RetryConfig,
    do,
    retrying,
)

NO_WAIT = ConstantBackoff(0)


class Flaky:
    """Operation failing ``failures`` times before returning ``result``."""

    def __init__(self, failures: int, result: str = "success") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0
        self.errors: list[Exception] = []

    def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            error = RuntimeError(f"try {self.calls}")
            self.errors.append(error)
            raise error
        return self.result


class TestRetryConfig:
    def test_defaults(self):
        assert DEFAULT_RETRY_CONFIG.attempts == DEFAULT_ATTEMPTS == 10
        assert DEFAULT_RETRY_CONFIG.backoff(1) == 0.1
        assert DEFAULT_RETRY_CONFIG.error_classifier(RuntimeError()) is True
        assert DEFAULT_RETRY_CONFIG.cancellation is None

    def test_merged_returns_new_config(self):
        cfg = DEFAULT_RETRY_CONFIG.merged(attempts=2)
        assert cfg.attempts == 2
        assert DEFAULT_RETRY_CONFIG.attempts == 10

    def test_merged_without_overrides_is_identity(self):
        assert DEFAULT_RETRY_CONFIG.merged() is DEFAULT_RETRY_CONFIG

    def test_config_is_frozen(self):
        with pytest.raises(pydantic.ValidationError):
            DEFAULT_RETRY_CONFIG.attempts = 3

    def test_negative_attempts_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            RetryConfig(attempts=-1)

    def test_unknown_option_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            DEFAULT_RETRY_CONFIG.merged(atempts=3)


class TestDo:
    def test_succeeds_on_first_attempt(self):
        def on_retry(tries, error):
            pytest.fail("did not expect on_retry to trigger")

        def classify(error):
            pytest.fail("did not expect error_classifier to trigger")

        op = Flaky(0)
        result = do(op, attempts=5, backoff=NO_WAIT, on_retry=on_retry, error_classifier=classify)
        assert result == "success"
        assert op.calls == 1

    def test_succeeds_on_retry(self):
        retries = []
        op = Flaky(1)
        result = do(op, attempts=5, backoff=NO_WAIT, on_retry=lambda t, e: retries.append((t, e)))
        assert result == "success"
        assert op.calls == 2
        assert retries == [(1, op.errors[0])]

    def test_all_attempts_fail(self):
        retries = []
        op = Flaky(100)
        with pytest.raises(RuntimeError) as exc_info:
            do(op, attempts=5, backoff=NO_WAIT, on_retry=lambda t, e: retries.append(t))

        assert op.calls == 6
        assert retries == [1, 2, 3, 4, 5]
        assert exc_info.value is op.errors[-1]

    def test_zero_attempts_runs_once(self):
        op = Flaky(100)
        with pytest.raises(RuntimeError):
            do(op, attempts=0, backoff=NO_WAIT)
        assert op.calls == 1

    def test_fatal_error_stops_immediately(self):
        retries = []
        op = Flaky(100)
        with pytest.raises(RuntimeError) as exc_info:
            do(
                op,
                attempts=5,
                backoff=NO_WAIT,
                error_classifier=lambda e: False,
                on_retry=lambda t, e: retries.append(t),
            )
        assert op.calls == 1
        assert retries == []
        assert exc_info.value is op.errors[0]

    def test_classifier_sees_each_failure(self):
        seen = []

        def classify(error):
            seen.append(str(error))
            return len(seen) < 2

        op = Flaky(100)
        with pytest.raises(RuntimeError, match="try 2"):
            do(op, attempts=5, backoff=NO_WAIT, error_classifier=classify)
        assert seen == ["try 1", "try 2"]

    def test_backoff_receives_try_count(self):
        asked = []

        def backoff(attempt):
            asked.append(attempt)
            return 0

        with pytest.raises(RuntimeError):
            do(Flaky(100), attempts=3, backoff=backoff)
        # no wait after the final attempt
        assert asked == [1, 2, 3]

    def test_backoff_delay_is_waited(self):
        with patch.object(CancellationToken, "wait", return_value=False) as mock_wait:
            assert do(Flaky(2), attempts=3, backoff=ConstantBackoff(0.25)) == "success"
        assert [c.args[0] for c in mock_wait.call_args_list] == [0.25, 0.25]

    def test_config_object_with_overrides(self):
        cfg = RetryConfig(attempts=1, backoff=NO_WAIT)
        op = Flaky(100)
        with pytest.raises(RuntimeError):
            do(op, cfg, attempts=3)
        assert op.calls == 4


class TestDoCancellation:
    def test_cancelled_before_first_attempt(self):
        token = CancellationToken()
        token.cancel()
        op = Flaky(100)
        with pytest.raises(Cancelled) as exc_info:
            do(op, attempts=5, cancellation=token, backoff=ConstantBackoff(0.1))
        assert op.calls == 0
        assert exc_info.value is token.error

    def test_expired_deadline_before_first_attempt(self):
        token = CancellationToken.with_timeout(0)
        op = Flaky(100)
        with pytest.raises(DeadlineExceeded):
            do(op, attempts=5, cancellation=token)
        assert op.calls == 0

    def test_deadline_during_backoff_returns_last_error(self):
        token = CancellationToken.with_timeout(0.01)
        op = Flaky(100)
        with pytest.raises(RuntimeError) as exc_info:
            do(op, attempts=5, cancellation=token, backoff=ConstantBackoff(0.1))
        assert op.calls == 1
        assert exc_info.value is op.errors[0]

    def test_cancelled_by_hook_keeps_concrete_error(self):
        token = CancellationToken()
        op = Flaky(100)
        with pytest.raises(RuntimeError) as exc_info:
            do(
                op,
                attempts=5,
                backoff=NO_WAIT,
                cancellation=token,
                on_retry=lambda t, e: token.cancel(),
            )
        assert op.calls == 1
        assert exc_info.value is op.errors[0]


class TestRetrying:
    def test_decorated_function_is_retried(self):
        op = Flaky(2)

        @retrying(attempts=3, backoff=NO_WAIT)
        def fetch(suffix):
            return op() + suffix

        assert fetch("!") == "success!"
        assert op.calls == 3
        assert fetch.__name__ == "fetch"

    def test_decorated_function_raises_after_exhaustion(self):
        op = Flaky(100)

        @retrying(RetryConfig(attempts=1, backoff=NO_WAIT))
        def fetch():
            return op()

        with pytest.raises(RuntimeError, match="try 2"):
            fetch()

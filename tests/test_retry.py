import pytest

from retry import retry_with_backoff


class _Flaky(Exception):
    pass


class _Fatal(Exception):
    pass


def _sequence(*outcomes):
    """Return a callable that raises or returns each outcome in turn."""
    calls = iter(outcomes)

    def _call():
        outcome = next(calls)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return _call


def test_returns_first_success_without_sleeping() -> None:
    sleeps: list[float] = []
    result = retry_with_backoff(lambda: "ok", is_retryable=lambda e: True, sleep=sleeps.append)
    assert result == "ok"
    assert sleeps == []


def test_retries_with_exponential_delays() -> None:
    sleeps: list[float] = []
    fn = _sequence(_Flaky("429"), _Flaky("429"), "done")

    result = retry_with_backoff(
        fn,
        is_retryable=lambda e: isinstance(e, _Flaky),
        max_attempts=3,
        base_delay=2.0,
        sleep=sleeps.append,
    )

    assert result == "done"
    assert sleeps == [2.0, 4.0]


def test_reraises_last_error_when_attempts_run_out() -> None:
    sleeps: list[float] = []
    fn = _sequence(_Flaky("1"), _Flaky("2"), _Flaky("3"))

    with pytest.raises(_Flaky, match="3"):
        retry_with_backoff(fn, is_retryable=lambda e: True, max_attempts=3, base_delay=1.0, sleep=sleeps.append)
    assert sleeps == [1.0, 2.0]


def test_non_retryable_error_propagates_immediately() -> None:
    sleeps: list[float] = []
    fn = _sequence(_Fatal("401"), "never")

    with pytest.raises(_Fatal):
        retry_with_backoff(fn, is_retryable=lambda e: isinstance(e, _Flaky), sleep=sleeps.append)
    assert sleeps == []


def test_rejects_zero_attempts() -> None:
    with pytest.raises(ValueError):
        retry_with_backoff(lambda: None, is_retryable=lambda e: True, max_attempts=0)

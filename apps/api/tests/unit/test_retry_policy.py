import pytest

from app.integrations.retry import RetryExhaustedError, RetryPolicy


def test_delay_grows_exponentially_and_is_capped():
    policy = RetryPolicy(max_attempts=5, initial_delay_s=1.0, multiplier=2.0, max_delay_s=3.0)

    assert [policy.delay_for(attempt) for attempt in range(1, 5)] == [1.0, 2.0, 3.0, 3.0]


def test_fixed_policy_uses_constant_delay():
    policy = RetryPolicy.fixed(max_attempts=3, delay_s=5.0)

    assert policy.delay_for(1) == policy.delay_for(3) == 5.0


def test_poll_returns_first_result_and_sleeps_between_checks():
    answers = iter([None, None, "receipt"])
    sleeps: list[float] = []

    policy = RetryPolicy(max_attempts=5, initial_delay_s=1.0, multiplier=2.0)
    result = policy.poll(lambda: next(answers), sleep=sleeps.append)

    assert result == "receipt"
    assert sleeps == [1.0, 2.0]


def test_poll_gives_up_after_max_attempts():
    sleeps: list[float] = []
    checks = {"count": 0}

    def check():
        checks["count"] += 1
        return None

    with pytest.raises(RetryExhaustedError) as exc_info:
        RetryPolicy.fixed(max_attempts=3, delay_s=0.5).poll(check, sleep=sleeps.append)

    assert exc_info.value.attempts == 3
    assert checks["count"] == 3
    assert sleeps == [0.5, 0.5]


def test_check_errors_propagate_immediately():
    def check():
        raise RuntimeError("node down")

    with pytest.raises(RuntimeError, match="node down"):
        RetryPolicy(max_attempts=3).poll(check, sleep=lambda _s: None)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_attempts": 0},
        {"max_attempts": 1, "initial_delay_s": -1},
        {"max_attempts": 1, "multiplier": 0.5},
    ],
)
def test_invalid_policies_are_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)

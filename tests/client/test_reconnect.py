import pytest

from mcp_sse_client.client.reconnect import ReconnectPolicy


def test_default_delays_double_from_one_second() -> None:
    policy = ReconnectPolicy()

    assert [policy.delay_for(attempt) for attempt in (1, 2, 3)] == [1.0, 2.0, 4.0]


def test_delay_is_capped() -> None:
    policy = ReconnectPolicy(max_attempts=10)

    assert policy.delay_for(4) == 8.0
    assert policy.delay_for(5) == 10.0
    assert policy.delay_for(9) == 10.0


def test_delay_rejects_non_positive_attempt() -> None:
    with pytest.raises(ValueError):
        ReconnectPolicy().delay_for(0)


def test_retries_are_bounded() -> None:
    policy = ReconnectPolicy()

    assert [policy.should_retry(attempt) for attempt in (1, 2, 3, 4)] == [True, True, True, False]


def test_zero_attempts_never_retries() -> None:
    assert not ReconnectPolicy(max_attempts=0).should_retry(1)


def test_budget_is_never_reset_by_default() -> None:
    assert not ReconnectPolicy().should_reset(3600)


@pytest.mark.parametrize(("healthy_for", "expected"), [(None, False), (4.9, False), (5.0, True), (60, True)])
def test_budget_reset_after_healthy_period(healthy_for: float | None, expected: bool) -> None:
    assert ReconnectPolicy(reset_after=5.0).should_reset(healthy_for) is expected

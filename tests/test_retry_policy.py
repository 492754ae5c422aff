"""Tests for the reconnect interval policies."""

import random

import pytest

from bleconnector.ble_connector import BLEConfig, ReconnectPolicy, RetryPolicy


class TestReconnectPolicy:
    """Unit tests for the ReconnectPolicy helper."""

    def test_initialization_defaults(self):
        policy = ReconnectPolicy()

        assert policy.initial_delay == 1.0
        assert policy.max_delay == 30.0
        assert policy.backoff == 2.0
        assert policy.jitter_ratio == 0.1
        assert policy.max_retries is None
        assert policy.get_attempt_count() == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"initial_delay": 0},
            {"initial_delay": 5.0, "max_delay": 1.0},
            {"backoff": 0.5},
            {"jitter_ratio": 1.5},
            {"max_retries": -1},
        ],
    )
    def test_rejects_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            ReconnectPolicy(**kwargs)

    def test_reset_and_get_attempt_count(self):
        policy = ReconnectPolicy(max_retries=3)
        policy.next_attempt()
        policy.next_attempt()
        assert policy.get_attempt_count() == 2
        policy.reset()
        assert policy.get_attempt_count() == 0

    def test_fixed_interval(self):
        """A fixed policy returns the same delay on every attempt."""
        policy = ReconnectPolicy.fixed(3.0)

        delays = [policy.next_attempt()[0] for _ in range(5)]

        assert delays == [3.0] * 5
        assert policy.should_retry()

    def test_delay_calculation_without_jitter(self):
        policy = ReconnectPolicy(
            initial_delay=1.0,
            max_delay=100.0,
            backoff=2.0,
            jitter_ratio=0.0,
        )

        assert policy.get_delay(0) == 1.0
        assert policy.get_delay(1) == 2.0
        assert policy.get_delay(2) == 4.0

    def test_delay_respects_maximum(self):
        policy = ReconnectPolicy(
            initial_delay=1.0,
            max_delay=5.0,
            backoff=3.0,
            jitter_ratio=0.0,
        )

        assert policy.get_delay(2) == 5.0  # capped at max_delay

    def test_delay_includes_jitter(self):
        policy = ReconnectPolicy(
            initial_delay=10.0,
            max_delay=20.0,
            backoff=2.0,
            jitter_ratio=0.5,
            random_source=random.Random(0),
        )

        delay = policy.get_delay(0)
        assert 5.0 <= delay <= 15.0

    def test_should_retry_limit(self):
        policy = ReconnectPolicy(max_retries=2)
        assert policy.should_retry(0) is True
        assert policy.should_retry(1) is True
        assert policy.should_retry(2) is False

    def test_next_attempt_reports_exhaustion(self):
        policy = ReconnectPolicy.fixed(1.0, max_retries=2)

        assert policy.next_attempt() == (1.0, True)
        assert policy.next_attempt() == (1.0, True)
        assert policy.next_attempt() == (1.0, False)


class TestRetryPolicy:
    """Ensure the shared RetryPolicy presets are wired correctly."""

    def test_auto_reconnect_policy(self):
        policy = RetryPolicy.auto_reconnect()
        assert policy.initial_delay == BLEConfig.RECONNECT_INTERVAL == 3.0
        assert policy.max_delay == BLEConfig.RECONNECT_INTERVAL
        assert policy.backoff == 1.0
        assert policy.jitter_ratio == 0.0
        assert policy.max_retries is None

    def test_backoff_reconnect_policy(self):
        policy = RetryPolicy.backoff_reconnect()
        assert policy.initial_delay == BLEConfig.RECONNECT_INTERVAL
        assert policy.backoff == 2.0
        assert policy.max_delay == 30.0

    def test_policy_instances_are_independent(self):
        first = RetryPolicy.auto_reconnect()
        second = RetryPolicy.auto_reconnect()
        first.next_attempt()
        assert first.get_attempt_count() == 1
        assert second.get_attempt_count() == 0

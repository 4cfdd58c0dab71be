"""
Unit tests for RetryPolicy.
"""

import pytest

from session_relay.delivery import RetryPolicy


def test_exponential_backoff_with_cap():
    """min(base * 2**attempts, cap)."""
    rp = RetryPolicy(initial_backoff_ms=1000, max_backoff_ms=30000)
    vals = [rp.next_backoff_ms(i) for i in range(1, 8)]
    # 2000, 4000, 8000, 16000, 30000, 30000, 30000
    assert vals[:4] == [2000, 4000, 8000, 16000]
    assert all(v == 30000 for v in vals[4:])


def test_linear_upload_backoff():
    """Uploads escalate by a fixed step per failed attempt."""
    rp = RetryPolicy.for_uploads(max_attempts=3, step_ms=5000)
    assert rp.mode == "linear"
    assert rp.serialize_retries is True
    assert [rp.next_backoff_ms(i) for i in (1, 2)] == [5000, 10000]
    assert rp.next_backoff_sec(1) == 5.0


def test_notification_defaults():
    rp = RetryPolicy.for_notifications()
    assert rp.max_attempts == 3
    assert rp.serialize_retries is False
    assert rp.next_backoff_ms(1) == 2000
    assert rp.next_backoff_ms(10) == 30000


def test_backoff_with_jitter():
    """Jitter keeps values within 50-100% of the computed delay."""
    rp = RetryPolicy(initial_backoff_ms=100, max_backoff_ms=1000, jitter=True)
    vals = [rp.next_backoff_ms(1) for _ in range(20)]
    assert all(100 <= v <= 200 for v in vals)


@pytest.mark.parametrize("kwargs", [{"max_attempts": 0}, {"initial_backoff_ms": -1}])
def test_invalid_policy(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_notification_jitter_option():
    rp = RetryPolicy.for_notifications(base_ms=100, cap_ms=1000, jitter=True)
    assert rp.jitter is True
    assert all(100 <= rp.next_backoff_ms(1) <= 200 for _ in range(20))

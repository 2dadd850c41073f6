from datetime import date, time

import pytest
from pydantic import ValidationError

from src.core.scheduling import RetryPolicy
from tests.factories import at_ist

DAY = date(2026, 11, 5)


def test_default_policy_slots_are_day_start_and_offsets_before_cutoff():
    policy = RetryPolicy()

    assert policy.attempt_times(DAY) == [
        at_ist(DAY, 9, 30),
        at_ist(DAY, 13, 0),
        at_ist(DAY, 14, 0),
    ]
    assert policy.cutoff_at(DAY) == at_ist(DAY, 15, 0)


def test_slots_are_limited_by_max_attempts():
    policy = RetryPolicy(max_attempts=2)

    assert policy.attempt_times(DAY) == [at_ist(DAY, 9, 30), at_ist(DAY, 13, 0)]


def test_retry_slots_not_after_previous_slot_are_dropped():
    policy = RetryPolicy(business_day_start=time(13, 30))

    assert policy.attempt_times(DAY) == [at_ist(DAY, 13, 30), at_ist(DAY, 14, 0)]


def test_policy_rejects_invalid_configuration():
    with pytest.raises(ValidationError):
        RetryPolicy(timezone_name="Mars/Olympus")
    with pytest.raises(ValidationError):
        RetryPolicy(retry_offsets_minutes=[60, 120])
    with pytest.raises(ValidationError):
        RetryPolicy(retry_offsets_minutes=[0])
    with pytest.raises(ValidationError):
        RetryPolicy(max_attempts=0)

from datetime import datetime, timedelta, timezone

import pytest

from francis.ref import ActorRef, AlarmLease, AlarmProperties, AlarmRef


@pytest.fixture
def alarm_ref():
    return AlarmRef("myactor", "a1", "alarm")


@pytest.fixture
def due():
    return datetime(2024, 1, 2, 3, 4, 5, 120000, tzinfo=timezone.utc)


def test_actor_ref_str():
    assert str(ActorRef("myactor", "a1")) == "myactor/a1"


def test_alarm_ref_str(alarm_ref):
    assert str(alarm_ref) == "myactor/a1/alarm"


def test_alarm_ref_actor_ref(alarm_ref):
    assert alarm_ref.actor_ref() == ActorRef("myactor", "a1")


def test_refs_are_hashable_and_comparable():
    refs = {ActorRef("t", "1"), ActorRef("t", "1"), ActorRef("t", "2")}
    assert len(refs) == 2


def test_alarm_lease_properties(alarm_ref, due):
    lease = AlarmLease(alarm_ref, "alarm-1", due, "lease-1")
    assert lease.key == "alarm-1"
    assert lease.due_time == due
    assert lease.lease_id == "lease-1"
    assert lease.alarm_ref == alarm_ref
    assert lease.actor_ref == alarm_ref.actor_ref()
    assert lease.attempts == 0
    assert lease.execution_time is None


def test_alarm_lease_increase_attempts(alarm_ref, due):
    lease = AlarmLease(alarm_ref, "alarm-1", due, "lease-1")
    lease.execution_time = due
    assert lease.execution_time == due

    later = due + timedelta(seconds=5)
    lease.increase_attempts(later)
    assert lease.attempts == 1
    assert lease.due_time == later
    assert lease.execution_time is None

    lease.increase_attempts(later + timedelta(seconds=5))
    assert lease.attempts == 2


def test_alarm_lease_str(alarm_ref, due):
    lease = AlarmLease(alarm_ref, "alarm-1", due, "lease-1")
    assert str(lease) == (
        'AlarmLease:[AlarmID="alarm-1" DueTime="2024-01-02T03:04:05.12" '
        'DueTimeUnix=1704164645120 LeaseID="lease-1"]'
    )


def test_alarm_lease_str_whole_seconds(alarm_ref, due):
    whole = due.replace(microsecond=0)
    lease = AlarmLease(alarm_ref, "alarm-1", whole, "lease-1")
    text = str(lease)
    assert 'DueTime="2024-01-02T03:04:05"' in text
    assert f"DueTimeUnix={int(whole.timestamp()) * 1000}" in text


def test_next_execution_without_interval(due):
    props = AlarmProperties(due_time=due)
    assert props.next_execution(due) is None


def test_next_execution_invalid_interval(due):
    props = AlarmProperties(due_time=due, interval="notaduration")
    assert props.next_execution(due) is None


def test_next_execution_zero_interval(due):
    props = AlarmProperties(due_time=due, interval="PT0S")
    assert props.next_execution(due) is None


def test_next_execution_clock_interval(due):
    props = AlarmProperties(due_time=due, interval="PT1H")
    assert props.next_execution(due) == due + timedelta(hours=1)


def test_next_execution_days_interval(due):
    props = AlarmProperties(due_time=due, interval="P1D")
    assert props.next_execution(due) == due + timedelta(days=1)


def test_next_execution_beyond_ttl(due):
    props = AlarmProperties(
        due_time=due, interval="PT1H", ttl=due + timedelta(minutes=30)
    )
    assert props.next_execution(due) is None


def test_next_execution_at_ttl(due):
    props = AlarmProperties(due_time=due, interval="PT1H", ttl=due + timedelta(hours=1))
    assert props.next_execution(due) == due + timedelta(hours=1)
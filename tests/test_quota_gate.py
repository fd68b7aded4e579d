import pytest

from mailmover.errors import QuotaGateTimeout
from mailmover.models import FolderHandle
from mailmover.quota_gate import QuotaGate

from fakes import FakeClock, FakeMailClient

TARGET = FolderHandle(folder_id="dest", display_name="Archive/2023", mailbox="a@contoso.com")


def test_waits_until_count_reaches_zero(sleeps):
    client = FakeMailClient(counts=[5, 3, 0])
    gate = QuotaGate(client, wait_time=300, sleep=sleeps.append)

    assert gate.wait_until_empty(TARGET) == 2
    assert sleeps == [300, 300]
    assert client.count_calls == 3


def test_returns_immediately_for_empty_folder(sleeps):
    client = FakeMailClient(counts=[0])
    gate = QuotaGate(client, wait_time=10, sleep=sleeps.append)

    assert gate.wait_until_empty(TARGET) == 0
    assert sleeps == []


def test_optional_timeout_stops_waiting():
    clock = FakeClock()
    client = FakeMailClient(counts=[4, 4, 4, 4, 4])
    gate = QuotaGate(client, wait_time=10, timeout=25, sleep=clock.sleep, clock=clock)

    with pytest.raises(QuotaGateTimeout) as excinfo:
        gate.wait_until_empty(TARGET)

    assert clock.sleeps == [10, 10, 10]
    assert excinfo.value.remaining == 4


def test_timeout_uses_elapsed_time_when_wait_is_zero():
    clock = FakeClock()
    client = FakeMailClient(counts=[3] * 10)

    def counting_clock():
        clock.now += 2
        return clock.now

    gate = QuotaGate(client, wait_time=0, timeout=5, sleep=clock.sleep, clock=counting_clock)

    with pytest.raises(QuotaGateTimeout):
        gate.wait_until_empty(TARGET)

    assert clock.sleeps == [0, 0]
    assert client.count_calls == 3

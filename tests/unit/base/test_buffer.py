"""Tests for PowerSampleBuffer."""

import threading

from harmonybridge import PowerSample, PowerSampleBuffer


class TestPowerSampleBuffer:
    """Test bounded newest-first sample storage."""

    def test_buffer_creation(self) -> None:
        """Test creating an empty buffer."""
        buffer = PowerSampleBuffer(name="tv")

        assert buffer.capacity == 5
        assert buffer.is_empty()
        assert buffer.count() == 0
        assert buffer.latest() is None
        assert buffer.snapshot() == ()

    def test_push_is_newest_first(self) -> None:
        """Test pushed samples are prepended."""
        buffer = PowerSampleBuffer(name="tv")

        buffer.push(PowerSample(power=1))
        buffer.push(PowerSample(power=2))

        assert buffer.latest().power == 2
        assert [s.power for s in buffer.snapshot()] == [2, 1]

    def test_capacity_keeps_most_recent(self) -> None:
        """Test pushing 7 samples onto capacity 5 keeps the last 5."""
        buffer = PowerSampleBuffer(name="tv", capacity=5)

        for power in range(1, 8):
            buffer.push(PowerSample(power=power))

        assert buffer.count() == 5
        assert buffer.is_full()
        assert [s.power for s in buffer.snapshot()] == [7, 6, 5, 4, 3]

    def test_no_deduplication(self) -> None:
        """Test identical readings are all retained."""
        buffer = PowerSampleBuffer(name="fan", capacity=3)

        for _ in range(3):
            buffer.push(PowerSample(power=4, observed_at=100))

        assert buffer.count() == 3

    def test_clear(self) -> None:
        """Test clearing all samples."""
        buffer = PowerSampleBuffer(name="tv")
        buffer.push(PowerSample(power=3))
        buffer.push(PowerSample(power=4))

        buffer.clear()

        assert buffer.is_empty()
        assert buffer.latest() is None

    def test_snapshot_is_isolated(self) -> None:
        """Test a snapshot does not change when the buffer does."""
        buffer = PowerSampleBuffer(name="tv")
        buffer.push(PowerSample(power=3))

        snapshot = buffer.snapshot()
        buffer.push(PowerSample(power=9))
        buffer.clear()

        assert [s.power for s in snapshot] == [3]

    def test_concurrent_pushes_respect_capacity(self) -> None:
        """Test pushes from several threads never overflow capacity."""
        buffer = PowerSampleBuffer(name="tv", capacity=5)

        def pusher() -> None:
            for i in range(200):
                buffer.push(PowerSample(power=i))

        threads = [threading.Thread(target=pusher) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert buffer.count() == 5

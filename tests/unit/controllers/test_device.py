"""Tests for DeviceController: inference, requests and preemption."""

import logging
import threading
import time

import pytest

from harmonybridge import (
    Actuator,
    AveragingEstimator,
    DeviceConfig,
    DeviceController,
    DeviceNotFound,
    InferredState,
    InstantEstimator,
    LoopPhase,
    PowerSample,
    RemoteKey,
)

from ..mocks import PlugHub, Recorder, RecordingHub, SimulatedPlug, fast_runner, report



class InterruptingHub(PlugHub):
    """Runs ``on_lookup`` once, during the next command-table lookup.

    The lookup happens after a loop has decided to toggle and before
    the command is sent, so the hook lands exactly in that window.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.on_lookup = None

    def get_available_commands(self):
        hook, self.on_lookup = self.on_lookup, None
        if hook is not None:
            hook()
        return super().get_available_commands()


@pytest.fixture
def plug() -> SimulatedPlug:
    return SimulatedPlug(on_power=10.0)


@pytest.fixture
def hub(plug) -> PlugHub:
    return PlugHub(plug)


def make_fan(hub, **kwargs) -> DeviceController:
    kwargs.setdefault("interval_ns", 100)
    return DeviceController(
        name="fan",
        label="GreenFan",
        actuator=Actuator(hub),
        estimator=kwargs.pop("estimator", InstantEstimator()),
        runner_factory=fast_runner,
        **kwargs,
    )


class TestInference:
    def test_unknown_until_first_sample(self, hub) -> None:
        fan = make_fan(hub)

        assert fan.current_inferred_state() is InferredState.UNKNOWN

    def test_follows_samples(self, hub, plug) -> None:
        fan = make_fan(hub)

        report(fan, plug)
        assert fan.current_inferred_state() is InferredState.OFF

        plug.is_on = True
        report(fan, plug)
        assert fan.current_inferred_state() is InferredState.ON

    def test_query_has_no_side_effects(self, hub, plug) -> None:
        fan = make_fan(hub)
        report(fan, plug)

        first = fan.current_inferred_state()
        second = fan.current_inferred_state()

        assert first is second is InferredState.OFF
        assert hub.sent == []
        assert fan.buffer.count() == 1

    def test_averaging_bootstraps_first_judgment(self, hub) -> None:
        tv = make_fan(hub, estimator=AveragingEstimator())

        tv.ingest(PowerSample(power=8.0))
        assert tv.current_inferred_state() is InferredState.ON

        # Partial window after the first judgment keeps the last state
        tv.ingest(PowerSample(power=0.0))
        tv.ingest(PowerSample(power=0.0))
        assert tv.current_inferred_state() is InferredState.ON

        tv.ingest(PowerSample(power=0.0))
        tv.ingest(PowerSample(power=0.0))
        assert tv.current_inferred_state() is InferredState.OFF

    def test_ingest_payload(self, hub) -> None:
        fan = make_fan(hub)

        fan.ingest_payload(b'{"power": 12.5, "voltage": 231, "linkquality": 90}')

        assert fan.current_inferred_state() is InferredState.ON
        assert fan.buffer.latest().power == 12.5
        assert fan.buffer.latest().observed_at > 0

    @pytest.mark.parametrize(
        "payload",
        [b"not json", b'{"voltage": 230}', b'{"power": -1}', b'{"power": "high"}'],
    )
    def test_malformed_payload_dropped(self, hub, payload, caplog) -> None:
        fan = make_fan(hub)
        fan.ingest_payload(b'{"power": 3}')

        with caplog.at_level(logging.WARNING):
            fan.ingest_payload(payload)

        assert fan.buffer.count() == 1
        assert fan.current_inferred_state() is InferredState.ON
        assert "dropped sample" in caplog.text

    def test_state_listener(self, hub, plug) -> None:
        fan = make_fan(hub)
        listener = Recorder()
        fan.add_state_listener(listener)

        report(fan, plug, times=3)
        plug.is_on = True
        report(fan, plug)

        assert listener.calls == [
            ("fan", InferredState.OFF),
            ("fan", InferredState.ON),
        ]

    def test_failing_listener_is_isolated(self, hub, plug) -> None:
        fan = make_fan(hub)
        recorder = Recorder()

        def broken(name, state):
            raise RuntimeError("listener bug")

        fan.add_state_listener(broken)
        fan.add_state_listener(recorder)

        report(fan, plug)

        assert recorder.calls == [("fan", InferredState.OFF)]


class TestRequests:
    def test_converges_despite_missed_toggle(self, plug) -> None:
        hub = PlugHub(plug, miss=1)
        fan = make_fan(hub)
        outcomes = Recorder()
        fan.add_outcome_listener(outcomes)
        report(fan, plug)

        loop = fan.request_on()
        runner = fan.runner
        runner.step()  # toggle lost
        report(fan, plug)
        runner.step()  # still off, toggle again
        report(fan, plug)
        runner.step()

        assert loop.phase is LoopPhase.CONVERGED
        assert fan.current_inferred_state() is InferredState.ON
        assert hub.commands() == ["PowerToggle", "PowerToggle"]
        assert plug.toggles == 1
        assert outcomes.calls == [loop.outcome]
        assert fan.last_outcome is loop.outcome
        assert not fan.is_busy()

    def test_request_does_not_toggle_synchronously(self, hub, plug) -> None:
        fan = make_fan(hub)
        report(fan, plug)

        loop = fan.request_on()

        assert loop is fan.loop
        assert loop.phase is LoopPhase.ATTEMPTING
        assert hub.sent == []

    def test_request_clears_buffer(self, hub, plug) -> None:
        fan = make_fan(hub)
        report(fan, plug, times=4)

        fan.request_on()

        assert fan.buffer.is_empty()
        assert fan.current_inferred_state() is InferredState.OFF

    def test_already_in_state_is_noop(self, hub, plug) -> None:
        plug.is_on = True
        fan = make_fan(hub)
        report(fan, plug)

        assert fan.request_on() is None
        assert fan.loop is None
        assert hub.sent == []

    def test_unknown_state_requests_toggle(self, hub, plug) -> None:
        fan = make_fan(hub)

        loop = fan.request_off()
        fan.runner.step()

        assert loop is not None
        assert hub.commands() == ["PowerToggle"]

    def test_request_unknown_rejected(self, hub) -> None:
        fan = make_fan(hub)

        with pytest.raises(ValueError):
            fan.request(InferredState.UNKNOWN)

    def test_failed_send_counts_as_attempt(self, plug) -> None:
        hub = PlugHub(plug, fail_sends=1)
        fan = make_fan(hub)
        report(fan, plug)

        loop = fan.request_on()
        fan.runner.step()
        report(fan, plug)
        fan.runner.step()
        report(fan, plug)
        fan.runner.step()

        assert loop.phase is LoopPhase.CONVERGED
        assert loop.outcome.attempts == 2
        assert plug.is_on

    def test_gives_up(self, plug) -> None:
        hub = PlugHub(plug, miss=100)
        fan = make_fan(hub, max_attempts=3)
        outcomes = Recorder()
        fan.add_outcome_listener(outcomes)
        report(fan, plug)

        loop = fan.request_on()
        while fan.runner.step():
            report(fan, plug)

        assert loop.phase is LoopPhase.FAILED
        assert len(hub.sent) == 3
        assert fan.current_inferred_state() is InferredState.OFF
        assert outcomes.calls[0].phase is LoopPhase.FAILED
        assert fan.status()["last_outcome"]["phase"] == "failed"

    def test_new_request_preempts(self, hub, plug) -> None:
        fan = make_fan(hub)
        outcomes = Recorder()
        fan.add_outcome_listener(outcomes)
        report(fan, plug)

        first = fan.request_on()
        first_runner = fan.runner
        first_runner.step()
        report(fan, plug, times=2)

        second = fan.request_off()

        assert first.phase is LoopPhase.CANCELLED
        assert fan.buffer.is_empty()
        assert outcomes.calls == [first.outcome]
        assert not first_runner.step()

        # A stale tick of the old loop cannot act on the new buffer
        report(fan, plug)
        first.execute()
        assert fan.buffer.count() == 1
        assert len(hub.sent) == 1

        second_runner = fan.runner
        second_runner.step()
        report(fan, plug)
        second_runner.step()

        assert second.phase is LoopPhase.CONVERGED
        assert fan.current_inferred_state() is InferredState.OFF
        assert hub.commands() == ["PowerToggle", "PowerToggle"]
        assert outcomes.calls == [first.outcome, second.outcome]

    def test_superseded_toggle_is_dropped(self, plug) -> None:
        """A request landing between a retry decision and its send wins."""
        plug.is_on = True
        hub = InterruptingHub(plug, miss=1)
        fan = make_fan(hub)
        report(fan, plug)

        first = fan.request_off()
        first_runner = fan.runner
        first_runner.step()  # toggle lost
        report(fan, plug)

        hub.on_lookup = fan.request_on
        first_runner.step()  # retry decided, then preempted before sending

        second = fan.loop
        assert second is not first
        assert first.phase is LoopPhase.CANCELLED
        assert len(hub.sent) == 1
        assert plug.toggles == 0
        assert not first_runner.step()

        second_runner = fan.runner
        second_runner.step()
        report(fan, plug)
        second_runner.step()
        report(fan, plug)
        second_runner.step()

        assert second.phase is LoopPhase.CONVERGED
        assert plug.is_on
        assert len(hub.sent) == 3

    def test_samples_buffered_before_send_are_dropped(self, plug) -> None:
        hub = InterruptingHub(plug)
        fan = make_fan(hub)
        report(fan, plug)
        fan.request_on()

        hub.on_lookup = lambda: fan.ingest(PowerSample(power=0.0))
        fan.runner.step()

        assert fan.buffer.is_empty()
        assert plug.is_on

    def test_stop(self, hub, plug) -> None:
        fan = make_fan(hub)
        report(fan, plug)
        loop = fan.request_on()

        outcome = fan.stop()

        assert outcome.phase is LoopPhase.CANCELLED
        assert loop.phase is LoopPhase.CANCELLED
        assert not fan.is_busy()
        assert not fan.runner.step()
        assert fan.stop() is None

    def test_shutdown_without_loop(self, hub) -> None:
        make_fan(hub).shutdown()


class TestKeysAndStatus:
    @pytest.fixture
    def tv(self) -> tuple[DeviceController, RecordingHub]:
        hub = RecordingHub()
        config = DeviceConfig(
            name="tv",
            label="TV",
            device_class="television",
            topic="zigbee2mqtt/tv-plug",
            unique_id="living-room-tv",
        )
        return (
            DeviceController.from_config(config, Actuator(hub), fast_runner),
            hub,
        )

    def test_from_config(self, tv) -> None:
        controller, _ = tv

        assert controller.label == "TV"
        assert controller.readiness == 2
        assert controller.interval_ns == 1_000_000_000
        assert controller.buffer.capacity == 5
        assert controller.max_duration_ns == 60_000_000_000
        assert RemoteKey.SELECT in controller.keys

    def test_unique_id_gives_stable_uuid(self, tv) -> None:
        controller, hub = tv
        config = DeviceConfig(
            name="tv",
            label="TV",
            device_class="television",
            topic="zigbee2mqtt/tv-plug",
            unique_id="living-room-tv",
        )
        again = DeviceController.from_config(config, Actuator(hub))

        assert again.uuid == controller.uuid

    @pytest.mark.parametrize(
        ("key", "command"),
        [
            ("volume_up", "G2F2"),
            ("volume_down", "G2F1"),
            (RemoteKey.SELECT, "G4F4"),
            (RemoteKey.ARROW_UP, "G4F3"),
            ("information", "G14F5"),
        ],
    )
    def test_press(self, tv, key, command) -> None:
        controller, hub = tv

        controller.press(key)

        assert hub.commands() == [command]

    def test_press_unsupported_key(self, hub) -> None:
        fan = make_fan(hub)

        with pytest.raises(DeviceNotFound):
            fan.press(RemoteKey.SELECT)
        with pytest.raises(DeviceNotFound):
            fan.press("rewind")
        assert hub.sent == []

    def test_status(self, tv) -> None:
        controller, _ = tv
        controller.ingest(PowerSample(power=30.0))

        status = controller.status()

        assert status == {
            "name": "tv",
            "label": "TV",
            "state": "on",
            "samples": [30.0],
            "phase": "idle",
        }

    def test_status_while_attempting(self, tv) -> None:
        controller, _ = tv
        controller.request_off()
        controller.runner.step()

        status = controller.status()

        assert status["phase"] == "attempting"
        assert status["desired"] == "off"
        assert status["attempts"] == 1


@pytest.mark.slow
class TestThreaded:
    def test_converges_with_real_threads(self) -> None:
        plug = SimulatedPlug()
        hub = PlugHub(plug, miss=1)
        fan = DeviceController(
            name="fan",
            label="GreenFan",
            actuator=Actuator(hub),
            estimator=InstantEstimator(),
            interval_ns=20_000_000,
        )
        outcomes = Recorder()
        fan.add_outcome_listener(outcomes)
        stop = threading.Event()

        def publish() -> None:
            while not stop.is_set():
                report(fan, plug)
                time.sleep(0.005)

        sensor = threading.Thread(target=publish, daemon=True)
        sensor.start()
        try:
            fan.request_on()
            assert outcomes.event.wait(timeout=5.0)
        finally:
            stop.set()
            sensor.join()
            fan.shutdown()

        assert outcomes.calls[0].succeeded
        assert plug.is_on
        assert fan.current_inferred_state() is InferredState.ON

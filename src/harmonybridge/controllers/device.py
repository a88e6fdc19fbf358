"""Per-appliance controller composing buffer, estimator and loop."""

import logging
import threading
import time
from collections.abc import Callable
from typing import Any

from pydantic import ConfigDict, Field

from harmonybridge.base.actuator import POWER_TOGGLE, Actuator
from harmonybridge.base.buffer import PowerSampleBuffer
from harmonybridge.base.entity import Entity
from harmonybridge.base.errors import DeviceNotFound, SensorParseFailure
from harmonybridge.base.hub import PowerCommand
from harmonybridge.base.process import Process
from harmonybridge.base.runner import Runner, StandardRunner
from harmonybridge.base.sample import PowerSample, parse_payload
from harmonybridge.base.state import ActuationOutcome, InferredState, LoopPhase
from harmonybridge.config import DeviceConfig, RemoteKey
from harmonybridge.estimators import Estimator, create_estimator

from .loop import ConvergenceLoop

RunnerFactory = Callable[[Process], Runner]
StateListener = Callable[[str, InferredState], None]
OutcomeListener = Callable[[ActuationOutcome], None]


def standard_runner(process: Process) -> Runner:
    """Default runner factory: one real-time thread per loop."""
    return StandardRunner(name=process.name, main_process=process)


class DeviceController(Entity):
    """Infers and drives the power state of one appliance.

    The controller owns the appliance's sample buffer and at most one
    active ConvergenceLoop. Two event sources touch that state: the
    power feed, through ingest(), and the loop's runner thread. Both
    go through one re-entrant lock. Replacing the loop, clearing the
    buffer and cancelling the old loop all happen under that same
    lock, so a stale tick can never observe the new request's buffer.

    request_on(), request_off() and current_inferred_state() never
    wait on the network. The first toggle of a request is sent from
    the loop's runner, not from the caller.

    The reported state (current_inferred_state) is updated whenever a
    sample arrives and the estimator gives a settled judgment. The
    very first judgment after start is accepted in bootstrap mode, so
    an averaging device does not report UNKNOWN until its window
    fills.
    """

    model_config = ConfigDict(frozen=False)

    label: str = Field(min_length=1, description="Label in the hub table")
    readiness: int = Field(default=1, ge=1)
    interval_ns: int = Field(default=500_000_000, gt=0)
    power_command: PowerCommand = Field(default=POWER_TOGGLE)
    keys: dict[RemoteKey, PowerCommand] = Field(default_factory=dict)
    max_attempts: int | None = Field(default=10, ge=1)
    max_duration_ns: int | None = Field(default=60_000_000_000, gt=0)

    def __init__(
        self,
        *,
        actuator: Actuator,
        estimator: Estimator,
        capacity: int = 5,
        runner_factory: RunnerFactory = standard_runner,
        **data: Any,
    ) -> None:
        """Initialize the controller.

        Args:
            actuator: Shared hub actuator
            estimator: Policy for this appliance's class
            capacity: Number of samples the buffer retains
            runner_factory: Builds the runner that drives each loop
            **data: Field values for the controller

        """
        super().__init__(**data)
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}."
            f"{self.name}"
        )
        self._actuator = actuator
        self._estimator = estimator
        self._runner_factory = runner_factory
        self._lock = threading.RLock()
        # Held across hub I/O; never taken while holding _lock
        self._send_lock = threading.Lock()
        self._buffer = PowerSampleBuffer(
            name=f"{self.name}-samples", capacity=capacity
        )
        self._reported = InferredState.UNKNOWN
        self._judged = False
        self._loop: ConvergenceLoop | None = None
        self._runner: Runner | None = None
        self._last_outcome: ActuationOutcome | None = None
        self._state_listeners: list[StateListener] = []
        self._outcome_listeners: list[OutcomeListener] = []

    @classmethod
    def from_config(
        cls,
        config: DeviceConfig,
        actuator: Actuator,
        runner_factory: RunnerFactory = standard_runner,
    ) -> "DeviceController":
        """Build a controller from its device configuration."""
        return cls(
            name=config.name,
            unique_id=config.unique_id,
            label=config.label,
            readiness=config.readiness,
            interval_ns=config.interval_ns,
            power_command=config.power_command,
            keys=config.keys,
            max_attempts=config.max_attempts,
            max_duration_ns=config.max_duration_ns,
            capacity=config.capacity,
            actuator=actuator,
            estimator=create_estimator(
                config.policy, config.threshold, config.capacity
            ),
            runner_factory=runner_factory,
        )

    @property
    def buffer(self) -> PowerSampleBuffer:
        """Samples received since the last toggle, newest first."""
        return self._buffer

    @property
    def loop(self) -> ConvergenceLoop | None:
        """The most recent convergence loop, live or finished."""
        return self._loop

    @property
    def runner(self) -> Runner | None:
        """The runner driving the most recent loop."""
        return self._runner

    @property
    def last_outcome(self) -> ActuationOutcome | None:
        """Outcome of the most recent finished loop."""
        return self._last_outcome

    def add_state_listener(self, listener: StateListener) -> None:
        """Call ``listener(name, state)`` when the reported state changes."""
        self._state_listeners.append(listener)

    def add_outcome_listener(self, listener: OutcomeListener) -> None:
        """Call ``listener(outcome)`` when a loop finishes."""
        self._outcome_listeners.append(listener)

    def current_inferred_state(self) -> InferredState:
        """Return the last known state without waiting for new data."""
        return self._reported

    def is_busy(self) -> bool:
        """Whether a loop is currently driving the appliance."""
        loop = self._loop
        return loop is not None and not loop.is_finished()

    def ingest(self, sample: PowerSample) -> None:
        """Record one power sample and update the reported state."""
        with self._lock:
            self._buffer.push(sample)
            state = self._estimator.estimate(
                self._buffer.snapshot(), bootstrap=not self._judged
            )
            changed = self._set_reported(state)

        if changed:
            self._notify_state(state)

    def ingest_payload(self, payload: bytes | str) -> None:
        """Feed handler: parse a raw payload and ingest it.

        Malformed payloads are logged and dropped; the buffer is left
        untouched.
        """
        try:
            sample = parse_payload(payload, observed_at=time.monotonic_ns())
        except SensorParseFailure as e:
            self._logger.warning(f"[{self.name}] dropped sample: {e}")
            return
        self._logger.debug(f"[{self.name}] power {sample.power}W")
        self.ingest(sample)

    def request_on(self) -> ConvergenceLoop | None:
        """Start driving the appliance on."""
        return self.request(InferredState.ON)

    def request_off(self) -> ConvergenceLoop | None:
        """Start driving the appliance off."""
        return self.request(InferredState.OFF)

    def request(self, desired: InferredState) -> ConvergenceLoop | None:
        """Start a new convergence loop toward ``desired``.

        Any active loop is cancelled first. If no loop is active and
        the appliance is already reported in the desired state, no
        command is sent.

        Returns:
            The new loop, or None if nothing needed to be done

        """
        if desired is InferredState.UNKNOWN:
            raise ValueError("desired state must be ON or OFF")

        with self._lock:
            if not self.is_busy() and self._reported is desired:
                self._logger.info(
                    f"[{self.name}] already {desired.value}, not toggling"
                )
                return None

            cancelled = self._cancel_locked("superseded by new request")
            self._buffer.clear()
            loop = ConvergenceLoop(
                name=self.name,
                desired=desired,
                interval_ns=self.interval_ns,
                readiness=self.readiness,
                max_attempts=self.max_attempts,
                max_duration_ns=self.max_duration_ns,
                buffer=self._buffer,
                estimator=self._estimator,
                toggle=self._toggle,
                lock=self._lock,
                on_finished=self._loop_finished,
            )
            self._loop = loop
            self._runner = self._runner_factory(loop)
            self._runner.start()

        if cancelled is not None:
            self._notify_outcome(cancelled)
        return loop

    def stop(self) -> ActuationOutcome | None:
        """Cancel the active loop, if any."""
        with self._lock:
            cancelled = self._cancel_locked("stopped")
        if cancelled is not None:
            self._notify_outcome(cancelled)
        return cancelled

    def shutdown(self) -> None:
        """Cancel the active loop and wait for its runner to exit."""
        self.stop()
        runner = self._runner
        if runner is not None:
            runner.stop(wait=True)

    def press(self, key: RemoteKey | str) -> None:
        """Send a one-shot remote key, blocking on the hub.

        Raises:
            DeviceNotFound: If this device class has no such key, or
                the hub cannot resolve it
            ActionSendFailure: If the hub fails to send it

        """
        try:
            key = RemoteKey(key)
            command = self.keys[key]
        except (KeyError, ValueError) as e:
            raise DeviceNotFound(self.label, f"no remote key {key!r}") from e
        self._logger.info(f"[{self.name}] key {key.value}")
        self._actuator.send_command(self.label, command)

    def status(self) -> dict[str, Any]:
        """Snapshot of controller state for diagnostics."""
        with self._lock:
            loop = self._loop
            summary: dict[str, Any] = {
                "name": self.name,
                "label": self.label,
                "state": self._reported.value,
                "samples": [s.power for s in self._buffer.snapshot()],
                "phase": loop.phase.value if loop else LoopPhase.IDLE.value,
            }
            if loop is not None and loop.intent is not None:
                summary["desired"] = loop.desired.value
                summary["attempts"] = loop.intent.attempt_count
            if self._last_outcome is not None:
                summary["last_outcome"] = self._last_outcome.model_dump(
                    mode="json"
                )
        return summary

    def _toggle(self, loop: ConvergenceLoop) -> None:
        """Send one power toggle for ``loop`` unless it was superseded.

        Sends are serialized per appliance by the send lock. The
        loop's phase is checked after the hub lookup and right before
        the send, under the state lock, so a toggle decided by a loop
        that has since been cancelled never reaches the hub. Samples
        buffered while waiting for the send lock predate this toggle
        and are dropped.
        """
        with self._send_lock:
            action = self._actuator.resolve(self.label, self.power_command)
            with self._lock:
                if loop.phase is not LoopPhase.ATTEMPTING:
                    self._logger.info(
                        f"[{self.name}] dropping toggle of {loop.phase.value} "
                        f"{loop.desired.value} request"
                    )
                    return
                self._buffer.clear()
            self._logger.info(f"[{self.name}] power toggle")
            self._actuator.send(self.label, action)

    def _cancel_locked(self, reason: str) -> ActuationOutcome | None:
        """Cancel the active loop and signal its runner (lock held)."""
        if self._loop is None:
            return None
        outcome = self._loop.cancel(reason)
        if self._runner is not None:
            self._runner.stop(wait=False)
        if outcome is not None:
            self._last_outcome = outcome
        return outcome

    def _loop_finished(self, outcome: ActuationOutcome) -> None:
        """Called from the runner when a loop converges or gives up."""
        changed = False
        with self._lock:
            # A newer request may already own the controller state
            current = self._loop is not None and self._loop.outcome is outcome
            if current:
                self._last_outcome = outcome
                if outcome.succeeded:
                    changed = self._set_reported(outcome.desired)

        if changed:
            self._notify_state(outcome.desired)
        self._notify_outcome(outcome)

    def _set_reported(self, state: InferredState) -> bool:
        """Update the reported state (lock held); True if it changed."""
        if state is InferredState.UNKNOWN:
            return False
        self._judged = True
        if state is self._reported:
            return False
        self._logger.info(
            f"[{self.name}] {self._reported.value} -> {state.value}"
        )
        self._reported = state
        return True

    def _notify_state(self, state: InferredState) -> None:
        for listener in list(self._state_listeners):
            try:
                listener(self.name, state)
            except Exception:
                self._logger.exception(
                    f"[{self.name}] state listener failed"
                )

    def _notify_outcome(self, outcome: ActuationOutcome) -> None:
        for listener in list(self._outcome_listeners):
            try:
                listener(outcome)
            except Exception:
                self._logger.exception(
                    f"[{self.name}] outcome listener failed"
                )


"""Convergence loop driving a toggle actuator toward a desired state."""

import threading
from collections.abc import Callable
from contextlib import AbstractContextManager
from typing import Any

from pydantic import Field

from harmonybridge.base.buffer import PowerSampleBuffer
from harmonybridge.base.errors import ActionError
from harmonybridge.base.process import Process
from harmonybridge.base.state import (
    ActuationIntent,
    ActuationOutcome,
    InferredState,
    LoopPhase,
)
from harmonybridge.estimators import Estimator

OutcomeCallback = Callable[[ActuationOutcome], None]
ToggleCallback = Callable[["ConvergenceLoop"], None]


class ConvergenceLoop(Process):
    """Feedback loop that toggles an appliance until it reaches a state.

    The actuator only knows how to toggle, and the only evidence of
    what a toggle did is the power feed. Each execution of the loop is
    one tick:

    - Execution 0 issues the first toggle.
    - Later ticks wait until at least ``readiness`` samples have
      arrived since the last toggle. Toggling again before any
      feedback would overshoot.
    - If the estimator then agrees with the desired state, the loop
      is CONVERGED.
    - Otherwise the buffer is cleared and another toggle is sent, so
      the next judgment only sees post-toggle samples.

    The loop gives up (FAILED) once ``max_attempts`` toggles have been
    sent without convergence, or once ``max_duration_ns`` has elapsed
    since the request. Either bound may be None to disable it.

    The buffer, the intent and the phase are shared with the sensor
    ingestion path and with whoever may cancel the loop, so every
    decision is made under ``lock``. The toggle itself runs outside
    the lock: a slow hub must not hold up sensor ingestion. The loop
    may therefore be cancelled between deciding to toggle and sending,
    so the toggle callback receives the loop and re-checks its phase
    before anything reaches the hub.
    """

    desired: InferredState = Field(description="Target state, ON or OFF")
    readiness: int = Field(
        default=1,
        ge=1,
        description="Fresh samples required before judging a tick",
    )
    max_attempts: int | None = Field(
        default=10,
        ge=1,
        description="Toggles to send before giving up, None for no limit",
    )
    max_duration_ns: int | None = Field(
        default=60_000_000_000,  # 60 seconds
        gt=0,
        description="Time after the request before giving up, None for "
        "no limit",
    )
    phase: LoopPhase = Field(default=LoopPhase.IDLE)
    intent: ActuationIntent | None = Field(default=None)

    def __init__(
        self,
        *,
        buffer: PowerSampleBuffer,
        estimator: Estimator,
        toggle: ToggleCallback,
        lock: AbstractContextManager | None = None,
        on_finished: OutcomeCallback | None = None,
        **data: Any,
    ) -> None:
        """Initialize the loop around its collaborators.

        Args:
            buffer: Sample buffer fed by the sensor ingestion path
            estimator: Policy used to judge the buffer
            toggle: Sends one power toggle on behalf of the given loop;
                may raise ActionError. It must send nothing once the
                loop has left ATTEMPTING.
            lock: Lock shared with the ingestion path
            on_finished: Called with the outcome when the loop
                converges or gives up on its own
            **data: Field values for the loop

        """
        super().__init__(**data)
        self._buffer = buffer
        self._estimator = estimator
        self._toggle = toggle
        self._lock = lock or threading.RLock()
        self._on_finished = on_finished
        self._outcome: ActuationOutcome | None = None

    @property
    def outcome(self) -> ActuationOutcome | None:
        """Terminal outcome, or None while the loop is still live."""
        return self._outcome

    def initialize(self) -> None:
        """Create the intent and enter ATTEMPTING."""
        with self._lock:
            super().initialize()
            if self.phase.is_terminal:
                return
            self.intent = ActuationIntent(
                desired=self.desired, started_at=self.start_time
            )
            self.phase = LoopPhase.ATTEMPTING
        self._logger.info(
            f"Driving {self.name} {self.desired.value}, "
            f"checking every {self.interval_ns // 1_000_000}ms"
        )

    def is_finished(self) -> bool:
        return self.phase.is_terminal

    def cancel(self, reason: str = "cancelled") -> ActuationOutcome | None:
        """Move the loop to CANCELLED.

        Later ticks see the terminal phase and do nothing, so a
        runner that has not yet noticed the cancellation cannot toggle
        or read the buffer on behalf of this loop.

        Returns:
            The outcome, or None if the loop had already finished

        """
        with self._lock:
            if self.phase.is_terminal:
                return None
            outcome = self._finish(LoopPhase.CANCELLED, reason)
        self._logger.info(f"{self.name} {self.desired.value}: {reason}")
        return outcome

    def _execute(self) -> None:
        """Run one tick: toggle, wait, converge, or give up."""
        outcome = None
        attempt = 0
        with self._lock:
            if self.phase is not LoopPhase.ATTEMPTING or self.intent is None:
                return

            if self.intent.attempt_count == 0:
                attempt = self._begin_attempt()
            else:
                outcome, retry = self._check()
                if retry:
                    attempt = self._begin_attempt()

        if outcome is not None:
            self._report(outcome)
        elif attempt:
            self._send_toggle(attempt)

    def _check(self) -> tuple[ActuationOutcome | None, bool]:
        """Judge the buffer; must be called with the lock held.

        Returns:
            The outcome if the loop reached a terminal phase, and
            whether another toggle is due

        """
        now = self.get_time()
        elapsed = now - self.intent.started_at

        if (
            self.max_duration_ns is not None
            and elapsed >= self.max_duration_ns
        ):
            outcome = self._finish(
                LoopPhase.FAILED,
                f"no convergence after {elapsed / 1_000_000_000:.1f}s",
            )
            return outcome, False

        samples = self._buffer.snapshot()
        self._logger.debug(
            f"{self.name} {self.desired.value}: tick "
            f"{self.execution_count}, attempts {self.intent.attempt_count}, "
            f"{len(samples)} sample(s)"
        )
        if len(samples) < self.readiness:
            return None, False

        state = self._estimator.estimate(samples, bootstrap=True)
        if state is self.desired:
            outcome = self._finish(
                LoopPhase.CONVERGED, f"observed {state.value}"
            )
            return outcome, False

        if (
            self.max_attempts is not None
            and self.intent.attempt_count >= self.max_attempts
        ):
            outcome = self._finish(
                LoopPhase.FAILED,
                f"still {state.value} after "
                f"{self.intent.attempt_count} attempt(s)",
            )
            return outcome, False

        return None, True

    def _begin_attempt(self) -> int:
        """Count a new attempt and clear stale samples (lock held)."""
        self._buffer.clear()
        self.intent.attempt_count += 1
        return self.intent.attempt_count

    def _send_toggle(self, attempt: int) -> None:
        """Send one toggle; failures count as attempts with no effect."""
        self._logger.info(
            f"{self.name} {self.desired.value}: attempt {attempt}"
        )
        try:
            self._toggle(self)
        except ActionError as e:
            self._logger.warning(
                f"{self.name} {self.desired.value}: attempt {attempt} "
                f"had no effect: {e}"
            )

    def _finish(self, phase: LoopPhase, reason: str) -> ActuationOutcome:
        """Enter a terminal phase and record the outcome (lock held)."""
        self.phase = phase
        attempts = self.intent.attempt_count if self.intent else 0
        started_at = self.intent.started_at if self.intent else 0
        self._outcome = ActuationOutcome(
            device=self.name,
            desired=self.desired,
            phase=phase,
            attempts=attempts,
            elapsed_ns=max(0, self.get_time() - started_at),
            reason=reason,
        )
        return self._outcome

    def _report(self, outcome: ActuationOutcome) -> None:
        if outcome.succeeded:
            self._logger.info(
                f"{self.name} is {self.desired.value} after "
                f"{outcome.attempts} attempt(s)"
            )
        else:
            self._logger.warning(
                f"Giving up driving {self.name} {self.desired.value}: "
                f"{outcome.reason}"
            )
        if self._on_finished is not None:
            self._on_finished(outcome)

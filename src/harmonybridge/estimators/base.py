"""Estimator base class for power-state inference."""

from abc import ABC, abstractmethod
from collections.abc import Sequence

from pydantic import Field

from harmonybridge.base.buffer import PowerSampleBuffer
from harmonybridge.base.entity import Entity
from harmonybridge.base.sample import PowerSample
from harmonybridge.base.state import InferredState

Samples = Sequence[PowerSample] | PowerSampleBuffer


class Estimator(Entity, ABC):
    """Turns buffered power samples into an on/off judgment.

    Estimators are pure: the same samples always give the same
    answer, and nothing is remembered between calls. Whether a caller
    may accept a best-effort answer from too few samples is passed in
    explicitly through ``bootstrap``.
    """

    threshold: float = Field(
        default=0.0,
        ge=0,
        description="Power in watts above which the appliance is on",
    )

    def estimate(
        self, samples: Samples, bootstrap: bool = False
    ) -> InferredState:
        """Judge the appliance's power state.

        Args:
            samples: Newest-first samples, or a buffer to snapshot
            bootstrap: Accept a judgment from fewer samples than the
                policy normally needs

        Returns:
            ON or OFF, or UNKNOWN if there is not enough data

        """
        if isinstance(samples, PowerSampleBuffer):
            samples = samples.snapshot()
        if not samples:
            return InferredState.UNKNOWN
        return self._judge(samples, bootstrap)

    @abstractmethod
    def _judge(
        self, samples: Sequence[PowerSample], bootstrap: bool
    ) -> InferredState:
        """Judge a non-empty, newest-first sample sequence."""

    def _above_threshold(self, power: float) -> InferredState:
        if power > self.threshold:
            return InferredState.ON
        return InferredState.OFF

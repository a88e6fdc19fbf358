"""Averaging estimator for appliances with noisy or standby draw."""

from collections.abc import Sequence

from pydantic import Field

from harmonybridge.base.sample import PowerSample
from harmonybridge.base.state import InferredState

from .base import Estimator


class AveragingEstimator(Estimator):
    """Judges from the mean of a full window of samples.

    Displays and similar appliances oscillate around a small standby
    draw, so a single reading is unreliable. This estimator compares
    the arithmetic mean of the newest ``window`` samples against the
    threshold.

    The judgment is settled only once ``window`` samples are present.
    With fewer, it returns UNKNOWN unless the caller asks for a
    bootstrap judgment, in which case the mean of whatever samples
    exist is used.
    """

    name: str = Field(default="averaging", min_length=1)
    threshold: float = Field(default=5.0, ge=0)
    window: int = Field(
        default=5, ge=1, description="Samples needed for a settled judgment"
    )

    def _judge(
        self, samples: Sequence[PowerSample], bootstrap: bool
    ) -> InferredState:
        recent = samples[: self.window]
        if len(recent) < self.window and not bootstrap:
            return InferredState.UNKNOWN

        mean = sum(sample.power for sample in recent) / len(recent)
        return self._above_threshold(mean)

"""Instant estimator for appliances with no standby draw."""

from collections.abc import Sequence

from pydantic import Field

from harmonybridge.base.sample import PowerSample
from harmonybridge.base.state import InferredState

from .base import Estimator


class InstantEstimator(Estimator):
    """Judges from the newest sample alone.

    Suited to simple loads such as fans, which draw nothing when off:
    any reading above the threshold (0 by default) means on.
    """

    name: str = Field(default="instant", min_length=1)

    def _judge(
        self, samples: Sequence[PowerSample], bootstrap: bool
    ) -> InferredState:
        return self._above_threshold(samples[0].power)

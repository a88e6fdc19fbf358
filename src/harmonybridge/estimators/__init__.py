"""Power-state estimation policies."""

from .averaging import AveragingEstimator
from .base import Estimator
from .instant import InstantEstimator

__all__ = [
    "AveragingEstimator",
    "Estimator",
    "InstantEstimator",
    "create_estimator",
]


def create_estimator(policy: str, threshold: float, window: int) -> Estimator:
    """Build the estimator for a configured policy name.

    Raises:
        ValueError: If the policy name is unknown

    """
    if policy == "instant":
        return InstantEstimator(threshold=threshold)
    if policy == "averaging":
        return AveragingEstimator(threshold=threshold, window=window)
    raise ValueError(f"Unknown estimation policy: {policy}")

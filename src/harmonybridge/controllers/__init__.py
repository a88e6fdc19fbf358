"""Convergent actuation: per-appliance controllers and their loops."""

from .device import DeviceController, standard_runner
from .loop import ConvergenceLoop

__all__ = [
    "ConvergenceLoop",
    "DeviceController",
    "standard_runner",
]

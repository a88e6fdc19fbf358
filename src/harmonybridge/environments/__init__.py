"""Adapters for the outside world: the remote hub and the power feed."""

from .harmony import HarmonyHub, HubAction, decode_action
from .mqtt import PowerFeed, create_mqtt_client

__all__ = [
    "HarmonyHub",
    "HubAction",
    "PowerFeed",
    "create_mqtt_client",
    "decode_action",
]

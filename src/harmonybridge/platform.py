"""Platform: one controller per configured appliance, shared I/O."""

import logging
from typing import Any

from pydantic import ConfigDict, Field

from harmonybridge.base.actuator import Actuator
from harmonybridge.base.entity import Entity
from harmonybridge.base.feed import Feed
from harmonybridge.base.hub import HubClient
from harmonybridge.config import BridgeConfig
from harmonybridge.controllers import DeviceController, standard_runner
from harmonybridge.controllers.device import RunnerFactory


class Platform(Entity):
    """Wires configured appliances to a shared hub and power feed.

    A single hub connection and a single actuator are shared by every
    controller; each controller's ingest handler is bound to its own
    feed topic. This is the object an accessory layer talks to.
    """

    model_config = ConfigDict(frozen=False)

    name: str = Field(default="harmonybridge", min_length=1)

    def __init__(
        self,
        config: BridgeConfig,
        hub: HubClient | None = None,
        feed: Feed | None = None,
        runner_factory: RunnerFactory = standard_runner,
        **data: Any,
    ) -> None:
        """Build controllers for every configured device.

        Args:
            config: Validated bridge configuration
            hub: Hub client; a HarmonyHub for ``config.hub`` by default
            feed: Power feed; a PowerFeed for ``config.mqtt`` by default
            runner_factory: Builds the runner for each convergence loop
            **data: Field values for the platform

        """
        super().__init__(**data)
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}."
            f"{self.name}"
        )
        self._config = config
        if hub is None:
            from harmonybridge.environments.harmony import HarmonyHub

            hub = HarmonyHub(
                address=config.hub.address,
                timeout_s=config.hub.timeout_s,
            )
        if feed is None:
            from harmonybridge.environments.mqtt import PowerFeed

            feed = PowerFeed(
                host=config.mqtt.host,
                port=config.mqtt.port,
                client_id=config.mqtt.client_id,
                keepalive=config.mqtt.keepalive,
            )
        self._hub = hub
        self._feed = feed
        self._actuator = Actuator(hub)
        self._controllers: dict[str, DeviceController] = {}

        for device in config.devices:
            controller = DeviceController.from_config(
                device, self._actuator, runner_factory=runner_factory
            )
            feed.bind(device.topic, controller.ingest_payload)
            self._controllers[device.name] = controller
            self._logger.info(
                f"Added {device.device_class} '{device.name}' "
                f"(hub label '{device.label}', topic {device.topic})"
            )

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def hub(self) -> HubClient:
        return self._hub

    @property
    def feed(self) -> Feed:
        return self._feed

    def controller(self, name: str) -> DeviceController:
        """Get a controller by device name.

        Raises:
            KeyError: If no device has that name

        """
        try:
            return self._controllers[name]
        except KeyError:
            raise KeyError(f"No device named '{name}'") from None

    def controllers(self) -> list[DeviceController]:
        return list(self._controllers.values())

    def start(self) -> None:
        """Start receiving power reports."""
        self._feed.start()

    def stop(self) -> None:
        """Cancel every loop, then release the feed and the hub."""
        for controller in self._controllers.values():
            controller.shutdown()
        self._feed.stop()
        close = getattr(self._hub, "close", None)
        if close is not None:
            close()
        self._logger.info("Platform stopped")

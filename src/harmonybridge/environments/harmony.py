"""Harmony hub client running aioharmony on a private event loop."""

import asyncio
import logging
import threading
from typing import Any

from aioharmony.const import ClientCallbackType
from aioharmony.harmonyapi import HarmonyAPI, SendCommandDevice
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from harmonybridge.base.entity import Entity
from harmonybridge.base.errors import ActionSendFailure
from harmonybridge.base.hub import DeviceDescription


class HubAction(BaseModel):
    """Decoded form of a hub function's opaque action string.

    The hub describes every button as a JSON document such as
    ``{"command": "PowerToggle", "type": "IRCommand",
    "deviceId": "12345678"}``.
    """

    model_config = ConfigDict(
        extra="allow", frozen=True, populate_by_name=True
    )

    command: str = Field(min_length=1)
    device_id: str = Field(min_length=1, alias="deviceId")


def decode_action(action: str) -> HubAction:
    """Decode an action string from the hub command table.

    Raises:
        ActionSendFailure: If the action is not a valid command

    """
    try:
        return HubAction.model_validate_json(action)
    except ValidationError as e:
        raise ActionSendFailure(f"Undecodable hub action {action!r}") from e


class HarmonyHub(Entity):
    """Shared connection to a Harmony hub.

    aioharmony is asynchronous, while the rest of the bridge is
    thread-based. The hub therefore runs its own event loop on a
    daemon thread and every public method submits a coroutine to it
    and blocks for the result, up to ``timeout_s``.

    The connection is opened lazily on first use. aioharmony's hub
    connector reconnects on its own after a drop; the connect and
    disconnect callbacks only track the link state. Calls made while
    the link is down fail with ActionSendFailure, which convergence
    loops treat as an attempt with no effect.
    """

    model_config = ConfigDict(frozen=False)

    address: str = Field(min_length=1, description="Hub IP address")
    timeout_s: float = Field(default=10.0, gt=0)

    def __init__(self, **data: Any) -> None:
        data.setdefault("name", data.get("address", "hub"))
        super().__init__(**data)
        self._logger = logging.getLogger(
            f"{self.__class__.__module__}.{self.__class__.__name__}."
            f"{self.name}"
        )
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._client: HarmonyAPI | None = None
        self._connected = False
        self._closing = False

    def is_connected(self) -> bool:
        return self._connected

    def ensure_connected(self) -> HarmonyAPI:
        """Connect to the hub on first use.

        Raises:
            ActionSendFailure: If the hub cannot be reached, or the
                connection dropped and has not been re-established

        """
        with self._lock:
            if self._client is not None:
                if not self._connected:
                    raise ActionSendFailure(
                        f"Hub {self.address} is disconnected, "
                        "reconnect pending"
                    )
                return self._client
            self._start_loop()
            self._closing = False
            self._client = self._run(self._connect())
            return self._client

    def get_available_commands(self) -> list[DeviceDescription]:
        """Return the hub's device command table."""
        client = self.ensure_connected()
        config = client.config or {}
        devices = []
        for raw in config.get("device", []):
            try:
                devices.append(DeviceDescription.model_validate(raw))
            except ValidationError:
                self._logger.warning(
                    f"Skipping malformed hub device {raw.get('label')!r}"
                )
        return devices

    def send(self, action: str) -> None:
        """Send one button press described by an opaque action string.

        Raises:
            ActionSendFailure: If the action is invalid or the hub
                reports that sending failed

        """
        decoded = decode_action(action)
        client = self.ensure_connected()
        failed = self._run(
            client.send_commands(
                SendCommandDevice(
                    device=decoded.device_id,
                    command=decoded.command,
                    delay=0,
                )
            )
        )
        if failed:
            detail = ", ".join(
                f"{result.code}: {result.msg}" for result in failed
            )
            raise ActionSendFailure(
                f"Hub rejected {decoded.command} for device "
                f"{decoded.device_id}: {detail}"
            )

    def close(self) -> None:
        """Disconnect from the hub and stop the event loop thread."""
        with self._lock:
            self._closing = True
            if self._loop is None:
                return
            if self._client is not None:
                try:
                    self._run(self._client.close())
                except ActionSendFailure as e:
                    self._logger.warning(f"Error closing hub connection: {e}")
            self._client = None
            self._connected = False
            self._loop.call_soon_threadsafe(self._loop.stop)
            if self._thread is not None:
                self._thread.join(timeout=5.0)
            self._loop = None
            self._thread = None

    def _start_loop(self) -> None:
        if self._loop is not None:
            return
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever,
            name=f"HarmonyHub-{self.name}",
            daemon=True,
        )
        self._thread.start()

    def _run(self, coroutine: Any) -> Any:
        """Run a coroutine on the hub loop and wait for its result."""
        future = asyncio.run_coroutine_threadsafe(coroutine, self._loop)
        try:
            return future.result(timeout=self.timeout_s)
        except ActionSendFailure:
            raise
        except Exception as e:
            future.cancel()
            raise ActionSendFailure(f"Hub {self.address}: {e!r}") from e

    async def _connect(self) -> HarmonyAPI:
        client = HarmonyAPI(
            ip_address=self.address,
            callbacks=ClientCallbackType(
                new_activity=None,
                new_activity_starting=None,
                config_updated=None,
                connect=self._on_connect,
                disconnect=self._on_disconnect,
            ),
        )
        if not await client.connect():
            await client.close()
            raise ActionSendFailure(f"Could not connect to hub {self.address}")
        self._connected = True
        self._logger.info(f"Connected to hub {self.address}")
        return client

    def _on_connect(self, _: Any = None) -> None:
        if self._client is not None and not self._connected:
            self._logger.info(f"Reconnected to hub {self.address}")
        self._connected = True

    def _on_disconnect(self, _: Any = None) -> None:
        self._connected = False
        if not self._closing:
            self._logger.error(
                f"Hub {self.address} disconnected, waiting for reconnect"
            )

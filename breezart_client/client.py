"""Session with a Breezart ventilation controller.

:class:`BreezartClient` ties the transport, the request queue and the
protocol state model together. It performs the connect handshake (a priming
properties request), reconnects with backoff after connection failures,
exposes typed get and set operations and dispatches notifications to
registered callbacks.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING, Any

from .config import BreezartConfig
from .const import POWER_OFF, POWER_ON, UNIT_STATES_ON, Command
from .errors import (
    BreezartDeviceError,
    BreezartProtocolError,
    BreezartTransportError,
    BreezartValidationError,
)
from .frame import build_request, parse_frame
from .models import DeviceState
from .protocol import apply_reply
from .request_queue import RequestQueue
from .transport import BreezartTransport, backoff_delay

if TYPE_CHECKING:
    from collections.abc import Callable

    from .models import Properties, Sensors, Status

_LOGGER = logging.getLogger(__name__)


def _is_integer(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _register(
    callbacks: list[Callable[..., None]], callback: Callable[..., None]
) -> Callable[[], None]:
    callbacks.append(callback)

    def unregister() -> None:
        if callback in callbacks:
            callbacks.remove(callback)

    return unregister


class BreezartClient:
    """Client for one Breezart controller.

    All device traffic goes through a FIFO queue, so operations may be
    awaited concurrently; they are sent one after another.

    Notifications:
    - connect: the handshake completed
    - disconnect: an established connection was closed
    - error: a device or transport error, with the exception
    - timeout: the connection was idle for too long
    - data: every line received from the controller
    """

    def __init__(self, config: BreezartConfig | dict[str, Any]) -> None:
        """Initialize the client.

        Args:
            config: Validated config, or a mapping validated with
                :meth:`BreezartConfig.from_dict`.

        Raises:
            BreezartConfigError: If the mapping is invalid.

        """
        if not isinstance(config, BreezartConfig):
            config = BreezartConfig.from_dict(config)
        self._config = config
        self._transport = BreezartTransport(
            config.host,
            config.port,
            connect_timeout=config.connect_timeout,
            response_timeout=config.response_timeout,
            idle_timeout=config.idle_timeout,
            on_data=self._handle_data,
            on_idle=self._handle_idle,
            on_closed=self._handle_closed,
        )
        self._queue = RequestQueue(self._transport.async_send)
        self._state: DeviceState = DeviceState()
        self._connected = False
        self._shutdown = False
        self._reconnect_task: asyncio.Task[None] | None = None
        self._reconnect_attempt = 0

        self._connect_callbacks: list[Callable[[], None]] = []
        self._disconnect_callbacks: list[Callable[[], None]] = []
        self._error_callbacks: list[Callable[[Exception], None]] = []
        self._timeout_callbacks: list[Callable[[], None]] = []
        self._data_callbacks: list[Callable[[str], None]] = []

    @property
    def config(self) -> BreezartConfig:
        """Return the connection settings."""
        return self._config

    @property
    def connected(self) -> bool:
        """Return True once the handshake completed."""
        return self._connected

    @property
    def state(self) -> DeviceState:
        """Return the latest state snapshot."""
        return self._state

    @property
    def properties(self) -> Properties | None:
        """Return the unit properties, None until fetched."""
        return self._state.properties

    @property
    def status(self) -> Status | None:
        """Return the unit status, None until fetched."""
        return self._state.status

    @property
    def sensors(self) -> Sensors | None:
        """Return the sensor readings, None until fetched."""
        return self._state.sensors

    def as_dict(self) -> dict[str, Any]:
        """Return the connection and state snapshot as a dictionary."""
        return {
            "host": self._config.host,
            "port": self._config.port,
            "connected": self._connected,
            **self._state.as_dict(),
        }

    def register_connect_callback(
        self, callback: Callable[[], None]
    ) -> Callable[[], None]:
        """Register a callback for a completed handshake.

        Args:
            callback: Function to call when the client is ready.

        Returns:
            A function to unregister the callback.

        """
        return _register(self._connect_callbacks, callback)

    def register_disconnect_callback(
        self, callback: Callable[[], None]
    ) -> Callable[[], None]:
        """Register a callback for a closed connection."""
        return _register(self._disconnect_callbacks, callback)

    def register_error_callback(
        self, callback: Callable[[Exception], None]
    ) -> Callable[[], None]:
        """Register a callback for device and transport errors.

        Args:
            callback: Function called with the exception.

        Returns:
            A function to unregister the callback.

        """
        return _register(self._error_callbacks, callback)

    def register_timeout_callback(
        self, callback: Callable[[], None]
    ) -> Callable[[], None]:
        """Register a callback for the idle timeout."""
        return _register(self._timeout_callbacks, callback)

    def register_data_callback(
        self, callback: Callable[[str], None]
    ) -> Callable[[], None]:
        """Register a callback for every received line."""
        return _register(self._data_callbacks, callback)

    async def async_connect(self) -> bool:
        """Connect to the controller and fetch the unit properties.

        Returns:
            True if the client is ready, False otherwise. Transport failures
            schedule a reconnect, a rejected password does not.

        """
        if self._connected:
            _LOGGER.debug("Already connected to %s", self._config.label)
            return True

        self._shutdown = False
        return await self._async_connect()

    async def _async_connect(self) -> bool:
        try:
            await self._transport.async_open()
        except BreezartTransportError as err:
            if self._shutdown:
                _LOGGER.debug("Connect to %s aborted by disconnect", self._config.label)
                return False
            _LOGGER.warning("Failed to connect to %s: %s", self._config.label, err)
            self._emit_error(err)
            self._schedule_reconnect()
            return False

        self._queue.start()
        try:
            await self._async_execute(Command.PROPERTIES)
        except BreezartDeviceError as err:
            _LOGGER.error(  # noqa: TRY400
                "Breezart controller %s rejected the handshake: %s",
                self._config.label,
                err,
            )
            self._emit_error(err)
            await self._async_teardown()
            return False
        except (BreezartTransportError, BreezartProtocolError) as err:
            if self._shutdown:
                _LOGGER.debug(
                    "Handshake with %s aborted by disconnect", self._config.label
                )
                await self._async_teardown("Disconnected")
                return False
            _LOGGER.warning("Handshake with %s failed: %s", self._config.label, err)
            # A lost connection was already reported by the transport
            if self._transport.connected:
                self._emit_error(err)
            await self._async_teardown()
            self._schedule_reconnect()
            return False

        if self._shutdown:
            await self._async_teardown("Disconnected")
            return False

        self._connected = True
        self._reconnect_attempt = 0
        _LOGGER.info("Breezart controller %s is ready", self._config.label)
        self._emit(self._connect_callbacks, "connect")
        return True

    async def async_disconnect(self) -> None:
        """Close the connection and stop reconnecting."""
        self._shutdown = True

        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._reconnect_task
            self._reconnect_task = None

        was_connected = self._connected
        self._connected = False
        await self._async_teardown("Disconnected")
        if was_connected:
            self._emit(self._disconnect_callbacks, "disconnect")

    async def async_get_properties(self) -> Properties:
        """Fetch the unit properties (``VPr07``)."""
        return await self._async_request(Command.PROPERTIES)

    async def async_get_status(self) -> Status:
        """Fetch the unit status (``VSt07``)."""
        return await self._async_request(Command.STATUS)

    async def async_get_sensor_values(self) -> Sensors:
        """Fetch the sensor readings (``VSens``)."""
        return await self._async_request(Command.SENSORS)

    async def async_get_current_status(self) -> DeviceState:
        """Fetch the status and then the sensor readings.

        Returns:
            The state snapshot after both replies were applied.

        """
        await self.async_get_status()
        await self.async_get_sensor_values()
        return self._state

    async def async_set_fan_speed(self, target: int) -> int:
        """Set the target fan speed.

        Args:
            target: Speed between the unit's minimum and maximum speed.

        Returns:
            The speed accepted by the controller.

        Raises:
            BreezartValidationError: If the speed cannot be set.
            BreezartDeviceError: If the controller rejects the value.

        """
        if not _is_integer(target):
            msg = "The target speed must be an integer"
            raise BreezartValidationError(msg)
        properties = self._require_properties()
        if properties.vav_mode:
            msg = "VAVMode found. The fan speed can't be changed in VAV modes"
            raise BreezartValidationError(msg)
        if not properties.speed_min <= target <= properties.speed_max:
            msg = (
                f"The target speed must be between {properties.speed_min} "
                f"and {properties.speed_max}"
            )
            raise BreezartValidationError(msg)

        status = self._state.status
        if status is not None and status.speed_target == target:
            _LOGGER.debug("Target speed is already %d", target)
            return target
        return await self._async_request(Command.SET_FAN_SPEED, target)

    async def async_set_temperature(self, target: int) -> int:
        """Set the target temperature in degrees Celsius.

        The lower bound is the larger of the minimum reported by the unit
        properties and the one reported by the current status.
        """
        if not _is_integer(target):
            msg = "The target temperature must be an integer"
            raise BreezartValidationError(msg)
        properties = self._require_properties()
        status = self._state.status
        temp_min = properties.temp_min
        if status is not None:
            temp_min = max(temp_min, status.temp_min)
        if not temp_min <= target <= properties.temp_max:
            msg = (
                f"The target temperature must be between {temp_min} "
                f"and {properties.temp_max}"
            )
            raise BreezartValidationError(msg)

        if status is not None and status.temper_target == target:
            _LOGGER.debug("Target temperature is already %d", target)
            return target
        return await self._async_request(Command.SET_TEMPERATURE, target)

    async def async_set_humidity(self, target: int) -> int:
        """Set the target humidity in percent on units with a humidifier."""
        if not _is_integer(target):
            msg = "The target humidity must be an integer"
            raise BreezartValidationError(msg)
        properties = self._require_properties()
        if not properties.is_humid:
            msg = "Humidifier not found. The target humidity can't be changed"
            raise BreezartValidationError(msg)
        if not properties.humid_min <= target <= properties.humid_max:
            msg = (
                f"The target humidity must be between {properties.humid_min} "
                f"and {properties.humid_max}"
            )
            raise BreezartValidationError(msg)

        status = self._state.status
        if status is not None and status.humid_target == target:
            _LOGGER.debug("Target humidity is already %d", target)
            return target
        return await self._async_request(Command.SET_HUMIDITY, target)

    async def async_set_power(self, on: bool) -> bool:  # noqa: FBT001
        """Turn the unit on or off.

        The status is refreshed first; a unit that is on or turning on counts
        as on, a unit that is off or turning off counts as off.

        Args:
            on: True to turn the unit on.

        Returns:
            The requested power state.

        """
        if not isinstance(on, bool):
            msg = "The power state must be a boolean"
            raise BreezartValidationError(msg)
        self._require_properties()

        status = await self.async_get_status()
        if (status.unit_state in UNIT_STATES_ON) == on:
            _LOGGER.debug("Unit is already %s", "on" if on else "off")
            return on
        await self._async_request(Command.SET_POWER, POWER_ON if on else POWER_OFF)
        return on

    def _require_properties(self) -> Properties:
        properties = self._state.properties
        if properties is None:
            msg = "Unit properties are not loaded, connect first"
            raise BreezartValidationError(msg)
        return properties

    async def _async_request(self, command: str, data: int | None = None) -> Any:
        """Send a request, reporting device and transport errors."""
        try:
            return await self._async_execute(command, data)
        except (BreezartDeviceError, BreezartTransportError) as err:
            self._emit_error(err)
            raise

    async def _async_execute(self, command: str, data: int | None = None) -> Any:
        frame = build_request(command, self._config.password, data)

        def handle(reply: str) -> Any:
            self._state, value = apply_reply(self._state, command, parse_frame(reply))
            return value

        return await self._queue.async_submit(frame, handle)

    async def _async_teardown(self, reason: str = "Connection closed") -> None:
        self._queue.stop(reason)
        await self._transport.async_close()

    def _schedule_reconnect(self) -> None:
        """Schedule a reconnection attempt with exponential backoff."""
        if self._shutdown or not self._config.auto_reconnect:
            return
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return  # Reconnection already scheduled

        delay = backoff_delay(self._reconnect_attempt)
        self._reconnect_attempt += 1
        _LOGGER.info("Reconnecting to %s in %.0f s", self._config.label, delay)

        async def reconnect() -> None:
            await asyncio.sleep(delay)
            self._reconnect_task = None
            if not self._shutdown:
                await self._async_connect()

        self._reconnect_task = asyncio.create_task(reconnect())

    def _handle_data(self, line: str) -> None:
        for callback in list(self._data_callbacks):
            try:
                callback(line)
            except Exception:
                _LOGGER.exception("Error in data callback")

    def _handle_idle(self) -> None:
        self._emit(self._timeout_callbacks, "timeout")

    def _handle_closed(self, cause: BreezartTransportError) -> None:
        was_connected = self._connected
        self._connected = False
        self._queue.stop(str(cause))
        if was_connected:
            self._emit(self._disconnect_callbacks, "disconnect")
        self._emit_error(cause)
        self._schedule_reconnect()

    def _emit(self, callbacks: list[Callable[[], None]], name: str) -> None:
        for callback in list(callbacks):
            try:
                callback()
            except Exception:
                _LOGGER.exception("Error in %s callback", name)

    def _emit_error(self, err: Exception) -> None:
        for callback in list(self._error_callbacks):
            try:
                callback(err)
            except Exception:
                _LOGGER.exception("Error in error callback")

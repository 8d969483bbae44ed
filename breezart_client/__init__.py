"""Asyncio client for Breezart ventilation controllers."""

from .client import BreezartClient
from .config import BreezartConfig
from .const import Command, ResponsePrefix
from .errors import (
    BreezartAuthError,
    BreezartConfigError,
    BreezartConnectionError,
    BreezartDecodeError,
    BreezartDeviceError,
    BreezartError,
    BreezartIdleTimeoutError,
    BreezartProtocolError,
    BreezartResponseTimeoutError,
    BreezartTransportError,
    BreezartValidationError,
    DeviceErrorKind,
)
from .hexcodec import RangeError
from .models import Acknowledgement, DeviceState, Properties, Sensors, Status

__all__ = [
    "Acknowledgement",
    "BreezartAuthError",
    "BreezartClient",
    "BreezartConfig",
    "BreezartConfigError",
    "BreezartConnectionError",
    "BreezartDecodeError",
    "BreezartDeviceError",
    "BreezartError",
    "BreezartIdleTimeoutError",
    "BreezartProtocolError",
    "BreezartResponseTimeoutError",
    "BreezartTransportError",
    "BreezartValidationError",
    "Command",
    "DeviceErrorKind",
    "DeviceState",
    "Properties",
    "RangeError",
    "ResponsePrefix",
    "Sensors",
    "Status",
]

"""Exceptions raised by the Breezart client and the device error classifier.

The controller reports failures with a reply whose leading field is one of
the ``VE...`` error prefixes. :func:`classify_device_error` maps such a reply
to a :class:`BreezartDeviceError` carrying a semantic :class:`DeviceErrorKind`.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

from .const import ErrorPrefix

if TYPE_CHECKING:
    from collections.abc import Sequence


class BreezartError(Exception):
    """Base exception for Breezart client errors."""


class BreezartConfigError(BreezartError):
    """Exception raised for an invalid client configuration."""


class BreezartValidationError(BreezartError):
    """Exception raised when a request is rejected before reaching the wire."""


class BreezartProtocolError(BreezartError):
    """Exception raised when a reply does not match the issued request."""


class BreezartDecodeError(BreezartProtocolError):
    """Exception raised when a decoded field is malformed or out of range."""


class BreezartTransportError(BreezartError):
    """Base exception for socket level failures."""


class BreezartConnectionError(BreezartTransportError):
    """Exception raised when the connection is unavailable or lost."""


class BreezartResponseTimeoutError(BreezartTransportError):
    """Exception raised when no reply arrives for a sent frame."""


class BreezartIdleTimeoutError(BreezartTransportError):
    """Exception raised when the connection was idle for too long."""


class DeviceErrorKind(StrEnum):
    """Semantic kinds of device-reported errors."""

    WRONG_PASSWORD = "wrong_password"
    WRONG_FORMAT = "wrong_format"
    UNKNOWN_COMMAND_1 = "unknown_command_1"
    UNKNOWN_COMMAND_2 = "unknown_command_2"
    DATA_ERROR = "data_error"
    TOO_MANY_VARIABLES = "too_many_variables"
    DATA_TOO_LOW = "data_too_low"
    DATA_TOO_HIGH = "data_too_high"
    NO_UNIT_CONNECTION = "no_unit_connection"
    NO_VAV_CONNECTION = "no_vav_connection"


DEVICE_ERROR_MESSAGES = {
    DeviceErrorKind.WRONG_PASSWORD: "Wrong password",
    DeviceErrorKind.WRONG_FORMAT: "Wrong format of request",
    DeviceErrorKind.UNKNOWN_COMMAND_1: "Request of type 1 not found",
    DeviceErrorKind.UNKNOWN_COMMAND_2: "Request of type 2 not found",
    DeviceErrorKind.DATA_ERROR: "Error in variable",
    DeviceErrorKind.TOO_MANY_VARIABLES: "Many variables (more than 17)",
    DeviceErrorKind.DATA_TOO_LOW: (
        "The value of the variable is less than the minimum allowed"
    ),
    DeviceErrorKind.DATA_TOO_HIGH: (
        "The value of the variable is greater than the maximum allowed"
    ),
    DeviceErrorKind.NO_UNIT_CONNECTION: "No connection with the ventilation unit",
    DeviceErrorKind.NO_VAV_CONNECTION: (
        "No connection with the JL module (the remote of VAV)"
    ),
}

ERROR_PREFIX_MAP = {
    ErrorPrefix.WRONG_PASSWORD: DeviceErrorKind.WRONG_PASSWORD,
    ErrorPrefix.WRONG_FORMAT: DeviceErrorKind.WRONG_FORMAT,
    ErrorPrefix.UNKNOWN_COMMAND_1: DeviceErrorKind.UNKNOWN_COMMAND_1,
    ErrorPrefix.UNKNOWN_COMMAND_2: DeviceErrorKind.UNKNOWN_COMMAND_2,
    ErrorPrefix.DATA: DeviceErrorKind.DATA_ERROR,
    ErrorPrefix.NO_UNIT_CONNECTION: DeviceErrorKind.NO_UNIT_CONNECTION,
    ErrorPrefix.NO_VAV_CONNECTION: DeviceErrorKind.NO_VAV_CONNECTION,
}

# Sub-codes of VEDat, checked in order (TM before the one-letter codes)
DATA_ERROR_CODE_MAP = (
    ("TM", DeviceErrorKind.TOO_MANY_VARIABLES),
    ("E", DeviceErrorKind.DATA_ERROR),
    ("L", DeviceErrorKind.DATA_TOO_LOW),
    ("H", DeviceErrorKind.DATA_TOO_HIGH),
)


class BreezartDeviceError(BreezartError):
    """Exception raised for an error reply sent by the controller.

    Attributes:
        kind: Semantic error kind.
        response: The raw reply, kept for diagnostics.

    """

    def __init__(self, kind: DeviceErrorKind, response: str) -> None:
        """Initialize the error with its kind and the raw reply."""
        super().__init__(f"{DEVICE_ERROR_MESSAGES[kind]}, {response}")
        self.kind = kind
        self.response = response


class BreezartAuthError(BreezartDeviceError):
    """Exception raised when the controller rejects the password."""


def is_error_prefix(prefix: str) -> bool:
    """Return True if prefix is a known device error prefix."""
    return prefix in ERROR_PREFIX_MAP


def _data_error_kind(fields: Sequence[str]) -> DeviceErrorKind:
    code = fields[1] if len(fields) > 1 else ""
    for code_prefix, kind in DATA_ERROR_CODE_MAP:
        if code.startswith(code_prefix):
            return kind
    return DeviceErrorKind.DATA_ERROR


def classify_device_error(
    fields: Sequence[str], response: str
) -> BreezartDeviceError | None:
    """Map an error reply to the matching exception.

    Args:
        fields: The reply split into non-empty fields.
        response: The raw reply line.

    Returns:
        The exception to raise, or None if the reply is not an error.

    """
    if not fields or not is_error_prefix(fields[0]):
        return None

    kind = ERROR_PREFIX_MAP[ErrorPrefix(fields[0])]
    if kind is DeviceErrorKind.DATA_ERROR:
        kind = _data_error_kind(fields)

    if kind is DeviceErrorKind.WRONG_PASSWORD:
        return BreezartAuthError(kind, response)
    return BreezartDeviceError(kind, response)

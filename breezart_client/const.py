"""Constants for the Breezart client.

This module contains the protocol constants used throughout the library,
including command prefixes, device error prefixes, default timeouts and
configuration keys.
"""

from enum import StrEnum

DEFAULT_PORT = 1560
DEFAULT_PASSWORD = 0

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_RESPONSE_TIMEOUT = 3.0  # Seconds to wait for the reply to one frame
DEFAULT_IDLE_TIMEOUT = 5.0  # Seconds without socket activity before teardown

RECONNECT_BASE_DELAY = 1.0
RECONNECT_MAX_DOUBLINGS = 8  # 1 s .. 256 s

DELIMITER = "_"
LINE_TERMINATOR = "\r\n"
ENCODING = "utf-8"  # Status messages may carry Cyrillic text
READ_CHUNK_SIZE = 4096

WORD_MAX = 0xFFFF
SENSOR_NO_DATA = 0xFB07
BYTE_NO_DATA = 0xFF

POWER_ON = 0x11
POWER_OFF = 0x10

VAV_ZONE_COUNT = 20
SCENE_COUNT = 8

CONF_HOST = "host"
CONF_PORT = "port"
CONF_PASSWORD = "password"
CONF_NAME = "name"
CONF_CONNECT_TIMEOUT = "connect_timeout"
CONF_RESPONSE_TIMEOUT = "response_timeout"
CONF_IDLE_TIMEOUT = "idle_timeout"
CONF_AUTO_RECONNECT = "auto_reconnect"


class Command(StrEnum):
    """Request prefixes understood by the controller."""

    STATUS = "VSt07"
    SCENE_ICONS = "VScIc"
    SENSORS = "VSens"
    PROPERTIES = "VPr07"
    SET_POWER = "VWPwr"
    SET_TEMPERATURE = "VWTmp"
    SET_HUMIDITY = "VWHum"
    SET_FAN_SPEED = "VWSpd"
    SET_VAV_FAN_SPEED = "VWZon"
    ACTIVATE_SCENE = "VWScn"
    SET_DATE_TIME = "VWSdt"
    SET_MODE = "VWFtr"


class ResponsePrefix(StrEnum):
    """Leading field of a successful reply."""

    PROPERTIES = "VPr07"
    STATUS = "VSt07"
    SENSORS = "VSens"
    OK = "OK"


class ErrorPrefix(StrEnum):
    """Leading field of a device error reply."""

    WRONG_PASSWORD = "VEPas"
    WRONG_FORMAT = "VEFrm"
    UNKNOWN_COMMAND_1 = "VECd1"
    UNKNOWN_COMMAND_2 = "VECd2"
    DATA = "VEDat"
    NO_UNIT_CONNECTION = "VECon"
    NO_VAV_CONNECTION = "VECJL"


# Reply expected for each read request
EXPECTED_RESPONSE_MAP = {
    Command.PROPERTIES: ResponsePrefix.PROPERTIES,
    Command.STATUS: ResponsePrefix.STATUS,
    Command.SENSORS: ResponsePrefix.SENSORS,
}

UNIT_STATE_OFF = 0
UNIT_STATE_ON = 1
UNIT_STATE_TURNING_OFF = 2
UNIT_STATE_TURNING_ON = 3
UNIT_STATES_ON = frozenset({UNIT_STATE_ON, UNIT_STATE_TURNING_ON})


def vav_zone_command(zone: int) -> str:
    """Return the airflow request prefix for VAV zone 1..20."""
    if not 1 <= zone <= VAV_ZONE_COUNT:
        msg = f"VAV zone must be between 1 and {VAV_ZONE_COUNT}, got {zone}"
        raise ValueError(msg)
    return f"VZL{zone:02d}"


def scene_command(scene: int) -> str:
    """Return the request prefix for stored scene 1..8."""
    if not 1 <= scene <= SCENE_COUNT:
        msg = f"Scene must be between 1 and {SCENE_COUNT}, got {scene}"
        raise ValueError(msg)
    return f"VSc{scene:02d}"

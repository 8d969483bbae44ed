"""Bit layouts of the controller replies and the single state apply step.

Each reply word is a 16-bit value whose bit ranges hold individual fields.
The layouts below are declarative tables of :class:`FieldSpec`; decoding a
reply walks the table, extracts each range with
:func:`~breezart_client.hexcodec.extract_bits` and checks the value against
the range defined by the protocol. A value outside its range means the reply
was not the frame we think it is, so it is reported as a decode error and
never stored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from .const import (
    BYTE_NO_DATA,
    DELIMITER,
    EXPECTED_RESPONSE_MAP,
    SENSOR_NO_DATA,
    WORD_MAX,
    Command,
    ResponsePrefix,
)
from .errors import BreezartDecodeError, BreezartProtocolError, classify_device_error
from .hexcodec import extract_bits, hex_to_dec, is_hex_token, to_signed
from .models import Acknowledgement, DeviceState, Properties, Sensors, Status

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from .frame import Frame

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSpec:
    """Location and valid range of one field inside a reply word."""

    name: str
    word: int
    first_bit: int
    last_bit: int
    minimum: int = 0
    maximum: int = 1
    signed: bool = False
    no_data: int | None = None


@dataclass(frozen=True)
class SensorSpec:
    """Scaling and valid range of one sensor value."""

    name: str
    scale: float
    signed: bool
    minimum: float
    maximum: float


def _flag(name: str, word: int, bit: int) -> FieldSpec:
    return FieldSpec(name, word, bit, bit)


PROPERTIES_WORD_COUNT = 7
PROPERTIES_LAYOUT: tuple[FieldSpec, ...] = (
    # bitTempr
    FieldSpec("temp_min", 0, 0, 7, 5, 15),
    FieldSpec("temp_max", 0, 8, 15, 30, 45),
    # bitSpeed
    FieldSpec("speed_min", 1, 0, 7, 1, 7),
    FieldSpec("speed_max", 1, 8, 15, 2, 10),
    # bitHumid
    FieldSpec("humid_min", 2, 0, 7, 0, 100),
    FieldSpec("humid_max", 2, 8, 15, 0, 100),
    # bitMisc, bits 5-7 reserved
    FieldSpec("nvav_zone", 3, 0, 4, 0, 20),
    _flag("vav_mode", 3, 8),
    _flag("is_reg_press_vav", 3, 9),
    _flag("is_show_hum", 3, 10),
    _flag("is_casc_reg_t", 3, 11),
    _flag("is_casc_reg_h", 3, 12),
    _flag("is_humid", 3, 13),
    _flag("is_cooler", 3, 14),
    _flag("is_auto", 3, 15),
    # BitPrt
    FieldSpec("prot_sub_vers", 4, 0, 7, 0, 255),
    FieldSpec("prot_vers", 4, 8, 15, 0, 255),
    # BitVerTPD
    FieldSpec("lo_ver_tpd", 5, 0, 7, 0, 255),
    FieldSpec("hi_ver_tpd", 5, 8, 15, 0, 255),
    # BitVerContr
    FieldSpec("firmware_ver", 6, 0, 15, 0, WORD_MAX),
)

STATUS_WORD_COUNT = 9
STATUS_LAYOUT: tuple[FieldSpec, ...] = (
    # bitState
    _flag("pwr_btn_state", 0, 0),
    _flag("is_warn_err", 0, 1),
    _flag("is_fatal_err", 0, 2),
    _flag("danger_overheat", 0, 3),
    _flag("auto_off", 0, 4),
    _flag("change_filter", 0, 5),
    FieldSpec("mode_set", 0, 6, 8, 0, 4),
    _flag("humid_mode", 0, 9),
    _flag("speed_is_down", 0, 10),
    _flag("func_restart", 0, 11),
    _flag("func_comfort", 0, 12),
    _flag("humid_auto", 0, 13),
    _flag("scen_block", 0, 14),
    _flag("btn_pwr_block", 0, 15),
    # bitMode
    FieldSpec("unit_state", 1, 0, 1, 0, 3),
    _flag("scen_allow", 1, 2),
    FieldSpec("mode", 1, 3, 5, 0, 5),
    FieldSpec("num_active_scen", 1, 6, 9, 0, 8),
    FieldSpec("who_activate_scen", 1, 10, 12, 0, 4),
    FieldSpec("num_ico_hf", 1, 13, 15, 0, 7),
    # bitTempr, current temperature is a signed char
    FieldSpec("tempr", 2, 0, 7, -50, 70, signed=True),
    FieldSpec("temper_target", 2, 8, 15, 0, 50),
    # bitHumid
    FieldSpec("humid", 3, 0, 7, 0, 100, no_data=BYTE_NO_DATA),
    FieldSpec("humid_target", 3, 8, 15, 0, 100),
    # bitSpeed
    FieldSpec("speed", 4, 0, 3, 0, 10),
    FieldSpec("speed_target", 4, 4, 7, 0, 10),
    FieldSpec("speed_fact", 4, 8, 15, 0, 100, no_data=BYTE_NO_DATA),
    # bitMisc
    FieldSpec("temp_min", 5, 0, 3, 0, 15),
    FieldSpec("color_msg", 5, 4, 5, 0, 2),
    FieldSpec("color_ind", 5, 6, 7, 0, 2),
    FieldSpec("filter_dust", 5, 8, 15, 0, 250, no_data=BYTE_NO_DATA),
    # bitTime
    FieldSpec("time_minutes", 6, 0, 7, 0, 59),
    FieldSpec("time_hours", 6, 8, 15, 0, 23),
    # bitDate
    FieldSpec("time_day", 7, 0, 7, 0, 31),
    FieldSpec("time_month", 7, 8, 15, 0, 12),
    # bitYear
    FieldSpec("time_day_of_week", 8, 0, 7, 0, 7),
    FieldSpec("time_year", 8, 8, 15, 0, 99),
)

SENSORS_LAYOUT: tuple[SensorSpec, ...] = (
    SensorSpec("t_inf", 0.1, True, -100.0, 150.0),
    SensorSpec("h_inf", 0.1, False, 0.0, 100.0),
    SensorSpec("t_room", 0.1, True, -100.0, 150.0),
    SensorSpec("h_room", 0.1, False, 0.0, 100.0),
    SensorSpec("t_out", 0.1, True, -100.0, 150.0),
    SensorSpec("h_out", 0.1, False, 0.0, 100.0),
    SensorSpec("t_hf", 0.1, True, -100.0, 150.0),
    SensorSpec("pwr", 1, False, 0, WORD_MAX),
)

# Status field updated by the acknowledgement of each set command
ACK_STATUS_FIELD_MAP = {
    Command.SET_FAN_SPEED: "speed_target",
    Command.SET_TEMPERATURE: "temper_target",
    Command.SET_HUMIDITY: "humid_target",
}


def _check_words(prefix: str, words: Sequence[str], count: int) -> None:
    if len(words) < count:
        msg = f"{prefix} reply has {len(words)} words, expected {count}"
        raise BreezartDecodeError(msg)
    for index, word in enumerate(words[:count]):
        if not is_hex_token(word):
            msg = f"{prefix} word {index} is not a 16-bit hex word: {word!r}"
            raise BreezartDecodeError(msg)


def _check_range(name: str, value: float, minimum: float, maximum: float) -> None:
    if not minimum <= value <= maximum:
        msg = f"{name}={value} is outside {minimum}..{maximum}, frame desync?"
        raise BreezartDecodeError(msg)


def decode_layout(
    prefix: str, words: Sequence[str], layout: Sequence[FieldSpec], count: int
) -> dict[str, int | None]:
    """Decode words according to a layout table.

    Args:
        prefix: Reply prefix, used in error messages.
        words: The reply fields following the prefix.
        layout: Field table to apply.
        count: Number of words the layout requires.

    Returns:
        Mapping of field name to decoded value (None for "no data").

    Raises:
        BreezartDecodeError: If a word is missing, malformed or a value is
            out of range.

    """
    _check_words(prefix, words, count)
    values: dict[str, int | None] = {}
    for field in layout:
        value = extract_bits(words[field.word], field.first_bit, field.last_bit)
        if field.no_data is not None and value == field.no_data:
            values[field.name] = None
            continue
        if field.signed:
            value = to_signed(value, field.last_bit - field.first_bit + 1)
        _check_range(field.name, value, field.minimum, field.maximum)
        values[field.name] = value
    return values


def decode_properties(words: Sequence[str]) -> Properties:
    """Decode the words of a ``VPr07`` reply."""
    values = decode_layout(
        ResponsePrefix.PROPERTIES, words, PROPERTIES_LAYOUT, PROPERTIES_WORD_COUNT
    )
    return Properties(**values)


def status_message(raw: str) -> str:
    """Return the free text following the status words of a raw reply.

    The text is cut from the raw line, so delimiters inside the message,
    doubled ones included, are kept as sent.
    """
    rest = raw
    for _ in range(STATUS_WORD_COUNT + 1):
        _, _, rest = rest.lstrip(DELIMITER).partition(DELIMITER)
    return rest


def decode_status(words: Sequence[str], msg: str | None = None) -> Status:
    """Decode the words of a ``VSt07`` reply.

    The words are followed by a free text message. Without ``msg`` the
    fields after the last word are joined back with the delimiter.
    """
    values = decode_layout(
        ResponsePrefix.STATUS, words, STATUS_LAYOUT, STATUS_WORD_COUNT
    )
    if msg is None:
        msg = DELIMITER.join(words[STATUS_WORD_COUNT:])
    return Status(**values, msg=msg)


def decode_sensor_value(sensor: SensorSpec, word: str) -> float | int | None:
    """Decode one sensor word, returning None for the no-data sentinel."""
    raw = hex_to_dec(word)
    if raw is None or not is_hex_token(word):
        msg = f"{sensor.name} is not a 16-bit hex word: {word!r}"
        raise BreezartDecodeError(msg)
    if raw == SENSOR_NO_DATA:
        return None
    if sensor.signed:
        raw = to_signed(raw, 16)
    value = raw if sensor.scale == 1 else round(raw * sensor.scale, 1)
    _check_range(sensor.name, value, sensor.minimum, sensor.maximum)
    return value


def decode_sensors(words: Sequence[str]) -> Sensors:
    """Decode the values of a ``VSens`` reply."""
    _check_words(ResponsePrefix.SENSORS, words, len(SENSORS_LAYOUT))
    values = {
        sensor.name: decode_sensor_value(sensor, word)
        for sensor, word in zip(SENSORS_LAYOUT, words, strict=False)
    }
    return Sensors(**values)


def decode_acknowledgement(frame: Frame, command: str) -> Acknowledgement:
    """Decode an ``OK_<command>_<value>`` reply to the given command.

    Raises:
        BreezartProtocolError: If the reply echoes a different command.
        BreezartDecodeError: If the echoed value is missing or malformed.

    """
    words = frame.words
    echoed = words[0] if words else ""
    if echoed != command:
        msg = (
            f"Incorrect acknowledgement received from Breezart. "
            f"Must be: {command}, but received: {frame.raw}"
        )
        raise BreezartProtocolError(msg)
    value = hex_to_dec(words[1]) if len(words) > 1 else None
    if value is None:
        msg = f"Acknowledgement without a valid value: {frame.raw}"
        raise BreezartDecodeError(msg)
    return Acknowledgement(command=echoed, value=value)


def _apply_properties(
    state: DeviceState, _command: str, frame: Frame
) -> tuple[DeviceState, Properties]:
    properties = decode_properties(frame.words)
    return replace(state, properties=properties, version=state.version + 1), properties


def _apply_status(
    state: DeviceState, _command: str, frame: Frame
) -> tuple[DeviceState, Status]:
    status = decode_status(frame.words, status_message(frame.raw))
    return replace(state, status=status, version=state.version + 1), status


def _apply_sensors(
    state: DeviceState, _command: str, frame: Frame
) -> tuple[DeviceState, Sensors]:
    sensors = decode_sensors(frame.words)
    return replace(state, sensors=sensors, version=state.version + 1), sensors


def _apply_acknowledgement(
    state: DeviceState, command: str, frame: Frame
) -> tuple[DeviceState, int]:
    ack = decode_acknowledgement(frame, command)
    status = state.status
    field_name = ACK_STATUS_FIELD_MAP.get(command)
    if status is not None and field_name is not None:
        status = replace(status, **{field_name: ack.value})
    return replace(state, status=status, version=state.version + 1), ack.value


_APPLIERS: dict[
    ResponsePrefix, Callable[[DeviceState, str, Frame], tuple[DeviceState, Any]]
] = {
    ResponsePrefix.PROPERTIES: _apply_properties,
    ResponsePrefix.STATUS: _apply_status,
    ResponsePrefix.SENSORS: _apply_sensors,
    ResponsePrefix.OK: _apply_acknowledgement,
}


def expected_prefix(command: str) -> ResponsePrefix:
    """Return the reply prefix expected for a request command."""
    return EXPECTED_RESPONSE_MAP.get(command, ResponsePrefix.OK)


def apply_reply(
    state: DeviceState, command: str, frame: Frame
) -> tuple[DeviceState, Any]:
    """Apply a reply to the state snapshot.

    This is the only place where decoded device fields change.

    Args:
        state: Current snapshot.
        command: Command prefix of the request the reply answers.
        frame: The parsed reply.

    Returns:
        Tuple of (new snapshot, decoded value for the caller).

    Raises:
        BreezartDeviceError: If the reply is a device error.
        BreezartProtocolError: If the reply does not answer the command.
        BreezartDecodeError: If the reply content is invalid.

    """
    error = classify_device_error(frame.fields, frame.raw)
    if error is not None:
        raise error

    expected = expected_prefix(command)
    if frame.prefix != expected:
        received = frame.prefix or repr(frame.raw)
        msg = (
            f"Incorrect response received from Breezart. "
            f"Must be: {expected}, but received: {received}"
        )
        raise BreezartProtocolError(msg)

    new_state, value = _APPLIERS[expected](state, command, frame)
    _LOGGER.debug("Applied %s reply, state version %d", expected, new_state.version)
    return new_state, value

"""Data models for the Breezart client."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Properties:
    """Unit properties reported once after connect (``VPr07``)."""

    temp_min: int
    temp_max: int
    speed_min: int
    speed_max: int
    humid_min: int
    humid_max: int
    nvav_zone: int
    vav_mode: int
    is_reg_press_vav: int
    is_show_hum: int
    is_casc_reg_t: int
    is_casc_reg_h: int
    is_humid: int
    is_cooler: int
    is_auto: int
    prot_sub_vers: int
    prot_vers: int
    lo_ver_tpd: int
    hi_ver_tpd: int
    firmware_ver: int


@dataclass(frozen=True, slots=True)
class Status:
    """Current unit status (``VSt07``)."""

    pwr_btn_state: int
    is_warn_err: int
    is_fatal_err: int
    danger_overheat: int
    auto_off: int
    change_filter: int
    mode_set: int
    humid_mode: int
    speed_is_down: int
    func_restart: int
    func_comfort: int
    humid_auto: int
    scen_block: int
    btn_pwr_block: int
    unit_state: int
    scen_allow: int
    mode: int
    num_active_scen: int
    who_activate_scen: int
    num_ico_hf: int
    tempr: int
    temper_target: int
    humid: int | None
    humid_target: int
    speed: int
    speed_target: int
    speed_fact: int | None
    temp_min: int
    color_msg: int
    color_ind: int
    filter_dust: int | None
    time_minutes: int
    time_hours: int
    time_day: int
    time_month: int
    time_day_of_week: int
    time_year: int
    msg: str


@dataclass(frozen=True, slots=True)
class Sensors:
    """Sensor readings (``VSens``); None means the sensor has no data."""

    t_inf: float | None
    h_inf: float | None
    t_room: float | None
    h_room: float | None
    t_out: float | None
    h_out: float | None
    t_hf: float | None
    pwr: int | None


@dataclass(frozen=True, slots=True)
class Acknowledgement:
    """Reply to a set operation (``OK_<command>_<value>``)."""

    command: str
    value: int


@dataclass(frozen=True, slots=True)
class DeviceState:
    """Snapshot of everything decoded from the controller.

    A new snapshot is produced for every applied reply; ``version`` counts
    the replies applied so far.
    """

    properties: Properties | None = None
    status: Status | None = None
    sensors: Sensors | None = None
    version: int = 0

    def as_dict(self) -> dict[str, Any]:
        """Return the snapshot as a plain dictionary."""
        return {
            "properties": asdict(self.properties) if self.properties else None,
            "status": asdict(self.status) if self.status else None,
            "sensors": asdict(self.sensors) if self.sensors else None,
            "version": self.version,
        }

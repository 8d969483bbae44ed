"""Configuration for the Breezart client."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import voluptuous as vol

from .const import (
    CONF_AUTO_RECONNECT,
    CONF_CONNECT_TIMEOUT,
    CONF_HOST,
    CONF_IDLE_TIMEOUT,
    CONF_NAME,
    CONF_PASSWORD,
    CONF_PORT,
    CONF_RESPONSE_TIMEOUT,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_PASSWORD,
    DEFAULT_PORT,
    DEFAULT_RESPONSE_TIMEOUT,
    WORD_MAX,
)
from .errors import BreezartConfigError

_positive_float = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST): vol.All(str, vol.Strip, vol.Length(min=1)),
        vol.Optional(CONF_PORT, default=DEFAULT_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional(CONF_PASSWORD, default=DEFAULT_PASSWORD): vol.All(
            int, vol.Range(min=0, max=WORD_MAX)
        ),
        vol.Optional(CONF_NAME, default=""): str,
        vol.Optional(
            CONF_CONNECT_TIMEOUT, default=DEFAULT_CONNECT_TIMEOUT
        ): _positive_float,
        vol.Optional(
            CONF_RESPONSE_TIMEOUT, default=DEFAULT_RESPONSE_TIMEOUT
        ): _positive_float,
        vol.Optional(CONF_IDLE_TIMEOUT, default=DEFAULT_IDLE_TIMEOUT): vol.Any(
            None, _positive_float
        ),
        vol.Optional(CONF_AUTO_RECONNECT, default=True): bool,
    },
    extra=vol.ALLOW_EXTRA,
)


@dataclass(frozen=True)
class BreezartConfig:
    """Validated connection settings.

    The password is part of every request frame, so it is fixed for the
    lifetime of a client.

    Attributes:
        host: Controller host name or address.
        port: TCP port of the controller.
        password: Numeric password 0..65535.
        name: Optional display name used in log messages.
        connect_timeout: Seconds to wait for the TCP connection.
        response_timeout: Seconds to wait for the reply to one frame.
        idle_timeout: Seconds without socket activity before the
            connection is dropped, or None to never drop it.
        auto_reconnect: Reconnect with backoff after a transport failure.

    """

    host: str
    port: int = DEFAULT_PORT
    password: int = DEFAULT_PASSWORD
    name: str = ""
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    response_timeout: float = DEFAULT_RESPONSE_TIMEOUT
    idle_timeout: float | None = DEFAULT_IDLE_TIMEOUT
    auto_reconnect: bool = True

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BreezartConfig:
        """Create a config from a mapping, validating every option.

        Args:
            data: Raw options, e.g. loaded from a file or the command line.

        Returns:
            The validated config.

        Raises:
            BreezartConfigError: If an option is missing or invalid.

        """
        try:
            validated = CONFIG_SCHEMA(dict(data))
        except vol.Invalid as err:
            msg = f"Invalid Breezart configuration: {err}"
            raise BreezartConfigError(msg) from err

        return cls(
            host=validated[CONF_HOST],
            port=validated[CONF_PORT],
            password=validated[CONF_PASSWORD],
            name=validated[CONF_NAME],
            connect_timeout=validated[CONF_CONNECT_TIMEOUT],
            response_timeout=validated[CONF_RESPONSE_TIMEOUT],
            idle_timeout=validated[CONF_IDLE_TIMEOUT],
            auto_reconnect=validated[CONF_AUTO_RECONNECT],
        )

    @property
    def label(self) -> str:
        """Return the name used in log messages."""
        return self.name or f"{self.host}:{self.port}"

"""Process configuration for smartmail."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

from smartmail._constants import (
    DEFAULT_DISTANCE_PORT,
    DEFAULT_KEEPALIVE_PORT,
    DEFAULT_THRESHOLD_MM,
    MQTT_HOST,
    MQTT_PORT,
    THREEMA_API_URL,
)
from smartmail.exceptions import SmartmailConfigError

T = TypeVar("T")


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_number(env: Mapping[str, str], key: str, cast: Callable[[str], T]) -> T | None:
    raw = env.get(key)
    if raw is None:
        return None
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise SmartmailConfigError(f"{key} must be numeric, got {raw!r}") from exc


def _require(env: Mapping[str, str], key: str) -> str:
    value = env.get(key)
    if value is None:
        raise SmartmailConfigError(f"Missing {key} env var")
    return value


def _split_recipients(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


@dataclasses.dataclass(frozen=True)
class InfluxConfig:
    """InfluxDB 1.x HTTP write endpoint credentials."""

    user: str
    password: str
    db: str
    url: str

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> InfluxConfig | None:
        """Return a config only when all four ``INFLUXDB_*`` variables are set."""
        env = os.environ if env is None else env
        user = env.get("INFLUXDB_USER")
        password = env.get("INFLUXDB_PASS")
        db = env.get("INFLUXDB_DB")
        url = env.get("INFLUXDB_URL")
        if user is None or password is None or db is None or url is None:
            return None
        return cls(user=user, password=password, db=db, url=url.rstrip("/"))


@dataclasses.dataclass(frozen=True)
class SmartmailConfig:
    """Listener configuration.

    Parameters
    ----------
    ttn_app_id : str
        Application id, used as MQTT username.
    ttn_access_key : str
        Application access key, used as MQTT password.
    threema_from : str
        Gateway identity messages are sent from (e.g. ``"*SMARTMA"``).
    threema_to : tuple of str
        Recipients notified on every mailbox transition.
    threema_secret : str
        Gateway API secret.
    threema_private_key : str
        Private key of the sender identity, hex encoded with an optional
        ``private:`` prefix. Used to encrypt messages end-to-end.
    threema_api_url : str
        Gateway base URL.
    influxdb : InfluxConfig or None
        Time-series database settings. ``None`` disables telemetry.
    mqtt_host : str
        Broker host name.
    mqtt_port : int
        Broker port.
    mqtt_tls : bool
        Wrap the broker connection in TLS.
    mqtt_keepalive : int
        MQTT keepalive in seconds.
    threshold_mm : int
        Distance below which the mailbox counts as holding mail.
    keepalive_port : int
        Uplink port carrying temperature/voltage readings.
    distance_port : int
        Uplink port carrying distance readings.
    lock_timeout : float
        Seconds to wait for a state slot before dropping an observation.
    http_timeout : float
        Total timeout in seconds for gateway and telemetry requests.
    """

    ttn_app_id: str
    ttn_access_key: str
    threema_from: str
    threema_to: tuple[str, ...]
    threema_secret: str
    threema_private_key: str = dataclasses.field(repr=False)
    threema_api_url: str = THREEMA_API_URL
    influxdb: InfluxConfig | None = None
    mqtt_host: str = MQTT_HOST
    mqtt_port: int = MQTT_PORT
    mqtt_tls: bool = False
    mqtt_keepalive: int = 60
    threshold_mm: int = DEFAULT_THRESHOLD_MM
    keepalive_port: int = DEFAULT_KEEPALIVE_PORT
    distance_port: int = DEFAULT_DISTANCE_PORT
    lock_timeout: float = 5.0
    http_timeout: float = 10.0

    def __post_init__(self) -> None:
        if not self.threema_to:
            raise SmartmailConfigError("THREEMA_TO must list at least one recipient")
        if self.keepalive_port == self.distance_port:
            raise SmartmailConfigError("Keepalive and distance ports must differ")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None, **overrides: Any) -> SmartmailConfig:
        """Create configuration from environment variables.

        Explicit keyword arguments override environment values.

        Raises
        ------
        SmartmailConfigError
            A required variable is missing or a numeric variable is malformed.
        """
        env = os.environ if env is None else env

        config_kwargs: dict[str, Any] = {}
        _ENV_REQUIRED_MAP = {
            "TTN_APP_ID": "ttn_app_id",
            "TTN_ACCESS_KEY": "ttn_access_key",
            "THREEMA_FROM": "threema_from",
            "THREEMA_SECRET": "threema_secret",
            "THREEMA_PRIVATE_KEY": "threema_private_key",
        }
        for env_key, field_name in _ENV_REQUIRED_MAP.items():
            if field_name not in overrides:
                config_kwargs[field_name] = _require(env, env_key)

        if "threema_to" not in overrides:
            config_kwargs["threema_to"] = _split_recipients(_require(env, "THREEMA_TO"))

        api_url = env.get("THREEMA_API_URL")
        if api_url is not None:
            config_kwargs["threema_api_url"] = api_url.rstrip("/")

        config_kwargs["influxdb"] = InfluxConfig.from_env(env)

        mqtt_host = env.get("SMARTMAIL_MQTT_HOST")
        if mqtt_host is not None:
            config_kwargs["mqtt_host"] = mqtt_host

        config_kwargs["mqtt_tls"] = _env_bool(env.get("SMARTMAIL_MQTT_TLS"), False)

        _ENV_NUMERIC_MAP: dict[str, tuple[str, Callable[[str], Any]]] = {
            "SMARTMAIL_MQTT_PORT": ("mqtt_port", int),
            "SMARTMAIL_MQTT_KEEPALIVE": ("mqtt_keepalive", int),
            "SMARTMAIL_THRESHOLD_MM": ("threshold_mm", int),
            "SMARTMAIL_KEEPALIVE_PORT": ("keepalive_port", int),
            "SMARTMAIL_DISTANCE_PORT": ("distance_port", int),
            "SMARTMAIL_LOCK_TIMEOUT": ("lock_timeout", float),
            "SMARTMAIL_HTTP_TIMEOUT": ("http_timeout", float),
        }
        for env_key, (field_name, cast) in _ENV_NUMERIC_MAP.items():
            value = _env_number(env, env_key, cast)
            if value is not None:
                config_kwargs[field_name] = value

        config_kwargs.update(overrides)

        return cls(**config_kwargs)

"""Configuration management for the accounts and notification services."""
from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .database import resolve_database_path

EVENT_CHANNELS = ("kafka", "http", "none")

DEFAULT_SENDER = "lubachivi@yandex.ru"


def _env_flag(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int(data: Mapping[str, Any], key: str, default: int, section: str) -> int:
    raw = data.get(key, default)
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid integer for {section}.{key}: {raw!r}") from exc


def _as_float(data: Mapping[str, Any], key: str, default: float, section: str) -> float:
    raw = data.get(key, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid number for {section}.{key}: {raw!r}") from exc


def _as_bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    raw = data.get(key, default)
    if isinstance(raw, str):
        return _env_flag(raw, default)
    return bool(raw)


def _optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True)
class KafkaConfig:
    """Connection details for the user events topic."""

    bootstrap_servers: str = "localhost:9092"
    topic: str = "user-events"
    group_id: str = "notification-service"
    client_id: str = "accounts"
    request_timeout: float = 30.0
    max_redeliveries: int = 9
    redelivery_backoff: float = 1.0

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "KafkaConfig":
        config = KafkaConfig(
            bootstrap_servers=str(data.get("bootstrap_servers", "localhost:9092")),
            topic=str(data.get("topic", "user-events")),
            group_id=str(data.get("group_id", "notification-service")),
            client_id=str(data.get("client_id", "accounts")),
            request_timeout=_as_float(data, "request_timeout", 30.0, "kafka"),
            max_redeliveries=_as_int(data, "max_redeliveries", 9, "kafka"),
            redelivery_backoff=_as_float(data, "redelivery_backoff", 1.0, "kafka"),
        )
        if not config.topic.strip():
            raise ValueError("kafka.topic must not be empty")
        if config.max_redeliveries < 0:
            raise ValueError("kafka.max_redeliveries must not be negative")
        return config


@dataclass(frozen=True)
class MailConfig:
    """SMTP settings used by the notifier."""

    host: str = "localhost"
    port: int = 587
    username: Optional[str] = None
    password: Optional[str] = None
    sender: str = DEFAULT_SENDER
    start_tls: bool = True
    use_tls: bool = False
    timeout: float = 30.0

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "MailConfig":
        config = MailConfig(
            host=str(data.get("host", "localhost")),
            port=_as_int(data, "port", 587, "mail"),
            username=_optional_str(data, "username"),
            password=_optional_str(data, "password"),
            sender=str(data.get("sender", DEFAULT_SENDER)),
            start_tls=_as_bool(data, "start_tls", True),
            use_tls=_as_bool(data, "use_tls", False),
            timeout=_as_float(data, "timeout", 30.0, "mail"),
        )
        if not 1 <= config.port <= 65535:
            raise ValueError(f"mail.port must be between 1 and 65535, got {config.port}")
        if config.use_tls and config.start_tls:
            raise ValueError("mail.use_tls and mail.start_tls cannot both be enabled")
        return config


@dataclass(frozen=True)
class EventsConfig:
    """Selects how user lifecycle events leave the user service."""

    channel: str = "kafka"
    notification_url: str = "http://localhost:8081/api"
    timeout: float = 10.0

    @staticmethod
    def from_dict(data: Mapping[str, Any]) -> "EventsConfig":
        channel = str(data.get("channel", "kafka")).strip().lower()
        if channel not in EVENT_CHANNELS:
            raise ValueError(
                f"events.channel must be one of {', '.join(EVENT_CHANNELS)}, got {channel!r}"
            )
        return EventsConfig(
            channel=channel,
            notification_url=str(data.get("notification_url", "http://localhost:8081/api")),
            timeout=_as_float(data, "timeout", 10.0, "events"),
        )


@dataclass(frozen=True)
class Settings:
    database_path: Path
    events: EventsConfig = field(default_factory=EventsConfig)
    kafka: KafkaConfig = field(default_factory=KafkaConfig)
    mail: MailConfig = field(default_factory=MailConfig)

    @staticmethod
    def from_dict(data: Mapping[str, Any], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw dictionary data."""

        database = data.get("database") or {}
        raw_db_path = database.get("path")
        if raw_db_path:
            db_path = Path(str(raw_db_path)).expanduser()
            if not db_path.is_absolute() and base_path is not None:
                db_path = base_path / db_path
            db_path = db_path.resolve(strict=False)
        else:
            db_path = resolve_database_path(None)

        return Settings(
            database_path=db_path,
            events=EventsConfig.from_dict(data.get("events") or {}),
            kafka=KafkaConfig.from_dict(data.get("kafka") or {}),
            mail=MailConfig.from_dict(data.get("mail") or {}),
        )


def _apply_env_overrides(settings: Settings, environ: Mapping[str, str]) -> Settings:
    db_path = environ.get("ACCOUNTS_DB_PATH")
    if db_path:
        settings = replace(settings, database_path=resolve_database_path(db_path))

    events: Dict[str, Any] = {}
    if environ.get("ACCOUNTS_EVENTS_CHANNEL"):
        events["channel"] = environ["ACCOUNTS_EVENTS_CHANNEL"]
    if environ.get("ACCOUNTS_NOTIFICATION_URL"):
        events["notification_url"] = environ["ACCOUNTS_NOTIFICATION_URL"]
    if events:
        merged = {**asdict(settings.events), **events}
        settings = replace(settings, events=EventsConfig.from_dict(merged))

    kafka: Dict[str, Any] = {}
    for key in ("bootstrap_servers", "topic", "group_id"):
        value = environ.get(f"ACCOUNTS_KAFKA_{key.upper()}")
        if value:
            kafka[key] = value
    if kafka:
        merged = {**asdict(settings.kafka), **kafka}
        settings = replace(settings, kafka=KafkaConfig.from_dict(merged))

    mail: Dict[str, Any] = {}
    for key in ("host", "port", "username", "password", "sender"):
        value = environ.get(f"ACCOUNTS_SMTP_{key.upper()}")
        if value:
            mail[key] = value
    if "ACCOUNTS_SMTP_START_TLS" in environ:
        mail["start_tls"] = _env_flag(environ["ACCOUNTS_SMTP_START_TLS"], True)
    if mail:
        merged = {**asdict(settings.mail), **mail}
        settings = replace(settings, mail=MailConfig.from_dict(merged))

    return settings


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "accounts.yaml").resolve(strict=False)
    return candidate


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, then apply environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("ACCOUNTS_CONFIG"))

    raw: Dict[str, Any] = {}
    if path.is_file():
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")

    settings = Settings.from_dict(raw, base_path=path.parent)
    return _apply_env_overrides(settings, env)


__all__ = [
    "EventsConfig",
    "KafkaConfig",
    "MailConfig",
    "Settings",
    "load_settings",
    "resolve_config_path",
]

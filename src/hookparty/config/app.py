"""
Configuration management for the hookparty daemon.

Provides YAML-based configuration with CLI overrides,
configuration hierarchy (CLI > YAML > Defaults), and validation.
"""

from __future__ import annotations

import ipaddress
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator


def get_hookparty_home() -> Path:
    """Get hookparty home directory, respecting HOOKPARTY_HOME env var."""
    home = os.environ.get("HOOKPARTY_HOME")
    if home:
        return Path(home)
    return Path.home() / ".hookparty"


class LoggingSettings(BaseModel):
    """Logging configuration."""

    level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Log level",
    )
    log_file: str = Field(
        default="~/.hookparty/logs/hookparty.log",
        description="Daemon main log file path",
    )
    max_size_mb: int = Field(
        default=10,
        description="Maximum log file size in MB",
    )
    backup_count: int = Field(
        default=3,
        description="Number of backup log files to keep",
    )

    @field_validator("max_size_mb", "backup_count")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate value is positive."""
        if v <= 0:
            raise ValueError("Value must be positive")
        return v


class SessionSettings(BaseModel):
    """Session registry configuration."""

    end_grace_seconds: float = Field(
        default=30.0,
        description="How long a stopped session stays visible after SessionEnd",
    )
    resolve_slugs: bool = Field(
        default=True,
        description="Look up human-friendly session names from transcript metadata",
    )
    transcripts_dir: str = Field(
        default="~/.claude/projects",
        description="Directory searched for <session_id>.jsonl transcripts",
    )

    @field_validator("end_grace_seconds")
    @classmethod
    def validate_grace(cls, v: float) -> float:
        """Validate grace window is not negative."""
        if v < 0:
            raise ValueError("end_grace_seconds must not be negative")
        return v


class InputDeliverySettings(BaseModel):
    """Input delivery (wrapper network transport + drop-box fallback) configuration."""

    drop_box_dir: str = Field(
        default="~/.hookparty/inputs",
        description="Directory holding one <session_id>.input file per pending reply",
    )
    wrapper_handle_path: str = Field(
        default="~/.hookparty/wrappers/{session_id}.json",
        description="Wrapper handle file; may contain a {session_id} placeholder",
    )
    request_timeout: float = Field(
        default=5.0,
        description="Timeout in seconds for each POST to the wrapper /input endpoint",
    )
    retry_base_delay: float = Field(
        default=1.0,
        description="Delay in seconds before the first retry",
    )
    retry_multiplier: float = Field(
        default=2.0,
        description="Multiplier applied to the delay after every retry",
    )
    retry_max_attempts: int = Field(
        default=4,
        description="Total network attempts, including the first one",
    )
    sweep_interval_seconds: float = Field(
        default=60.0,
        description="How often the drop-box sweeper runs",
    )
    stale_input_ttl_seconds: float = Field(
        default=300.0,
        description="Drop-box entries older than this are removed by the sweeper",
    )

    @field_validator("request_timeout", "sweep_interval_seconds", "stale_input_ttl_seconds")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate value is positive."""
        if v <= 0:
            raise ValueError("Value must be positive")
        return v

    @field_validator("retry_max_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        """Validate at least one attempt is made."""
        if v < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        return v

    @field_validator("retry_base_delay", "retry_multiplier")
    @classmethod
    def validate_not_negative(cls, v: float) -> float:
        """Validate value is not negative."""
        if v < 0:
            raise ValueError("Value must not be negative")
        return v


class TelegramSettings(BaseModel):
    """Telegram bot configuration."""

    enabled: bool = Field(default=False, description="Send notifications to Telegram")
    reply_enabled: bool = Field(default=True, description="Accept replies from Telegram")
    bot_token: str = Field(default="", description="Telegram bot token")
    chat_id: str = Field(default="", description="Chat ID; learned from the first message if empty")


class DiscordSettings(BaseModel):
    """Discord webhook and bot configuration."""

    enabled: bool = Field(default=False, description="Send notifications to Discord")
    webhook_url: str = Field(default="", description="Discord incoming webhook URL")
    reply_enabled: bool = Field(default=True, description="Accept replies from Discord")
    bot_token: str = Field(default="", description="Bot token used to read the reply channel")
    channel_id: str = Field(default="", description="Channel polled for replies")
    poll_interval_seconds: float = Field(
        default=5.0,
        description="How often the reply channel is polled",
    )

    @field_validator("poll_interval_seconds")
    @classmethod
    def validate_interval(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        return v


class SmsSettings(BaseModel):
    """Twilio SMS configuration."""

    enabled: bool = Field(default=False, description="Send notifications by SMS")
    account_sid: str = Field(default="", description="Twilio account SID")
    auth_token: str = Field(default="", description="Twilio auth token")
    from_number: str = Field(default="", description="Twilio phone number to send from")
    to_number: str = Field(default="", description="User phone number to notify")
    reply_enabled: bool = Field(default=True, description="Accept replies by SMS")
    webhook_port: int = Field(
        default=31549,
        description="Loopback port for the Twilio inbound message webhook",
    )

    @field_validator("webhook_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port number is in valid range."""
        if not (1024 <= v <= 65535):
            raise ValueError("Port must be between 1024 and 65535")
        return v


class NotificationSettings(BaseModel):
    """Notification fan-out toggles and channel settings."""

    desktop_enabled: bool = Field(default=True, description="Show desktop notifications")
    voice_enabled: bool = Field(default=False, description="Speak notifications aloud")
    notify_on_session_end: bool = Field(default=True, description="Notify when a session ends")
    notify_on_error: bool = Field(
        default=True,
        description="Notify when a session stops with a reason",
    )
    notify_on_waiting_for_input: bool = Field(
        default=True,
        description="Notify when a session is waiting for input",
    )
    telegram: TelegramSettings = Field(default_factory=TelegramSettings)
    discord: DiscordSettings = Field(default_factory=DiscordSettings)
    sms: SmsSettings = Field(default_factory=SmsSettings)


class PartyConfig(BaseModel):
    """
    Main configuration for the hookparty daemon.

    Configuration is loaded with the following priority:
    1. CLI arguments (highest)
    2. YAML file (~/.hookparty/config.yaml)
    3. Defaults (lowest)
    """

    model_config = {"populate_by_name": True}

    hook_server_host: str = Field(
        default="127.0.0.1",
        description="Loopback address the hook server binds to",
    )
    hook_server_port: int = Field(
        default=31548,
        description="Port for the hook server; bumped automatically when in use",
    )
    max_port_attempts: int = Field(
        default=10,
        description="How many consecutive ports to try before giving up",
    )

    logging: LoggingSettings = Field(
        default_factory=LoggingSettings,
        description="Logging configuration",
    )
    sessions: SessionSettings = Field(
        default_factory=SessionSettings,
        description="Session registry configuration",
    )
    input_delivery: InputDeliverySettings = Field(
        default_factory=InputDeliverySettings,
        description="Input delivery configuration",
    )
    notifications: NotificationSettings = Field(
        default_factory=NotificationSettings,
        description="Notification fan-out configuration",
    )

    @field_validator("hook_server_port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port number is in valid range."""
        if not (1024 <= v <= 65535):
            raise ValueError("Port must be between 1024 and 65535")
        return v

    @field_validator("hook_server_host")
    @classmethod
    def validate_loopback(cls, v: str) -> str:
        """The hook server only ever listens on a loopback interface."""
        if v == "localhost":
            return v
        try:
            is_loopback = ipaddress.ip_address(v).is_loopback
        except ValueError as e:
            raise ValueError(f"hook_server_host must be a loopback address, got {v!r}") from e
        if not is_loopback:
            raise ValueError(f"hook_server_host must be a loopback address, got {v!r}")
        return v

    @field_validator("max_port_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        """Validate at least one port is tried."""
        if v < 1:
            raise ValueError("max_port_attempts must be at least 1")
        return v


def load_yaml(config_file: str) -> dict[str, Any]:
    """
    Read a YAML config file into a dict.

    A missing or empty file yields ``{}``.

    Raises:
        ValueError: If the file is not ``.yaml``/``.yml`` or does not parse
    """
    config_path = Path(config_file).expanduser()
    if not config_path.exists():
        return {}

    if config_path.suffix.lower() not in (".yaml", ".yml"):
        raise ValueError(f"Config file must have a .yaml or .yml extension: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file {config_path}: {e}") from e

    return data or {}


def apply_cli_overrides(
    config_dict: dict[str, Any],
    cli_overrides: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Apply CLI argument overrides to config dictionary.

    Nested keys use dots, e.g. ``"logging.level"``. ``None`` values are
    skipped so unset CLI options do not clobber the YAML file.
    """
    if cli_overrides is None:
        return config_dict

    for key, value in cli_overrides.items():
        if value is None:
            continue
        if "." in key:
            parts = key.split(".")
            current = config_dict
            for part in parts[:-1]:
                if part not in current:
                    current[part] = {}
                current = current[part]
            current[parts[-1]] = value
        else:
            config_dict[key] = value

    return config_dict


def _default_config_file() -> str:
    return str(get_hookparty_home() / "config.yaml")


def load_config(
    config_file: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> PartyConfig:
    """
    Load configuration with hierarchy: CLI > YAML > Defaults.

    Args:
        config_file: Path to YAML config file (default: ~/.hookparty/config.yaml)
        cli_overrides: Dictionary of CLI argument overrides

    Returns:
        Validated PartyConfig instance

    Raises:
        ValueError: If configuration is invalid
    """
    if config_file is None:
        config_file = _default_config_file()

    config_dict = load_yaml(config_file)
    config_dict = apply_cli_overrides(config_dict, cli_overrides)

    try:
        return PartyConfig(**config_dict)
    except Exception as e:
        raise ValueError(
            f"Configuration validation failed: {e}\n"
            f"Please check your configuration file at {config_file}"
        ) from e


def save_config(config: PartyConfig, config_file: str | None = None) -> None:
    """
    Save configuration to YAML file.

    Args:
        config: PartyConfig instance to save
        config_file: Path to YAML config file (default: ~/.hookparty/config.yaml)

    Raises:
        OSError: If file operations fail
    """
    if config_file is None:
        config_file = _default_config_file()

    config_path = Path(config_file).expanduser()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    config_dict = config.model_dump(mode="python", exclude_none=True)

    with open(config_path, "w") as f:
        yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

    # Holds chat credentials
    config_path.chmod(0o600)

"""
Configuration package for the hookparty daemon.

All config models live in app.py:
- PartyConfig: top-level daemon settings (hook server host/port)
- LoggingSettings, SessionSettings, InputDeliverySettings, NotificationSettings
"""

from hookparty.config.app import (
    DiscordSettings,
    InputDeliverySettings,
    LoggingSettings,
    NotificationSettings,
    PartyConfig,
    SessionSettings,
    SmsSettings,
    TelegramSettings,
    apply_cli_overrides,
    get_hookparty_home,
    load_config,
    load_yaml,
    save_config,
)

__all__ = [
    "DiscordSettings",
    "InputDeliverySettings",
    "LoggingSettings",
    "NotificationSettings",
    "PartyConfig",
    "SessionSettings",
    "SmsSettings",
    "TelegramSettings",
    "apply_cli_overrides",
    "get_hookparty_home",
    "load_config",
    "load_yaml",
    "save_config",
]

"""Config – event bus settings, loaders and factory."""

from mp_eventbus.config.eventbus import EventBusMode, EventBusSettings
from mp_eventbus.config.settings import (
    DotenvSettingsLoader,
    EnvSettingsLoader,
    Settings,
    SettingsFactory,
    SettingsLoader,
)

__all__ = [
    "DotenvSettingsLoader",
    "EnvSettingsLoader",
    "EventBusMode",
    "EventBusSettings",
    "Settings",
    "SettingsFactory",
    "SettingsLoader",
]

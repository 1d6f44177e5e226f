from .loader import VAR_PATTERN, load_settings, settings_from_dict
from .models import (
    LoggingSettings,
    LogLevel,
    ModelSettings,
    SessionSettings,
    Settings,
)

__all__ = [
    "LogLevel",
    "LoggingSettings",
    "ModelSettings",
    "SessionSettings",
    "Settings",
    "VAR_PATTERN",
    "load_settings",
    "settings_from_dict",
]

from .settings import Settings, get_settings, refresh_settings
from .user_settings_store import USER_CONFIG_KEY, UserSettingsStore, strip_quotes

__all__ = [
    "Settings",
    "USER_CONFIG_KEY",
    "UserSettingsStore",
    "get_settings",
    "refresh_settings",
    "strip_quotes",
]

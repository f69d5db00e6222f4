from .settings import (
    BACKEND_NAMES,
    Settings,
    get_config_dir,
    get_data_dir,
    get_settings,
)

__all__ = [
    "BACKEND_NAMES",
    "Settings",
    "get_config_dir",
    "get_data_dir",
    "get_settings",
]

# Core modules

from .config import settings, get_settings, Settings
from . import keys

__all__ = ["settings", "get_settings", "Settings", "keys"]

# =============================================================================
# muni_core/config/__init__.py
# =============================================================================

from .settings import SyncSettings, load_settings, DEFAULT_SECRETS_PATH

__all__ = ["SyncSettings", "load_settings", "DEFAULT_SECRETS_PATH"]

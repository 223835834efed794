"""
Configuration package initialization.

Provides centralized access to settings and constants. ``settings`` is a
proxy resolved on every attribute access so that ``Settings.reload()`` is
picked up by every module holding it.
"""

from importlib import import_module

from .constants import engine_constants, feed_constants, DateString, Numeric

# Loading the submodule binds it as a package attribute; the proxy below
# must be assigned after it.
_settings_module = import_module(".settings", package=__name__)


class _LazySettings:
    def __getattr__(self, name):
        return getattr(_settings_module.get_settings(), name)


settings = _LazySettings()

__all__ = [
    "settings",
    "engine_constants",
    "feed_constants",
    "DateString",
    "Numeric",
]

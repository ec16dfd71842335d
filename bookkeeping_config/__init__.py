"""
bookkeeping_config -- settings for one set of books.

Responsibility:
    Provides the ONLY way to obtain runtime settings: ``load_settings()``.
    No other component reads settings files or environment variables.
    Bridges in ``bookkeeping_config.bridges`` translate the settings into
    kernel and engine inputs.

Architecture position:
    Configuration -- sits above ``bookkeeping_kernel`` and
    ``bookkeeping_engines``.  The kernel MUST NEVER import from
    ``bookkeeping_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested settings file does not exist.
    - ``ValueError`` -- unknown keys or invalid values.
"""

from bookkeeping_config.settings import (
    DATABASE_URL_ENV,
    BookkeepingSettings,
    ReconciliationSettings,
    load_settings,
)

__all__ = [
    "DATABASE_URL_ENV",
    "BookkeepingSettings",
    "ReconciliationSettings",
    "load_settings",
]

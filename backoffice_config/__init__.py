"""
backoffice_config -- single public entrypoint for engine configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains
    configuration.  The YAML document is parsed once per process into a
    frozen ``EngineConfiguration`` and cached; tests swap it with
    ``reset_active_config()``.

Architecture position:
    Configuration -- above ``backoffice_kernel`` and ``backoffice_engines``,
    below ``backoffice_services`` / ``backoffice_modules``.  The kernel
    and engines MUST NEVER import from here.

Failure modes:
    - ``ConfigurationError`` when the document is missing or invalid.

Audit relevance:
    Each load emits a ``BACKOFFICE_CONFIG_TRACE`` record with the config
    id, version and checksum.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

from backoffice_config.loader import load_engine_configuration
from backoffice_config.schema import EngineConfiguration

_logger = logging.getLogger("backoffice_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "engine.yaml"

_active: EngineConfiguration | None = None
_active_path: Path | None = None
_lock = threading.Lock()


def get_active_config(path: Path | str | None = None) -> EngineConfiguration:
    """
    Return the active configuration, loading it on first use.

    Passing a ``path`` different from the one currently loaded replaces the
    active configuration.
    """
    global _active, _active_path
    requested = Path(path) if path is not None else None
    with _lock:
        if _active is not None and (requested is None or requested == _active_path):
            return _active
        source = requested or DEFAULT_CONFIG_PATH
        config = load_engine_configuration(source)
        _active = config
        _active_path = source

    _logger.info(
        "BACKOFFICE_CONFIG_TRACE",
        extra={
            "trace_type": "BACKOFFICE_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "source": str(source),
        },
    )
    return config


def reset_active_config() -> None:
    """Forget the cached configuration. FOR TESTING ONLY."""
    global _active, _active_path
    with _lock:
        _active = None
        _active_path = None


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "EngineConfiguration",
    "get_active_config",
    "reset_active_config",
]

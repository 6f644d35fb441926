"""
ledger_config -- single public entrypoint for ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Kernel services never read files or
    environment variables; they receive a ``LedgerPolicy`` built by
    ``ledger_config.bridges.build_ledger_policy``.

Architecture position:
    Configuration -- sits above ``ledger_kernel`` and below
    ``ledger_services``.  The kernel MUST NEVER import from
    ``ledger_config``.

Failure modes:
    - ``FileNotFoundError`` -- the requested or ``$LEDGER_CONFIG_PATH`` file
      does not exist.
    - ``ValueError`` -- a value fails ``LedgerConfig`` validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``ledger_config_loaded`` log entry with the config_id, version, source
    and checksum, tying ledger writes to the configuration that governed
    them.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from ledger_config.bridges import build_ledger_policy
from ledger_config.loader import compute_checksum, load_config, parse_config
from ledger_config.schema import LedgerConfig

_logger = logging.getLogger("ledger_kernel.config")

CONFIG_PATH_ENV = "LEDGER_CONFIG_PATH"

_DEFAULTS_FILE = Path(__file__).parent / "defaults.yaml"


def get_active_config(path: Path | str | None = None) -> LedgerConfig:
    """The ONLY public configuration entrypoint.

    Resolution order: ``path`` argument, then ``$LEDGER_CONFIG_PATH``, then
    the packaged ``defaults.yaml``.

    Raises:
        FileNotFoundError: If the selected file does not exist.
        ValueError: If configuration validation fails.
    """
    if path is not None:
        source = Path(path)
    elif os.environ.get(CONFIG_PATH_ENV):
        source = Path(os.environ[CONFIG_PATH_ENV])
    else:
        source = _DEFAULTS_FILE

    config = load_config(source)

    _logger.info(
        "ledger_config_loaded",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "config_source": str(source),
            "checksum": compute_checksum(config),
        },
    )
    return config


__all__ = [
    "CONFIG_PATH_ENV",
    "LedgerConfig",
    "build_ledger_policy",
    "get_active_config",
    "parse_config",
]

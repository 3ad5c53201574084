"""
bookkeeping_config -- single public entrypoint for bookkeeping configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services never read YAML files or environment
    variables themselves; they receive a ``BookkeepingConfig`` (injected,
    or loaded here on construction).

Architecture position:
    Configuration -- sits beside ``bookkeeping_kernel``.  The kernel's
    services import this package; this package never imports the kernel.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - Load-time validation: a configuration with an unknown account type,
      a dangling parent code, a missing number prefix or a non-positive
      window is rejected before any service sees it.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- schema or structural validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BOOKKEEPING_CONFIG_TRACE`` log entry with the config id, version and
    checksum, tying postings back to the configuration that governed them.
"""

from __future__ import annotations

import logging
from pathlib import Path

from bookkeeping_config.loader import load_config
from bookkeeping_config.schema import (
    BookkeepingConfig,
    LedgerSettings,
    QuickEntrySettings,
    ReconciliationSettings,
    RecurringSettings,
    SeedAccount,
)

_logger = logging.getLogger("bookkeeping_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> BookkeepingConfig:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a YAML configuration file.  Defaults
            to bookkeeping_config/sets/default.yaml.

    Returns:
        A validated, frozen ``BookkeepingConfig``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        ValueError: If configuration validation fails.
    """
    path = Path(config_path) if config_path is not None else DEFAULT_CONFIG_PATH
    config = load_config(path)

    _logger.info(
        "BOOKKEEPING_CONFIG_TRACE",
        extra={
            "trace_type": "BOOKKEEPING_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "config_path": str(path),
            "seed_account_count": len(config.seed_accounts),
        },
    )
    return config


__all__ = [
    "BookkeepingConfig",
    "DEFAULT_CONFIG_PATH",
    "LedgerSettings",
    "QuickEntrySettings",
    "ReconciliationSettings",
    "RecurringSettings",
    "SeedAccount",
    "get_active_config",
]

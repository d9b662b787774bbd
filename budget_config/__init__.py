"""
budget_config -- single public entrypoint for runtime configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Services receive their module config objects
    from ``budget_config.bridges``; they never read files or environment
    variables themselves.

Architecture position:
    Configuration.  Sits above ``budget_kernel``; the kernel MUST NEVER
    import from ``budget_config``.

Failure modes:
    - ``FileNotFoundError`` -- the configured YAML file does not exist.
    - ``ValueError`` -- schema validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a ``config_loaded``
    log entry naming the source file and the effective settings.
"""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path

from budget_config.loader import load_config
from budget_config.schema import ApplicationConfig
from budget_kernel.logging_config import get_logger

logger = get_logger("config")

CONFIG_ENV_VAR = "BUDGET_LEDGER_CONFIG"
DATABASE_URL_ENV_VAR = "DATABASE_URL"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> ApplicationConfig:
    """The ONLY public configuration entrypoint.

    Resolution order for the file: ``path`` argument, then the
    ``BUDGET_LEDGER_CONFIG`` environment variable, then the packaged
    default.  ``DATABASE_URL`` in the environment overrides the file's
    database URL.
    """
    resolved = Path(path or os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_PATH)
    config = load_config(resolved)

    override_url = os.environ.get(DATABASE_URL_ENV_VAR)
    if override_url:
        config = replace(config, database_url=override_url)

    logger.info(
        "config_loaded",
        extra={
            "source_path": str(resolved),
            "log_level": config.log_level,
            "max_adjust_retries": config.ledger.max_adjust_retries,
            "po_template_count": len(config.approvals.po_templates),
            "invoice_template_count": len(config.approvals.invoice_templates),
        },
    )
    return config


__all__ = ["ApplicationConfig", "get_active_config"]

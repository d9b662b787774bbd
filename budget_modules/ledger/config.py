"""
Ledger Account Store Configuration Schema.
"""

from dataclasses import dataclass
from typing import Self

from budget_kernel.logging_config import get_logger

logger = get_logger("modules.ledger.config")


@dataclass
class LedgerStoreConfig:
    """Configuration schema for the ledger account store."""

    max_adjust_retries: int = 5
    account_code_width: int = 2

    def __post_init__(self):
        if self.max_adjust_retries < 1:
            raise ValueError("max_adjust_retries must be at least 1")
        if self.account_code_width < 1:
            raise ValueError("account_code_width must be at least 1")
        logger.debug("ledger_config_initialized", extra={
            "max_adjust_retries": self.max_adjust_retries,
            "account_code_width": self.account_code_width,
        })

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

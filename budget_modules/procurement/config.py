"""
Procurement Configuration Schema.
"""

from dataclasses import dataclass
from typing import Self

from budget_kernel.logging_config import get_logger

logger = get_logger("modules.procurement.config")


@dataclass
class ProcurementConfig:
    """Configuration schema for the purchase order engine."""

    number_width: int = 4

    def __post_init__(self):
        if self.number_width < 1:
            raise ValueError("number_width must be at least 1")
        logger.debug("procurement_config_initialized", extra={
            "number_width": self.number_width,
        })

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

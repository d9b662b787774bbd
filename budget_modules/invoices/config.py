"""
Invoice Configuration Schema.

Field defaults follow Spanish invoicing practice: VAT at 0/4/10/21 %,
IRPF withholding at 0/7/15/19 %, payment due 30 days after issue.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Self

from budget_kernel.logging_config import get_logger

logger = get_logger("modules.invoices.config")


@dataclass
class InvoiceConfig:
    """Configuration schema for the invoice engine."""

    number_width: int = 4
    default_due_days: int = 30
    vat_rates: tuple[Decimal, ...] = (
        Decimal("0"), Decimal("4"), Decimal("10"), Decimal("21"),
    )
    irpf_rates: tuple[Decimal, ...] = (
        Decimal("0"), Decimal("7"), Decimal("15"), Decimal("19"),
    )

    def __post_init__(self):
        if self.number_width < 1:
            raise ValueError("number_width must be at least 1")
        if self.default_due_days < 0:
            raise ValueError("default_due_days cannot be negative")
        logger.debug("invoice_config_initialized", extra={
            "number_width": self.number_width,
            "default_due_days": self.default_due_days,
            "vat_rates": [str(r) for r in self.vat_rates],
            "irpf_rates": [str(r) for r in self.irpf_rates],
        })

    @classmethod
    def with_defaults(cls) -> Self:
        return cls()

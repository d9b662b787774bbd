"""
Configuration schema (``budget_config.schema``).

Responsibility
--------------
Frozen dataclasses describing one application configuration: database
connection, logging level and the per-module settings sections.  Parsed
by ``budget_config.loader`` from YAML and validated on construction.

Invariants enforced
-------------------
* Every instance is ``frozen=True`` -- immutable after load.
* ``__post_init__`` rejects out-of-range values with ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass(frozen=True)
class StepTemplateDef:
    """One approval step template as written in YAML."""

    approver_type: str = "role"
    approvers: tuple[str, ...] = ()
    roles: tuple[str, ...] = ()
    department: str | None = None
    require_all: bool = False

    def __post_init__(self) -> None:
        if self.approver_type not in ("fixed", "role", "hod", "coordinator"):
            raise ValueError(f"Unknown approver_type: {self.approver_type!r}")


@dataclass(frozen=True)
class LedgerSection:
    max_adjust_retries: int = 5
    account_code_width: int = 2

    def __post_init__(self) -> None:
        if self.max_adjust_retries < 1:
            raise ValueError("max_adjust_retries must be at least 1")
        if self.account_code_width < 1:
            raise ValueError("account_code_width must be at least 1")


@dataclass(frozen=True)
class DocumentSection:
    number_width: int = 4

    def __post_init__(self) -> None:
        if self.number_width < 1:
            raise ValueError("number_width must be at least 1")


@dataclass(frozen=True)
class InvoiceSection:
    number_width: int = 4
    default_due_days: int = 30
    vat_rates: tuple[Decimal, ...] = (Decimal("0"), Decimal("4"), Decimal("10"), Decimal("21"))
    irpf_rates: tuple[Decimal, ...] = (Decimal("0"), Decimal("7"), Decimal("15"), Decimal("19"))

    def __post_init__(self) -> None:
        if self.number_width < 1:
            raise ValueError("number_width must be at least 1")
        if self.default_due_days < 0:
            raise ValueError("default_due_days cannot be negative")
        if not self.vat_rates or not self.irpf_rates:
            raise ValueError("vat_rates and irpf_rates must be non-empty")


DEFAULT_INVOICE_TEMPLATE = StepTemplateDef(
    approver_type="role",
    roles=("Controller", "PM", "EP"),
    require_all=False,
)


@dataclass(frozen=True)
class ApprovalsSection:
    """Fallback step templates.  An empty tuple means documents auto-approve."""

    po_templates: tuple[StepTemplateDef, ...] = ()
    invoice_templates: tuple[StepTemplateDef, ...] = (DEFAULT_INVOICE_TEMPLATE,)


@dataclass(frozen=True)
class ApplicationConfig:
    """The whole runtime configuration."""

    database_url: str
    project_name: str = "Proyecto"
    log_level: str = "INFO"
    ledger: LedgerSection = field(default_factory=LedgerSection)
    procurement: DocumentSection = field(default_factory=DocumentSection)
    invoices: InvoiceSection = field(default_factory=InvoiceSection)
    approvals: ApprovalsSection = field(default_factory=ApprovalsSection)
    source_path: str | None = None

    def __post_init__(self) -> None:
        if not self.database_url:
            raise ValueError("database_url is required")
        if self.log_level.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log_level: {self.log_level!r}")

"""
Configuration Loader (``budget_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen dataclasses
of ``budget_config.schema``.  The single public entry point for runtime
config is ``budget_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Out-of-range values  -> ``ValueError`` from ``__post_init__``.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path
from typing import Any

import yaml

from budget_config.schema import (
    ApplicationConfig,
    ApprovalsSection,
    DocumentSection,
    InvoiceSection,
    LedgerSection,
    StepTemplateDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        data = yaml.safe_load(f)
    return data or {}


def _parse_rates(raw: list[Any] | None, default: tuple[Decimal, ...]) -> tuple[Decimal, ...]:
    if raw is None:
        return default
    return tuple(Decimal(str(r)) for r in raw)


def parse_step_template(data: dict[str, Any]) -> StepTemplateDef:
    return StepTemplateDef(
        approver_type=data.get("approver_type", "role"),
        approvers=tuple(str(a) for a in data.get("approvers", ())),
        roles=tuple(data.get("roles", ())),
        department=data.get("department"),
        require_all=bool(data.get("require_all", False)),
    )


def _parse_templates(
    approvals: dict[str, Any],
    key: str,
    default: tuple[StepTemplateDef, ...],
) -> tuple[StepTemplateDef, ...]:
    """An absent key keeps the default; an explicit empty list means none."""
    if key not in approvals:
        return default
    return tuple(parse_step_template(t) for t in approvals[key] or ())


def parse_config(data: dict[str, Any], source_path: str | None = None) -> ApplicationConfig:
    """Parse a raw YAML dict into an ``ApplicationConfig``."""
    ledger = data.get("ledger") or {}
    procurement = data.get("procurement") or {}
    invoices = data.get("invoices") or {}
    approvals = data.get("approvals") or {}
    invoice_defaults = InvoiceSection()
    approval_defaults = ApprovalsSection()

    return ApplicationConfig(
        database_url=data["database_url"],
        project_name=data.get("project_name", "Proyecto"),
        log_level=data.get("log_level", "INFO"),
        ledger=LedgerSection(
            max_adjust_retries=int(ledger.get("max_adjust_retries", 5)),
            account_code_width=int(ledger.get("account_code_width", 2)),
        ),
        procurement=DocumentSection(
            number_width=int(procurement.get("number_width", 4)),
        ),
        invoices=InvoiceSection(
            number_width=int(invoices.get("number_width", 4)),
            default_due_days=int(invoices.get("default_due_days", 30)),
            vat_rates=_parse_rates(invoices.get("vat_rates"), invoice_defaults.vat_rates),
            irpf_rates=_parse_rates(invoices.get("irpf_rates"), invoice_defaults.irpf_rates),
        ),
        approvals=ApprovalsSection(
            po_templates=_parse_templates(approvals, "po", approval_defaults.po_templates),
            invoice_templates=_parse_templates(
                approvals, "invoice", approval_defaults.invoice_templates,
            ),
        ),
        source_path=source_path,
    )


def load_config(path: Path) -> ApplicationConfig:
    return parse_config(load_yaml_file(path), source_path=str(path))

"""
Config -> Module Bridges.

Functions that convert an ``ApplicationConfig`` into the module-local
config objects the services accept.  They live in budget_config (the
producer) so that modules never read YAML or environment variables.

Usage:
    from budget_config import get_active_config
    from budget_config.bridges import build_service_configs

    config = get_active_config()
    configs = build_service_configs(config)
    service = InvoiceService(
        session, project_id,
        config=configs.invoices,
        ledger_config=configs.ledger,
        approval_config=configs.approvals,
    )
"""

from __future__ import annotations

from dataclasses import dataclass

from budget_config.schema import ApplicationConfig, StepTemplateDef
from budget_kernel.domain.approval import ApproverType
from budget_modules.approvals.config import ApprovalConfig
from budget_modules.approvals.models import ApprovalStepTemplate
from budget_modules.invoices.config import InvoiceConfig
from budget_modules.ledger.config import LedgerStoreConfig
from budget_modules.procurement.config import ProcurementConfig


@dataclass(frozen=True)
class ServiceConfigs:
    ledger: LedgerStoreConfig
    procurement: ProcurementConfig
    invoices: InvoiceConfig
    approvals: ApprovalConfig


def build_step_template(definition: StepTemplateDef, order: int = 0) -> ApprovalStepTemplate:
    return ApprovalStepTemplate(
        approver_type=ApproverType(definition.approver_type),
        approvers=definition.approvers,
        roles=definition.roles,
        department=definition.department,
        require_all=definition.require_all,
        order=order,
    )


def build_ledger_config(config: ApplicationConfig) -> LedgerStoreConfig:
    return LedgerStoreConfig(
        max_adjust_retries=config.ledger.max_adjust_retries,
        account_code_width=config.ledger.account_code_width,
    )


def build_procurement_config(config: ApplicationConfig) -> ProcurementConfig:
    return ProcurementConfig(number_width=config.procurement.number_width)


def build_invoice_config(config: ApplicationConfig) -> InvoiceConfig:
    section = config.invoices
    return InvoiceConfig(
        number_width=section.number_width,
        default_due_days=section.default_due_days,
        vat_rates=section.vat_rates,
        irpf_rates=section.irpf_rates,
    )


def build_approval_config(config: ApplicationConfig) -> ApprovalConfig:
    section = config.approvals
    return ApprovalConfig(
        po_templates=tuple(
            build_step_template(t, i) for i, t in enumerate(section.po_templates)
        ),
        invoice_templates=tuple(
            build_step_template(t, i) for i, t in enumerate(section.invoice_templates)
        ),
    )


def build_service_configs(config: ApplicationConfig) -> ServiceConfigs:
    return ServiceConfigs(
        ledger=build_ledger_config(config),
        procurement=build_procurement_config(config),
        invoices=build_invoice_config(config),
        approvals=build_approval_config(config),
    )

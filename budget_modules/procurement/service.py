"""
Procurement Document Engine (``budget_modules.procurement.service``).

Responsibility
--------------
Purchase order lifecycle: creation and numbering, submission with
template-resolved approval steps, step-by-step approval and rejection,
deletion rules, listing, and invoicing progress.  Approval commits the
PO amount on its budget sub-account.

Architecture position
---------------------
**Modules layer**.  ``ProcurementService`` composes the pure
``ApprovalPolicyResolver`` (who may act), ``ApprovalService`` (which
steps a new PO gets) and a ``LedgerService`` built with
``auto_commit=False`` so that the commitment and the status change share
one transaction.

Invariants enforced
-------------------
* Each public command owns the transaction boundary (``commit`` on
  success, ``rollback`` on any exception).
* A PO commits budget exactly once: the status claim (``pending`` ->
  ``approved``) is flushed under the row's version counter before the
  ledger is touched, so a concurrent second approval fails with
  ``ConflictError`` instead of committing twice.
* Rejection has no ledger effect.

Failure modes
-------------
* ``ValidationError`` -- blank description/supplier/reason, amount <= 0.
* ``SubAccountNotFoundError`` / ``SupplierNotFoundError`` /
  ``DocumentNotFoundError`` -- unknown references.
* ``ApproverNotAllowedError`` -- user cannot act on the current step.
* ``InvalidTransitionError`` -- action illegal from the current status.
* ``DocumentDeletionBlockedError`` -- delete after approvals started.
* ``ConflictError`` -- concurrent modification or number collision.

Audit relevance
---------------
Structured events ``po_created``, ``po_submitted``, ``po_step_approved``,
``po_approved``, ``po_rejected`` and ``po_deleted`` carry the PO number,
amount and acting user.

Usage::

    service = ProcurementService(session, project_id, clock=clock)
    po = service.create_po(
        description="Camera rental", budget_account_id=sub.id,
        amount=Decimal("1200.00"), actor_id="u-1", supplier_name="Rentals SL",
    )
    po = service.approve_po(po.id, "u-controller")
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from budget_kernel.db.types import round_money, to_decimal
from budget_kernel.domain.approval import (
    ApprovalDecision,
    ApprovalPolicyResolver,
    has_recorded_approvals,
)
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.exceptions import (
    ConflictError,
    DocumentDeletionBlockedError,
    DocumentNotFoundError,
    InvalidAmountError,
    InvalidTransitionError,
    SupplierNotFoundError,
    ValidationError,
)
from budget_kernel.logging_config import get_logger
from budget_modules.approvals.config import ApprovalConfig
from budget_modules.approvals.models import DocumentKind
from budget_modules.approvals.service import ApprovalService
from budget_modules.ledger.config import LedgerStoreConfig
from budget_modules.ledger.service import LedgerService
from budget_modules.procurement.config import ProcurementConfig
from budget_modules.procurement.models import POInvoicing, POStatus, PurchaseOrder
from budget_modules.procurement.orm import PurchaseOrderModel
from budget_modules.procurement.workflows import PO_WORKFLOW
from budget_modules.suppliers.orm import SupplierModel

logger = get_logger("modules.procurement.service")

DOCUMENT_TYPE = "PurchaseOrder"


class ProcurementService:
    """
    Purchase order engine for one project.

    Contract
    --------
    * Every command returns the PO as stored after the command.
    * Commands take the acting user as an opaque id string; identity and
      permissions beyond approver membership are the caller's concern.

    Guarantees
    ----------
    * Ledger writes and PO writes share a single transaction
      (``LedgerService`` runs with ``auto_commit=False``).
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT check that the commitment fits the available budget; an
      over-committed sub-account is reported, not refused.
    """

    def __init__(
        self,
        session: Session,
        project_id: UUID,
        clock: Clock | None = None,
        config: ProcurementConfig | None = None,
        ledger_config: LedgerStoreConfig | None = None,
        approval_config: ApprovalConfig | None = None,
    ):
        self._session = session
        self._project_id = project_id
        self._clock = clock or SystemClock()
        self._config = config or ProcurementConfig.with_defaults()
        self._ledger = LedgerService(
            session, project_id, clock=self._clock,
            config=ledger_config, auto_commit=False,
        )
        self._approvals = ApprovalService(
            session, project_id, clock=self._clock,
            config=approval_config, auto_commit=False,
        )
        self._resolver = ApprovalPolicyResolver()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _load(self, po_id: UUID, for_update: bool = False) -> PurchaseOrderModel:
        stmt = select(PurchaseOrderModel).where(
            PurchaseOrderModel.id == po_id,
            PurchaseOrderModel.project_id == self._project_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        po = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if po is None:
            raise DocumentNotFoundError(DOCUMENT_TYPE, po_id)
        return po

    def _require_transition(self, po: PurchaseOrderModel, action: str):
        transition = PO_WORKFLOW.transition(po.status, action)
        if transition is None:
            raise InvalidTransitionError(DOCUMENT_TYPE, po.id, po.status, action)
        return transition

    def _next_number(self) -> str:
        """Count + 1, bumped past the highest existing number after deletions."""
        numbers = self._session.execute(
            select(PurchaseOrderModel.number).where(
                PurchaseOrderModel.project_id == self._project_id,
            )
        ).scalars().all()
        highest = max((int(n) for n in numbers if n.isdigit()), default=0)
        return str(max(len(numbers), highest) + 1).zfill(self._config.number_width)

    def _supplier_name(self, supplier_id: UUID | None, supplier_name: str | None) -> str:
        if supplier_id is not None:
            supplier = self._session.execute(
                select(SupplierModel).where(
                    SupplierModel.id == supplier_id,
                    SupplierModel.project_id == self._project_id,
                )
            ).scalar_one_or_none()
            if supplier is None:
                raise SupplierNotFoundError(supplier_id)
            return supplier.to_dto().display_name
        name = (supplier_name or "").strip()
        if not name:
            raise ValidationError("supplier is required", field="supplier")
        return name

    def _flush_claim(self, po: PurchaseOrderModel) -> None:
        number = po.number
        try:
            self._session.flush()
        except StaleDataError:
            raise ConflictError(f"Purchase order {number} was modified concurrently") from None

    def _commit(self) -> None:
        try:
            self._session.commit()
        except StaleDataError:
            raise ConflictError("Purchase order was modified concurrently") from None

    def _rollback(self, operation: str, po_id: UUID | None = None) -> None:
        self._session.rollback()
        logger.warning("po_command_rolled_back", extra={
            "operation": operation,
            "po_id": str(po_id) if po_id else None,
        }, exc_info=True)

    def _commit_budget(self, po: PurchaseOrderModel, actor_id: str) -> None:
        self._ledger.adjust_committed(po.budget_account_id, po.amount, actor_id=actor_id)

    def _submit(self, po: PurchaseOrderModel, actor_id: str) -> None:
        steps = self._approvals.resolve_steps(DocumentKind.PURCHASE_ORDER, po.department)
        now = self._clock.now()
        if not steps:
            self._require_transition(po, "auto_approve")
            po.approval_steps = ()
            po.current_approval_step = 0
            po.status = POStatus.APPROVED.value
            po.approved_at = now
            po.approved_by = actor_id
            po.committed_amount = po.amount
            po.updated_by = actor_id
            self._flush_claim(po)
            self._commit_budget(po, actor_id)
            logger.info("po_approved", extra={
                "po_id": str(po.id),
                "number": po.number,
                "amount": str(po.amount),
                "budget_account_id": str(po.budget_account_id),
                "auto_approved": True,
            })
            return

        self._require_transition(po, "submit")
        po.approval_steps = steps
        po.current_approval_step = 0
        po.status = POStatus.PENDING.value
        po.updated_by = actor_id
        self._flush_claim(po)
        logger.info("po_submitted", extra={
            "po_id": str(po.id),
            "number": po.number,
            "step_count": len(steps),
        })

    # =========================================================================
    # Commands
    # =========================================================================

    def create_po(
        self,
        description: str,
        budget_account_id: UUID,
        amount: Decimal | int | str,
        actor_id: str,
        supplier_id: UUID | None = None,
        supplier_name: str | None = None,
        department: str | None = None,
        submit: bool = True,
    ) -> PurchaseOrder:
        """
        Create a purchase order, numbered ``count + 1``.

        With ``submit=True`` (the default) approval steps are resolved at
        once; a PO that resolves to no approvers is approved and committed
        in the same transaction.
        """
        description = (description or "").strip()
        if not description:
            raise ValidationError("description is required", field="description")
        value = round_money(to_decimal(amount, "amount"))
        if value <= 0:
            raise InvalidAmountError("amount", value, "must be greater than 0")

        try:
            name = self._supplier_name(supplier_id, supplier_name)
            sub_account = self._ledger.get_sub_account(budget_account_id)
            number = self._next_number()

            po = PurchaseOrderModel(
                project_id=self._project_id,
                number=number,
                supplier_id=supplier_id,
                supplier_name=name,
                description=description,
                department=department,
                budget_account_id=sub_account.id,
                budget_account_code=sub_account.code,
                amount=value,
                status=PO_WORKFLOW.initial_state,
                approval_steps_json="[]",
                current_approval_step=0,
                created_at=self._clock.now(),
                created_by=actor_id,
            )
            self._session.add(po)
            try:
                self._session.flush()
            except IntegrityError:
                raise ConflictError(f"Purchase order number {number} already exists") from None

            logger.info("po_created", extra={
                "po_id": str(po.id),
                "number": number,
                "amount": str(po.amount),
                "budget_account_id": str(sub_account.id),
                "supplier_name": name,
            })

            if submit:
                self._submit(po, actor_id)
            self._commit()
            return po.to_dto()
        except Exception:
            self._rollback("create_po")
            raise

    def submit_po(self, po_id: UUID, actor_id: str) -> PurchaseOrder:
        """Move a draft PO into approval (or approve it when no step resolves)."""
        try:
            po = self._load(po_id, for_update=True)
            self._require_transition(po, "submit")
            self._submit(po, actor_id)
            self._commit()
            return po.to_dto()
        except Exception:
            self._rollback("submit_po", po_id)
            raise

    def approve_po(self, po_id: UUID, acting_user_id: str) -> PurchaseOrder:
        """
        Record an approval on the current step.

        Completing the last step approves the PO and commits its amount on
        the budget sub-account in the same transaction.
        """
        try:
            po = self._load(po_id, for_update=True)
            self._require_transition(po, "approve")
            resolution = self._resolver.resolve_step(
                po.to_dto(), acting_user_id, ApprovalDecision.APPROVE,
            )
            po.approval_steps = resolution.steps
            po.current_approval_step = resolution.current_approval_step
            po.updated_by = acting_user_id

            if resolution.is_fully_approved:
                po.status = POStatus.APPROVED.value
                po.approved_at = self._clock.now()
                po.approved_by = acting_user_id
                po.committed_amount = po.amount
                self._flush_claim(po)
                self._commit_budget(po, acting_user_id)
                logger.info("po_approved", extra={
                    "po_id": str(po.id),
                    "number": po.number,
                    "amount": str(po.amount),
                    "budget_account_id": str(po.budget_account_id),
                    "approved_by": acting_user_id,
                })
            else:
                self._flush_claim(po)
                logger.info("po_step_approved", extra={
                    "po_id": str(po.id),
                    "number": po.number,
                    "approved_by": acting_user_id,
                    "outcome": resolution.outcome.value,
                    "current_step": resolution.current_approval_step,
                })

            self._commit()
            return po.to_dto()
        except Exception:
            self._rollback("approve_po", po_id)
            raise

    def reject_po(self, po_id: UUID, acting_user_id: str, reason: str) -> PurchaseOrder:
        """Reject the current step, which rejects the PO.  No ledger effect."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("rejection reason is required", field="reason")
        try:
            po = self._load(po_id, for_update=True)
            self._require_transition(po, "reject")
            resolution = self._resolver.resolve_step(
                po.to_dto(), acting_user_id, ApprovalDecision.REJECT,
            )
            po.approval_steps = resolution.steps
            po.status = POStatus.REJECTED.value
            po.rejected_at = self._clock.now()
            po.rejected_by = acting_user_id
            po.rejection_reason = reason
            po.updated_by = acting_user_id
            self._flush_claim(po)
            self._commit()
            logger.info("po_rejected", extra={
                "po_id": str(po.id),
                "number": po.number,
                "rejected_by": acting_user_id,
                "step": po.current_approval_step,
            })
            return po.to_dto()
        except Exception:
            self._rollback("reject_po", po_id)
            raise

    def delete_po(self, po_id: UUID, actor_id: str) -> None:
        """Delete a draft PO, or a pending PO no one has approved yet."""
        try:
            po = self._load(po_id, for_update=True)
            if po.status not in (POStatus.DRAFT.value, POStatus.PENDING.value):
                raise DocumentDeletionBlockedError(
                    DOCUMENT_TYPE, po_id, po.status, "only draft or pending POs can be deleted",
                )
            if has_recorded_approvals(po.approval_steps):
                raise DocumentDeletionBlockedError(
                    DOCUMENT_TYPE, po_id, po.status, "approvals already recorded",
                )
            number = po.number
            self._session.delete(po)
            self._flush_claim(po)
            self._commit()
            logger.info("po_deleted", extra={
                "po_id": str(po_id),
                "number": number,
                "actor_id": actor_id,
            })
        except Exception:
            self._rollback("delete_po", po_id)
            raise

    # =========================================================================
    # Queries
    # =========================================================================

    def get_po(self, po_id: UUID) -> PurchaseOrder:
        return self._load(po_id).to_dto()

    def list_pos(
        self,
        status: POStatus | str | None = None,
        search: str | None = None,
    ) -> tuple[PurchaseOrder, ...]:
        """POs newest first, optionally by status and number/supplier/description."""
        stmt = select(PurchaseOrderModel).where(
            PurchaseOrderModel.project_id == self._project_id,
        )
        if status is not None:
            stmt = stmt.where(PurchaseOrderModel.status == POStatus(status).value)
        term = (search or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            stmt = stmt.where(or_(
                func.lower(PurchaseOrderModel.number).like(pattern),
                func.lower(PurchaseOrderModel.supplier_name).like(pattern),
                func.lower(PurchaseOrderModel.description).like(pattern),
            ))
        stmt = stmt.order_by(
            PurchaseOrderModel.created_at.desc(), PurchaseOrderModel.number.desc(),
        )
        return tuple(po.to_dto() for po in self._session.execute(stmt).scalars())

    def po_invoicing(self, po_id: UUID) -> POInvoicing:
        """Invoiced total of a PO over its pending, paid and overdue invoices."""
        from budget_modules.invoices.models import InvoiceStatus
        from budget_modules.invoices.orm import InvoiceModel

        po = self._load(po_id)
        rows = self._session.execute(
            select(InvoiceModel.status, InvoiceModel.total_amount).where(
                InvoiceModel.project_id == self._project_id,
                InvoiceModel.po_id == po_id,
            )
        ).all()

        counted = {
            InvoiceStatus.PENDING.value,
            InvoiceStatus.PAID.value,
            InvoiceStatus.OVERDUE.value,
        }
        invoiced = Decimal("0")
        pending_approval = Decimal("0")
        count = 0
        for status, total in rows:
            if status in counted:
                invoiced += total
                count += 1
            elif status == InvoiceStatus.PENDING_APPROVAL.value:
                pending_approval += total

        percentage = Decimal("0")
        if po.amount > 0:
            percentage = round_money(invoiced / po.amount * 100)
        return POInvoicing(
            po_id=po.id,
            po_amount=po.amount,
            invoiced_amount=round_money(invoiced),
            pending_approval_amount=round_money(pending_approval),
            invoice_count=count,
            percentage=percentage,
        )

    def approvable_by(self, po_id: UUID, user_id: str) -> bool:
        po = self._load(po_id)
        return po.status == POStatus.PENDING.value and self._resolver.can_act(po.to_dto(), user_id)

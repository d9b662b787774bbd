"""
Invoice Engine (``budget_modules.invoices.service``).

Responsibility
--------------
Invoice lifecycle: creation with VAT/IRPF item math and numbering,
multi-step approval and rejection, payment (which realises actual spend
on every item's sub-account), cancellation, deletion, time-based overdue
detection, listing and statistics.

Architecture position
---------------------
**Modules layer**.  Composes ``ApprovalPolicyResolver``,
``ApprovalService`` and a ``LedgerService`` built with
``auto_commit=False`` so that the status change and every ledger delta
of a payment share one transaction.

Invariants enforced
-------------------
* Payment is all-or-nothing: the ``paid`` claim is flushed under the
  row's version counter, then one ``adjust_actual`` per item runs, then a
  single commit.  Any failure rolls back the claim and every delta.
* Paying is legal only from ``pending`` / ``overdue``.
* The overdue pass flips only ``pending`` invoices whose due date is
  before today, each in its own transaction; running it twice changes
  nothing the second time.

Failure modes
-------------
* ``ValidationError`` -- no items, blank item description, non-positive
  quantity or price, unknown VAT/IRPF rate, missing supplier, blank
  reason.
* ``SubAccountNotFoundError`` / ``DocumentNotFoundError`` /
  ``SupplierNotFoundError`` -- unknown references.
* ``InvalidStateError`` -- linked PO not approved.
* ``InvalidTransitionError`` -- action illegal from the current status.
* ``ApproverNotAllowedError`` -- user cannot act on the current step.
* ``DocumentDeletionBlockedError`` -- delete of a paid invoice.
* ``ConflictError`` -- concurrent modification or number collision.

Audit relevance
---------------
Structured events ``invoice_created``, ``invoice_approved``,
``invoice_step_approved``, ``invoice_rejected``, ``invoice_paid``,
``invoice_cancelled``, ``invoice_deleted``, ``invoice_marked_overdue``
and ``overdue_sweep_completed``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from budget_kernel.db.types import to_decimal
from budget_kernel.domain.approval import ApprovalDecision, ApprovalPolicyResolver
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.exceptions import (
    ConflictError,
    DocumentDeletionBlockedError,
    DocumentNotFoundError,
    InvalidAmountError,
    InvalidStateError,
    InvalidTransitionError,
    SupplierNotFoundError,
    ValidationError,
)
from budget_kernel.logging_config import get_logger
from budget_modules.approvals.config import ApprovalConfig
from budget_modules.approvals.models import DocumentKind
from budget_modules.approvals.service import ApprovalService
from budget_modules.invoices.calculations import compute_item_amounts, sum_items
from budget_modules.invoices.config import InvoiceConfig
from budget_modules.invoices.models import (
    Invoice,
    InvoiceItem,
    InvoiceItemInput,
    InvoiceSortField,
    InvoiceStats,
    InvoiceStatus,
    SweepResult,
)
from budget_modules.invoices.orm import InvoiceItemModel, InvoiceModel
from budget_modules.invoices.workflows import INVOICE_WORKFLOW
from budget_modules.ledger.config import LedgerStoreConfig
from budget_modules.ledger.service import LedgerService
from budget_modules.procurement.models import POStatus
from budget_modules.procurement.orm import PurchaseOrderModel
from budget_modules.suppliers.orm import SupplierModel

logger = get_logger("modules.invoices.service")

DOCUMENT_TYPE = "Invoice"


class InvoiceService:
    """
    Invoice engine for one project.

    Contract
    --------
    * Every command returns the invoice as stored after the command.
    * ``list_invoices`` refreshes overdue status before reading unless
      ``refresh_overdue=False``; ``sweep_overdue`` runs the same pass on
      demand (CLI / scheduler).

    Guarantees
    ----------
    * Ledger writes and invoice writes share a single transaction.
    * Clock is injectable for deterministic testing; "today" for due
      dates and overdue checks is the clock's UTC date.

    Non-goals
    ---------
    * Does NOT relieve the commitment of a linked PO on payment.
    * Does NOT store attachment files.
    """

    def __init__(
        self,
        session: Session,
        project_id: UUID,
        clock: Clock | None = None,
        config: InvoiceConfig | None = None,
        ledger_config: LedgerStoreConfig | None = None,
        approval_config: ApprovalConfig | None = None,
    ):
        self._session = session
        self._project_id = project_id
        self._clock = clock or SystemClock()
        self._config = config or InvoiceConfig.with_defaults()
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

    def _load(self, invoice_id: UUID, for_update: bool = False) -> InvoiceModel:
        stmt = select(InvoiceModel).where(
            InvoiceModel.id == invoice_id,
            InvoiceModel.project_id == self._project_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        invoice = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if invoice is None:
            raise DocumentNotFoundError(DOCUMENT_TYPE, invoice_id)
        return invoice

    def _require_transition(self, invoice: InvoiceModel, action: str):
        transition = INVOICE_WORKFLOW.transition(invoice.status, action)
        if transition is None:
            raise InvalidTransitionError(DOCUMENT_TYPE, invoice.id, invoice.status, action)
        return transition

    def _next_number(self) -> str:
        """Count + 1, bumped past the highest existing number after deletions."""
        numbers = self._session.execute(
            select(InvoiceModel.number).where(
                InvoiceModel.project_id == self._project_id,
            )
        ).scalars().all()
        highest = max((int(n) for n in numbers if n.isdigit()), default=0)
        return str(max(len(numbers), highest) + 1).zfill(self._config.number_width)

    def _flush_claim(self, invoice: InvoiceModel) -> None:
        # a failed flush expires the instance, so read the number first
        number = invoice.number
        try:
            self._session.flush()
        except StaleDataError:
            raise ConflictError(f"Invoice {number} was modified concurrently") from None

    def _commit(self) -> None:
        try:
            self._session.commit()
        except StaleDataError:
            raise ConflictError("Invoice was modified concurrently") from None

    def _rollback(self, operation: str, invoice_id: UUID | None = None) -> None:
        self._session.rollback()
        logger.warning("invoice_command_rolled_back", extra={
            "operation": operation,
            "invoice_id": str(invoice_id) if invoice_id else None,
        }, exc_info=True)

    def _check_rate(self, value, allowed: Sequence[Decimal], field: str) -> Decimal:
        rate = to_decimal(value, field)
        if rate not in allowed:
            raise InvalidAmountError(
                field, rate, f"allowed rates are {', '.join(str(r) for r in allowed)}",
            )
        return rate

    def _build_items(self, items: Sequence[InvoiceItemInput]) -> list[InvoiceItem]:
        if not items:
            raise ValidationError("at least one item is required", field="items")

        built: list[InvoiceItem] = []
        for position, item in enumerate(items):
            description = (item.description or "").strip()
            if not description:
                raise ValidationError(
                    f"item {position + 1}: description is required", field="description",
                )
            if item.sub_account_id is None:
                raise ValidationError(
                    f"item {position + 1}: sub-account is required", field="sub_account_id",
                )
            quantity = to_decimal(item.quantity, "quantity")
            if quantity <= 0:
                raise InvalidAmountError("quantity", quantity, "must be greater than 0")
            unit_price = to_decimal(item.unit_price, "unit_price")
            if unit_price <= 0:
                raise InvalidAmountError("unit_price", unit_price, "must be greater than 0")
            vat_rate = self._check_rate(item.vat_rate, self._config.vat_rates, "vat_rate")
            irpf_rate = self._check_rate(item.irpf_rate, self._config.irpf_rates, "irpf_rate")

            sub_account = self._ledger.get_sub_account(item.sub_account_id)
            amounts = compute_item_amounts(quantity, unit_price, vat_rate, irpf_rate)
            built.append(InvoiceItem(
                position=position,
                description=description,
                sub_account_id=sub_account.id,
                sub_account_code=sub_account.code,
                quantity=quantity,
                unit_price=unit_price,
                base_amount=amounts.base_amount,
                vat_rate=vat_rate,
                vat_amount=amounts.vat_amount,
                irpf_rate=irpf_rate,
                irpf_amount=amounts.irpf_amount,
                total_amount=amounts.total_amount,
            ))
        return built

    def _resolve_counterparty(
        self,
        supplier_id: UUID | None,
        supplier_name: str | None,
        po_id: UUID | None,
    ) -> tuple[UUID | None, str, PurchaseOrderModel | None]:
        po = None
        if po_id is not None:
            po = self._session.execute(
                select(PurchaseOrderModel).where(
                    PurchaseOrderModel.id == po_id,
                    PurchaseOrderModel.project_id == self._project_id,
                )
            ).scalar_one_or_none()
            if po is None:
                raise DocumentNotFoundError("PurchaseOrder", po_id)
            if po.status != POStatus.APPROVED.value:
                raise InvalidStateError(
                    f"Purchase order {po.number} is {po.status}; only approved POs "
                    "can be invoiced"
                )

        if supplier_id is not None:
            supplier = self._session.execute(
                select(SupplierModel).where(
                    SupplierModel.id == supplier_id,
                    SupplierModel.project_id == self._project_id,
                )
            ).scalar_one_or_none()
            if supplier is None:
                raise SupplierNotFoundError(supplier_id)
            return supplier_id, supplier.to_dto().display_name, po

        if po is not None:
            return po.supplier_id, po.supplier_name, po

        name = (supplier_name or "").strip()
        if not name:
            raise ValidationError("a supplier or a purchase order is required", field="supplier")
        return None, name, None

    # =========================================================================
    # Creation
    # =========================================================================

    def create_invoice(
        self,
        description: str,
        items: Sequence[InvoiceItemInput],
        actor_id: str,
        supplier_id: UUID | None = None,
        supplier_name: str | None = None,
        po_id: UUID | None = None,
        due_date: date | None = None,
        department: str | None = None,
    ) -> Invoice:
        """
        Create an invoice and route it into approval.

        When the invoice templates resolve to no approvers the invoice is
        auto-approved straight to ``pending``.
        """
        description = (description or "").strip()
        if not description:
            raise ValidationError("description is required", field="description")

        try:
            resolved_supplier_id, name, po = self._resolve_counterparty(
                supplier_id, supplier_name, po_id,
            )
            built = self._build_items(items)
            totals = sum_items(built)
            now = self._clock.now()
            number = self._next_number()

            invoice = InvoiceModel(
                project_id=self._project_id,
                number=number,
                supplier_id=resolved_supplier_id,
                supplier_name=name,
                po_id=po.id if po is not None else None,
                po_number=po.number if po is not None else None,
                description=description,
                department=department,
                base_amount=totals.base_amount,
                vat_amount=totals.vat_amount,
                irpf_amount=totals.irpf_amount,
                total_amount=totals.total_amount,
                status=INVOICE_WORKFLOW.initial_state,
                current_approval_step=0,
                due_date=due_date or self._clock.today() + timedelta(
                    days=self._config.default_due_days,
                ),
                created_at=now,
                created_by=actor_id,
            )
            invoice.items = [
                InvoiceItemModel.from_dto(item, self._project_id, created_by=actor_id)
                for item in built
            ]

            steps = self._approvals.resolve_steps(DocumentKind.INVOICE, department)
            if steps:
                invoice.approval_steps = steps
            else:
                self._require_transition(invoice, "auto_approve")
                invoice.approval_steps = ()
                invoice.status = InvoiceStatus.PENDING.value
                invoice.auto_approved = True
                invoice.approved_at = now

            self._session.add(invoice)
            try:
                self._session.flush()
            except IntegrityError:
                raise ConflictError(f"Invoice number {number} already exists") from None
            self._commit()
        except Exception:
            self._rollback("create_invoice")
            raise

        logger.info("invoice_created", extra={
            "invoice_id": str(invoice.id),
            "number": invoice.number,
            "status": invoice.status,
            "auto_approved": invoice.auto_approved,
            "item_count": len(built),
            "total_amount": str(invoice.total_amount),
            "po_number": invoice.po_number,
        })
        return invoice.to_dto()

    # =========================================================================
    # Approval
    # =========================================================================

    def approve_invoice(self, invoice_id: UUID, acting_user_id: str) -> Invoice:
        """Record an approval on the current step; the last one moves to ``pending``."""
        try:
            invoice = self._load(invoice_id, for_update=True)
            self._require_transition(invoice, "approve")
            resolution = self._resolver.resolve_step(
                invoice.to_dto(), acting_user_id, ApprovalDecision.APPROVE,
            )
            invoice.approval_steps = resolution.steps
            invoice.current_approval_step = resolution.current_approval_step
            invoice.updated_by = acting_user_id
            if resolution.is_fully_approved:
                invoice.status = InvoiceStatus.PENDING.value
                invoice.approved_at = self._clock.now()
            self._flush_claim(invoice)
            self._commit()
        except Exception:
            self._rollback("approve_invoice", invoice_id)
            raise

        logger.info(
            "invoice_approved" if resolution.is_fully_approved else "invoice_step_approved",
            extra={
                "invoice_id": str(invoice_id),
                "number": invoice.number,
                "approved_by": acting_user_id,
                "outcome": resolution.outcome.value,
                "current_step": resolution.current_approval_step,
            },
        )
        return invoice.to_dto()

    def reject_invoice(self, invoice_id: UUID, acting_user_id: str, reason: str) -> Invoice:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("rejection reason is required", field="reason")
        try:
            invoice = self._load(invoice_id, for_update=True)
            self._require_transition(invoice, "reject")
            resolution = self._resolver.resolve_step(
                invoice.to_dto(), acting_user_id, ApprovalDecision.REJECT,
            )
            invoice.approval_steps = resolution.steps
            invoice.status = InvoiceStatus.REJECTED.value
            invoice.rejected_at = self._clock.now()
            invoice.rejected_by = acting_user_id
            invoice.rejection_reason = reason
            invoice.updated_by = acting_user_id
            self._flush_claim(invoice)
            self._commit()
        except Exception:
            self._rollback("reject_invoice", invoice_id)
            raise

        logger.info("invoice_rejected", extra={
            "invoice_id": str(invoice_id),
            "number": invoice.number,
            "rejected_by": acting_user_id,
        })
        return invoice.to_dto()

    # =========================================================================
    # Payment, cancellation, deletion
    # =========================================================================

    def mark_as_paid(
        self,
        invoice_id: UUID,
        acting_user_id: str,
        payment_date: date | None = None,
    ) -> Invoice:
        """
        Pay an invoice and realise its spend.

        Each item adds its base amount (VAT and IRPF excluded) to the
        ``actual`` figure of its sub-account.  The status flip and all
        deltas commit together or not at all.
        """
        try:
            invoice = self._load(invoice_id, for_update=True)
            self._require_transition(invoice, "pay")
            previous_status = invoice.status
            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_at = self._clock.now()
            invoice.paid_by = acting_user_id
            invoice.payment_date = payment_date or self._clock.today()
            invoice.updated_by = acting_user_id
            self._flush_claim(invoice)

            for item in invoice.items:
                self._ledger.adjust_actual(
                    item.sub_account_id, item.base_amount, actor_id=acting_user_id,
                )
            self._commit()
        except Exception:
            self._rollback("mark_as_paid", invoice_id)
            raise

        logger.info("invoice_paid", extra={
            "invoice_id": str(invoice_id),
            "number": invoice.number,
            "previous_status": previous_status,
            "base_amount": str(invoice.base_amount),
            "item_count": len(invoice.items),
            "paid_by": acting_user_id,
        })
        return invoice.to_dto()

    def cancel_invoice(self, invoice_id: UUID, acting_user_id: str, reason: str) -> Invoice:
        """Cancel a pending or overdue invoice.  A reason is mandatory."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("cancellation reason is required", field="reason")
        try:
            invoice = self._load(invoice_id, for_update=True)
            self._require_transition(invoice, "cancel")
            invoice.status = InvoiceStatus.CANCELLED.value
            invoice.cancelled_at = self._clock.now()
            invoice.cancelled_by = acting_user_id
            invoice.cancellation_reason = reason
            invoice.updated_by = acting_user_id
            self._flush_claim(invoice)
            self._commit()
        except Exception:
            self._rollback("cancel_invoice", invoice_id)
            raise

        logger.info("invoice_cancelled", extra={
            "invoice_id": str(invoice_id),
            "number": invoice.number,
            "cancelled_by": acting_user_id,
        })
        return invoice.to_dto()

    def delete_invoice(self, invoice_id: UUID, actor_id: str) -> None:
        """Delete an invoice.  Paid invoices are kept."""
        try:
            invoice = self._load(invoice_id, for_update=True)
            if invoice.status == InvoiceStatus.PAID.value:
                raise DocumentDeletionBlockedError(
                    DOCUMENT_TYPE, invoice_id, invoice.status, "paid invoices cannot be deleted",
                )
            number = invoice.number
            self._session.delete(invoice)
            self._flush_claim(invoice)
            self._commit()
        except Exception:
            self._rollback("delete_invoice", invoice_id)
            raise

        logger.info("invoice_deleted", extra={
            "invoice_id": str(invoice_id),
            "number": number,
            "actor_id": actor_id,
        })

    # =========================================================================
    # Overdue detection
    # =========================================================================

    def _flip_overdue(self, today: date) -> SweepResult:
        candidates = self._session.execute(
            select(InvoiceModel.id).where(
                InvoiceModel.project_id == self._project_id,
                InvoiceModel.status == InvoiceStatus.PENDING.value,
                InvoiceModel.due_date < today,
            )
        ).scalars().all()

        flipped: list[UUID] = []
        failed = 0
        for invoice_id in candidates:
            try:
                invoice = self._load(invoice_id, for_update=True)
                if invoice.status != InvoiceStatus.PENDING.value or invoice.due_date >= today:
                    self._session.rollback()
                    continue
                self._require_transition(invoice, "mark_overdue")
                invoice.status = InvoiceStatus.OVERDUE.value
                invoice.updated_by = "system"
                self._flush_claim(invoice)
                self._commit()
                flipped.append(invoice_id)
                logger.info("invoice_marked_overdue", extra={
                    "invoice_id": str(invoice_id),
                    "number": invoice.number,
                    "due_date": invoice.due_date,
                })
            except Exception:
                self._session.rollback()
                failed += 1
                logger.warning("invoice_overdue_flip_failed", extra={
                    "invoice_id": str(invoice_id),
                }, exc_info=True)

        return SweepResult(
            checked=len(candidates),
            flipped=len(flipped),
            failed=failed,
            flipped_ids=tuple(flipped),
        )

    def sweep_overdue(self, now: datetime | None = None) -> SweepResult:
        """
        Move every ``pending`` invoice due before today to ``overdue``.

        Idempotent.  Per-invoice failures are logged and counted in the
        result, never raised.
        """
        today = (now or self._clock.now()).date()
        result = self._flip_overdue(today)
        logger.info("overdue_sweep_completed", extra={
            "project_id": str(self._project_id),
            "today": today,
            "checked": result.checked,
            "flipped": result.flipped,
            "failed": result.failed,
        })
        return result

    # =========================================================================
    # Queries
    # =========================================================================

    def get_invoice(self, invoice_id: UUID) -> Invoice:
        return self._load(invoice_id).to_dto()

    def list_invoices(
        self,
        status: InvoiceStatus | str | None = None,
        supplier_id: UUID | None = None,
        search: str | None = None,
        sort_by: InvoiceSortField | str = InvoiceSortField.CREATED_AT,
        descending: bool = True,
        refresh_overdue: bool = True,
    ) -> tuple[Invoice, ...]:
        """Filtered, sorted invoices; overdue status is refreshed first by default."""
        if refresh_overdue:
            self._flip_overdue(self._clock.today())

        try:
            sort_field = InvoiceSortField(sort_by)
        except ValueError:
            raise ValidationError(f"Unknown sort field: {sort_by!r}", field="sort_by") from None

        stmt = select(InvoiceModel).where(InvoiceModel.project_id == self._project_id)
        if status is not None:
            stmt = stmt.where(InvoiceModel.status == InvoiceStatus(status).value)
        if supplier_id is not None:
            stmt = stmt.where(InvoiceModel.supplier_id == supplier_id)
        term = (search or "").strip().lower()
        if term:
            pattern = f"%{term}%"
            stmt = stmt.where(or_(
                func.lower(InvoiceModel.number).like(pattern),
                func.lower(InvoiceModel.supplier_name).like(pattern),
                func.lower(InvoiceModel.description).like(pattern),
                func.lower(func.coalesce(InvoiceModel.po_number, "")).like(pattern),
            ))

        column = getattr(InvoiceModel, sort_field.value)
        if descending:
            stmt = stmt.order_by(column.desc(), InvoiceModel.number.desc())
        else:
            stmt = stmt.order_by(column.asc(), InvoiceModel.number.asc())

        rows = self._session.execute(
            stmt.execution_options(populate_existing=True)
        ).scalars().all()
        return tuple(r.to_dto() for r in rows)

    def invoice_stats(self) -> InvoiceStats:
        rows = self._session.execute(
            select(
                InvoiceModel.status,
                func.count(InvoiceModel.id),
                func.coalesce(func.sum(InvoiceModel.total_amount), 0),
            )
            .where(InvoiceModel.project_id == self._project_id)
            .group_by(InvoiceModel.status)
        ).all()

        counts = {s.value: 0 for s in InvoiceStatus}
        amounts = {s.value: Decimal("0") for s in InvoiceStatus}
        for status, count, amount in rows:
            counts[status] = count
            amounts[status] = Decimal(str(amount))

        return InvoiceStats(
            counts=counts,
            total=sum(counts.values()),
            paid_amount=amounts[InvoiceStatus.PAID.value],
            pending_amount=(
                amounts[InvoiceStatus.PENDING.value]
                + amounts[InvoiceStatus.PENDING_APPROVAL.value]
            ),
            overdue_amount=amounts[InvoiceStatus.OVERDUE.value],
        )

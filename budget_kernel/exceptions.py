"""
Typed exception hierarchy for the budget ledger.

Every failure a caller can observe is a typed exception with a machine-readable
``code`` and structured attributes.  Callers catch by type (or by family), never
by parsing messages.

    BudgetLedgerError (base)
    |
    +-- ValidationError
    |   +-- InvalidAmountError
    |
    +-- NotFoundError
    |   +-- AccountNotFoundError
    |   +-- SubAccountNotFoundError
    |   +-- DocumentNotFoundError
    |   +-- SupplierNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicateCodeError
    |   +-- AccountHasSubAccountsError
    |   +-- DocumentDeletionBlockedError
    |   +-- SupplierInUseError
    |   +-- LedgerContentionError
    |
    +-- ForbiddenError
    |   +-- ApproverNotAllowedError
    |
    +-- InvalidStateError
        +-- InvalidTransitionError

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | VALIDATION_ERROR            | Required field blank or malformed
                | INVALID_AMOUNT              | Amount/rate outside its allowed range
----------------|-----------------------------|-----------------------------------------
Not found       | NOT_FOUND                   | Referenced entity absent
                | ACCOUNT_NOT_FOUND           | Account id unknown in this project
                | SUB_ACCOUNT_NOT_FOUND       | Sub-account id unknown in this project
                | DOCUMENT_NOT_FOUND          | PO / invoice id unknown in this project
                | SUPPLIER_NOT_FOUND          | Supplier id unknown in this project
----------------|-----------------------------|-----------------------------------------
Conflict        | CONFLICT                    | Operation collides with existing data
                | DUPLICATE_CODE              | Account code already used
                | ACCOUNT_HAS_SUB_ACCOUNTS    | Delete of an account with children
                | DOCUMENT_DELETION_BLOCKED   | Delete of paid invoice / approved PO
                | SUPPLIER_IN_USE             | Delete of supplier referenced by docs
                | LEDGER_CONTENTION           | Adjustment retries exhausted
----------------|-----------------------------|-----------------------------------------
Forbidden       | FORBIDDEN                   | Actor may not perform this action
                | APPROVER_NOT_ALLOWED        | Not an approver of the current step
----------------|-----------------------------|-----------------------------------------
State           | INVALID_STATE               | Transition illegal from current status
                | INVALID_TRANSITION          | Named action illegal from a status
"""

from __future__ import annotations

from typing import Any


class BudgetLedgerError(Exception):
    """
    Base exception for all budget ledger errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification.
    """

    code: str = "BUDGET_LEDGER_ERROR"


# Validation


class ValidationError(BudgetLedgerError):
    """A required field is missing or a value is malformed."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class InvalidAmountError(ValidationError):
    """An amount or rate is outside its allowed range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value: Any, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field}: {value} ({reason})", field=field)


# Not found


class NotFoundError(BudgetLedgerError):
    """A referenced entity does not exist in the acting project."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} not found: {entity_id}")


class AccountNotFoundError(NotFoundError):
    code: str = "ACCOUNT_NOT_FOUND"

    def __init__(self, account_id: Any):
        super().__init__("Account", account_id)


class SubAccountNotFoundError(NotFoundError):
    code: str = "SUB_ACCOUNT_NOT_FOUND"

    def __init__(self, sub_account_id: Any):
        super().__init__("SubAccount", sub_account_id)


class DocumentNotFoundError(NotFoundError):
    code: str = "DOCUMENT_NOT_FOUND"

    def __init__(self, document_type: str, document_id: Any):
        super().__init__(document_type, document_id)


class SupplierNotFoundError(NotFoundError):
    code: str = "SUPPLIER_NOT_FOUND"

    def __init__(self, supplier_id: Any):
        super().__init__("Supplier", supplier_id)


# Conflict


class ConflictError(BudgetLedgerError):
    """The operation collides with existing data."""

    code: str = "CONFLICT"


class DuplicateCodeError(ConflictError):
    """An account code is already used in the project."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, code_value: str):
        self.code_value = code_value
        super().__init__(f"Account code already exists: {code_value}")


class AccountHasSubAccountsError(ConflictError):
    """An account cannot be deleted while it owns sub-accounts."""

    code: str = "ACCOUNT_HAS_SUB_ACCOUNTS"

    def __init__(self, account_id: Any, sub_account_count: int):
        self.account_id = str(account_id)
        self.sub_account_count = sub_account_count
        super().__init__(
            f"Account {account_id} has {sub_account_count} sub-account(s); "
            "delete them first"
        )


class DocumentDeletionBlockedError(ConflictError):
    """A document cannot be deleted in its current state."""

    code: str = "DOCUMENT_DELETION_BLOCKED"

    def __init__(self, document_type: str, document_id: Any, status: str, reason: str):
        self.document_type = document_type
        self.document_id = str(document_id)
        self.status = status
        self.reason = reason
        super().__init__(
            f"Cannot delete {document_type} {document_id} in status {status}: {reason}"
        )


class SupplierInUseError(ConflictError):
    """A supplier referenced by purchase orders or invoices cannot be deleted."""

    code: str = "SUPPLIER_IN_USE"

    def __init__(self, supplier_id: Any, po_count: int, invoice_count: int):
        self.supplier_id = str(supplier_id)
        self.po_count = po_count
        self.invoice_count = invoice_count
        super().__init__(
            f"Supplier {supplier_id} has {po_count} PO(s) and "
            f"{invoice_count} invoice(s) assigned"
        )


class LedgerContentionError(ConflictError):
    """Compare-and-swap retries on a sub-account were exhausted."""

    code: str = "LEDGER_CONTENTION"

    def __init__(self, sub_account_id: Any, field: str, attempts: int):
        self.sub_account_id = str(sub_account_id)
        self.field = field
        self.attempts = attempts
        super().__init__(
            f"Could not adjust {field} on sub-account {sub_account_id} "
            f"after {attempts} attempt(s): concurrent modification"
        )


# Forbidden


class ForbiddenError(BudgetLedgerError):
    """The acting user may not perform this action."""

    code: str = "FORBIDDEN"


class ApproverNotAllowedError(ForbiddenError):
    """The acting user cannot act on the document's current approval step."""

    code: str = "APPROVER_NOT_ALLOWED"

    def __init__(self, document_id: Any, user_id: str, step_index: int, reason: str):
        self.document_id = str(document_id)
        self.user_id = user_id
        self.step_index = step_index
        self.reason = reason
        super().__init__(
            f"User {user_id} cannot act on step {step_index} of {document_id}: {reason}"
        )


# Invalid state


class InvalidStateError(BudgetLedgerError):
    """The transition is not legal from the document's current status."""

    code: str = "INVALID_STATE"


class InvalidTransitionError(InvalidStateError):
    """A named workflow action is not allowed from the current status."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, document_type: str, document_id: Any, status: str, action: str):
        self.document_type = document_type
        self.document_id = str(document_id)
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} {document_type} {document_id} in status {status}"
        )

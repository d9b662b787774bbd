"""
Ledger Account Store Service (``budget_modules.ledger.service``).

Responsibility
--------------
Owns the chart of accounts for one project: account and sub-account
creation, budget edits, deletion rules, search, CSV import/export, and
the two figure adjustments (``adjust_committed`` / ``adjust_actual``)
through which the document engines change ledger figures.

Architecture position
---------------------
**Modules layer** -- the single shared mutable resource of the system.
``ProcurementService`` and ``InvoiceService`` hold a ``LedgerService``
built with ``auto_commit=False`` over their own session so that ledger
deltas join the engine's transaction.

Invariants enforced
-------------------
* ``available == budgeted - committed - actual`` (derived, never stored).
* Figures change only through ``adjust_*`` and ``update_sub_account*``;
  nothing else writes ``committed`` / ``actual``.
* Adjustments are atomic read-modify-write: compare-and-swap on
  ``SubAccountModel.version``, retried up to ``max_adjust_retries``.
  Final figures equal the sum of all applied deltas under any
  interleaving.
* With ``auto_commit=True`` each public command owns the transaction
  boundary (``commit`` on success, ``rollback`` and re-raise on failure).

Failure modes
-------------
* ``ValidationError`` -- blank code/description, negative budget.
* ``AccountNotFoundError`` / ``SubAccountNotFoundError`` -- unknown id or
  id of another project.
* ``DuplicateCodeError`` -- account code already used in the project.
* ``AccountHasSubAccountsError`` -- delete of a non-empty account.
* ``LedgerContentionError`` -- CAS retries exhausted.

Audit relevance
---------------
Every adjustment logs ``ledger_adjusted`` with the sub-account, figure,
delta, new value and version; contention retries log at WARNING.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from budget_kernel.db.types import format_amount, to_decimal
from budget_kernel.domain.clock import Clock, SystemClock
from budget_kernel.exceptions import (
    AccountHasSubAccountsError,
    AccountNotFoundError,
    DuplicateCodeError,
    InvalidAmountError,
    LedgerContentionError,
    SubAccountNotFoundError,
    ValidationError,
)
from budget_kernel.logging_config import get_logger
from budget_modules.ledger.config import LedgerStoreConfig
from budget_modules.ledger.importer import parent_code_of, parse_budget_csv
from budget_modules.ledger.models import (
    Account,
    BudgetImportResult,
    BudgetLineType,
    ImportSkip,
    LedgerFigure,
    SubAccount,
)
from budget_modules.ledger.orm import AccountModel, SubAccountModel

logger = get_logger("modules.ledger.service")

EXPORT_HEADER = (
    "CÓDIGO", "DESCRIPCIÓN", "TIPO", "PRESUPUESTADO",
    "COMPROMETIDO", "REALIZADO", "DISPONIBLE",
)


def _require_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationError(f"{field} is required", field=field)
    return text


def _require_budget(value) -> Decimal:
    budgeted = to_decimal(value, "budgeted")
    if budgeted < 0:
        raise InvalidAmountError("budgeted", budgeted, "must be >= 0")
    return budgeted


class LedgerService:
    """
    Chart of accounts and budget figures for one project.

    Contract
    --------
    * Commands return fresh frozen DTOs read back after the write.
    * ``adjust_committed`` / ``adjust_actual`` are the only entry points
      by which engines mutate ledger figures.

    Guarantees
    ----------
    * Reads of sub-accounts always bypass the session identity map, so
      figures reflect the latest committed (or own-transaction) values.
    * Clock is injectable for deterministic testing.

    Non-goals
    ---------
    * Does NOT enforce sub-account code uniqueness; codes are advisory
      and used for grouping and sorting.
    * Does NOT block adjustments that drive ``available`` negative; that
      is a reporting signal, not an error.
    """

    def __init__(
        self,
        session: Session,
        project_id: UUID,
        clock: Clock | None = None,
        config: LedgerStoreConfig | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._project_id = project_id
        self._clock = clock or SystemClock()
        self._config = config or LedgerStoreConfig.with_defaults()
        self._auto_commit = auto_commit

    # =========================================================================
    # Transaction helpers
    # =========================================================================

    def _commit(self) -> None:
        if self._auto_commit:
            self._session.commit()

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()
            logger.warning("ledger_command_rolled_back", extra={
                "project_id": str(self._project_id),
            }, exc_info=True)

    # =========================================================================
    # Loading
    # =========================================================================

    def _load_account(self, account_id: UUID) -> AccountModel:
        account = self._session.execute(
            select(AccountModel).where(
                AccountModel.id == account_id,
                AccountModel.project_id == self._project_id,
            )
        ).scalar_one_or_none()
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def _load_sub_account(self, sub_account_id: UUID) -> SubAccountModel:
        sub = self._session.execute(
            select(SubAccountModel)
            .where(
                SubAccountModel.id == sub_account_id,
                SubAccountModel.project_id == self._project_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if sub is None:
            raise SubAccountNotFoundError(sub_account_id)
        return sub

    def _sub_accounts_by_account(self) -> dict[UUID, list[SubAccount]]:
        rows = self._session.execute(
            select(SubAccountModel)
            .where(SubAccountModel.project_id == self._project_id)
            .order_by(SubAccountModel.code)
            .execution_options(populate_existing=True)
        ).scalars().all()
        grouped: dict[UUID, list[SubAccount]] = defaultdict(list)
        for row in rows:
            grouped[row.account_id].append(row.to_dto())
        return grouped

    def _count_sub_accounts(self, account_id: UUID) -> int:
        return self._session.execute(
            select(func.count(SubAccountModel.id)).where(
                SubAccountModel.account_id == account_id,
                SubAccountModel.project_id == self._project_id,
            )
        ).scalar_one()

    def _account_dto(self, account: AccountModel) -> Account:
        subs = self._session.execute(
            select(SubAccountModel)
            .where(
                SubAccountModel.account_id == account.id,
                SubAccountModel.project_id == self._project_id,
            )
            .order_by(SubAccountModel.code)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return account.to_dto(tuple(s.to_dto() for s in subs))

    def normalize_account_code(self, code: str) -> str:
        return code.strip().rjust(self._config.account_code_width, "0")

    # =========================================================================
    # Accounts
    # =========================================================================

    def create_account(self, code: str, description: str, actor_id: str) -> Account:
        """Create an account; numeric codes are left-padded (``1`` -> ``01``)."""
        try:
            code = self.normalize_account_code(_require_text(code, "code"))
            description = _require_text(description, "description")

            account = self._create_account_row(code, description, actor_id)
            self._commit()
            logger.info("account_created", extra={
                "project_id": str(self._project_id),
                "account_id": str(account.id),
                "code": code,
            })
            return account.to_dto()
        except Exception:
            self._rollback()
            raise

    def _create_account_row(self, code: str, description: str, actor_id: str) -> AccountModel:
        existing = self._session.execute(
            select(AccountModel.id).where(
                AccountModel.project_id == self._project_id,
                AccountModel.code == code,
            )
        ).first()
        if existing is not None:
            raise DuplicateCodeError(code)

        account = AccountModel(
            id=uuid4(),
            project_id=self._project_id,
            code=code,
            description=description,
            created_at=self._clock.now(),
            created_by=actor_id,
        )
        self._session.add(account)
        try:
            self._session.flush()
        except IntegrityError:
            raise DuplicateCodeError(code) from None
        return account

    def get_account(self, account_id: UUID) -> Account:
        return self._account_dto(self._load_account(account_id))

    def list_accounts(self) -> tuple[Account, ...]:
        """The account tree ordered by code, sub-accounts ordered by code."""
        accounts = self._session.execute(
            select(AccountModel)
            .where(AccountModel.project_id == self._project_id)
            .order_by(AccountModel.code)
        ).scalars().all()
        grouped = self._sub_accounts_by_account()
        return tuple(a.to_dto(tuple(grouped.get(a.id, ()))) for a in accounts)

    def search(self, term: str) -> tuple[Account, ...]:
        """
        Case-insensitive code/description search.

        A matching account is returned with all its sub-accounts; otherwise
        an account is returned with only its matching sub-accounts.
        """
        needle = (term or "").strip().lower()
        accounts = self.list_accounts()
        if not needle:
            return accounts

        def matches(code: str, description: str) -> bool:
            return needle in code.lower() or needle in description.lower()

        results: list[Account] = []
        for account in accounts:
            if matches(account.code, account.description):
                results.append(account)
                continue
            subs = tuple(s for s in account.sub_accounts if matches(s.code, s.description))
            if subs:
                results.append(Account(
                    id=account.id,
                    project_id=account.project_id,
                    code=account.code,
                    description=account.description,
                    sub_accounts=subs,
                    created_at=account.created_at,
                ))
        return tuple(results)

    def delete_account(self, account_id: UUID, actor_id: str) -> None:
        """Delete an account.  Blocked while it owns any sub-account."""
        try:
            account = self._load_account(account_id)
            count = self._count_sub_accounts(account_id)
            if count > 0:
                raise AccountHasSubAccountsError(account_id, count)
            self._session.delete(account)
            self._session.flush()
            self._commit()
            logger.info("account_deleted", extra={
                "account_id": str(account_id),
                "actor_id": actor_id,
            })
        except Exception:
            self._rollback()
            raise

    # =========================================================================
    # Sub-accounts
    # =========================================================================

    def suggest_sub_account_code(self, account_id: UUID) -> str:
        """Next conventional code: ``{account}-{n+1:02d}-01``."""
        account = self._load_account(account_id)
        count = self._count_sub_accounts(account_id)
        return f"{account.code}-{count + 1:02d}-01"

    def create_sub_account(
        self,
        account_id: UUID,
        code: str,
        description: str,
        budgeted: Decimal | int | str,
        actor_id: str,
    ) -> SubAccount:
        """Create a sub-account with committed = actual = 0."""
        try:
            account = self._load_account(account_id)
            code = _require_text(code, "code")
            description = _require_text(description, "description")
            amount = _require_budget(budgeted)

            sub = self._create_sub_account_row(account, code, description, amount, actor_id)
            self._commit()
            logger.info("sub_account_created", extra={
                "account_id": str(account_id),
                "sub_account_id": str(sub.id),
                "code": code,
                "budgeted": str(amount),
            })
            return sub.to_dto()
        except Exception:
            self._rollback()
            raise

    def _create_sub_account_row(
        self,
        account: AccountModel,
        code: str,
        description: str,
        budgeted: Decimal,
        actor_id: str,
    ) -> SubAccountModel:
        sub = SubAccountModel(
            id=uuid4(),
            project_id=self._project_id,
            account_id=account.id,
            code=code,
            description=description,
            budgeted=budgeted,
            committed=Decimal("0"),
            actual=Decimal("0"),
            version=0,
            created_at=self._clock.now(),
            created_by=actor_id,
        )
        self._session.add(sub)
        self._session.flush()
        return sub

    def get_sub_account(self, sub_account_id: UUID) -> SubAccount:
        return self._load_sub_account(sub_account_id).to_dto()

    def update_sub_account(
        self,
        sub_account_id: UUID,
        actor_id: str,
        description: str | None = None,
        budgeted: Decimal | int | str | None = None,
    ) -> SubAccount:
        """Change the description and/or the budget of a sub-account."""
        try:
            sub = self._load_sub_account(sub_account_id)
            if description is not None:
                sub.description = _require_text(description, "description")
            if budgeted is not None:
                amount = _require_budget(budgeted)
                logger.info("sub_account_budget_updated", extra={
                    "sub_account_id": str(sub_account_id),
                    "old_budgeted": str(sub.budgeted),
                    "new_budgeted": str(amount),
                    "actor_id": actor_id,
                })
                sub.budgeted = amount
                sub.version = sub.version + 1
            sub.updated_by = actor_id
            self._session.flush()
            self._commit()
            return self._load_sub_account(sub_account_id).to_dto()
        except Exception:
            self._rollback()
            raise

    def update_sub_account_budget(
        self,
        sub_account_id: UUID,
        budgeted: Decimal | int | str,
        actor_id: str,
    ) -> SubAccount:
        return self.update_sub_account(sub_account_id, actor_id, budgeted=budgeted)

    def delete_sub_account(self, sub_account_id: UUID, actor_id: str) -> None:
        try:
            sub = self._load_sub_account(sub_account_id)
            self._session.delete(sub)
            self._session.flush()
            self._commit()
            logger.info("sub_account_deleted", extra={
                "sub_account_id": str(sub_account_id),
                "actor_id": actor_id,
            })
        except Exception:
            self._rollback()
            raise

    # =========================================================================
    # Figure adjustments
    # =========================================================================

    def adjust_committed(
        self,
        sub_account_id: UUID,
        delta: Decimal | int | str,
        actor_id: str | None = None,
    ) -> SubAccount:
        """Atomically add ``delta`` to the sub-account's committed figure."""
        return self._adjust(sub_account_id, LedgerFigure.COMMITTED, delta, actor_id)

    def adjust_actual(
        self,
        sub_account_id: UUID,
        delta: Decimal | int | str,
        actor_id: str | None = None,
    ) -> SubAccount:
        """Atomically add ``delta`` to the sub-account's actual figure."""
        return self._adjust(sub_account_id, LedgerFigure.ACTUAL, delta, actor_id)

    def _adjust(
        self,
        sub_account_id: UUID,
        figure: LedgerFigure,
        delta: Decimal | int | str,
        actor_id: str | None,
    ) -> SubAccount:
        try:
            amount = to_decimal(delta, "delta")
            self._apply_delta(sub_account_id, figure, amount, actor_id)
            self._commit()
            return self._load_sub_account(sub_account_id).to_dto()
        except Exception:
            self._rollback()
            raise

    def _apply_delta(
        self,
        sub_account_id: UUID,
        figure: LedgerFigure,
        delta: Decimal,
        actor_id: str | None,
    ) -> Decimal:
        column = getattr(SubAccountModel, figure.value)
        attempts = self._config.max_adjust_retries

        for attempt in range(1, attempts + 1):
            row = self._session.execute(
                select(column, SubAccountModel.version).where(
                    SubAccountModel.id == sub_account_id,
                    SubAccountModel.project_id == self._project_id,
                )
            ).one_or_none()
            if row is None:
                raise SubAccountNotFoundError(sub_account_id)

            current, version = row
            new_value = current + delta
            result = self._session.execute(
                update(SubAccountModel)
                .where(
                    SubAccountModel.id == sub_account_id,
                    SubAccountModel.version == version,
                )
                .values({
                    figure.value: new_value,
                    "version": version + 1,
                    "updated_by": actor_id,
                })
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                logger.info("ledger_adjusted", extra={
                    "sub_account_id": str(sub_account_id),
                    "figure": figure.value,
                    "delta": str(delta),
                    "new_value": str(new_value),
                    "version": version + 1,
                    "attempt": attempt,
                })
                return new_value

            logger.warning("ledger_adjust_contention", extra={
                "sub_account_id": str(sub_account_id),
                "figure": figure.value,
                "attempt": attempt,
                "max_attempts": attempts,
            })

        raise LedgerContentionError(sub_account_id, figure.value, attempts)

    # =========================================================================
    # CSV import / export
    # =========================================================================

    def import_budget_csv(self, text: str, actor_id: str) -> BudgetImportResult:
        """
        Import accounts and sub-accounts from budget CSV text.

        All-or-nothing: any unexpected failure rolls back every row.  Rows
        that cannot be placed (unknown parent, bad amount) are skipped and
        reported; an existing account code is reused, not duplicated.
        """
        rows, skips = parse_budget_csv(text)
        skipped = list(skips)
        try:
            by_code: dict[str, AccountModel] = {
                a.code: a
                for a in self._session.execute(
                    select(AccountModel).where(AccountModel.project_id == self._project_id)
                ).scalars()
            }
            accounts_created = 0
            sub_accounts_created = 0

            for row in rows:
                if row.line_type == BudgetLineType.ACCOUNT:
                    code = self.normalize_account_code(row.code)
                    if code in by_code:
                        by_code[row.code] = by_code[code]
                        continue
                    account = self._create_account_row(code, row.description, actor_id)
                    by_code[code] = account
                    by_code[row.code] = account
                    accounts_created += 1
                else:
                    parent_code = parent_code_of(row.code)
                    account = by_code.get(parent_code) or by_code.get(
                        self.normalize_account_code(parent_code)
                    )
                    if account is None:
                        skipped.append(ImportSkip(
                            row.line_number, f"no account with code {parent_code!r}",
                        ))
                        continue
                    self._create_sub_account_row(
                        account, row.code, row.description, row.budgeted, actor_id,
                    )
                    sub_accounts_created += 1

            self._commit()
        except Exception:
            self._rollback()
            raise

        skipped.sort(key=lambda s: s.line_number)
        result = BudgetImportResult(
            accounts_created=accounts_created,
            sub_accounts_created=sub_accounts_created,
            skipped=tuple(skipped),
        )
        logger.info("budget_imported", extra={
            "project_id": str(self._project_id),
            "accounts_created": accounts_created,
            "sub_accounts_created": sub_accounts_created,
            "skipped": len(skipped),
        })
        return result

    def export_rows(self, accounts: Iterable[Account] | None = None) -> list[list[str]]:
        """Budget export: each account row followed by its sub-account rows."""
        rows: list[list[str]] = [list(EXPORT_HEADER)]
        for account in accounts if accounts is not None else self.list_accounts():
            budgeted = sum((s.budgeted for s in account.sub_accounts), Decimal("0"))
            committed = sum((s.committed for s in account.sub_accounts), Decimal("0"))
            actual = sum((s.actual for s in account.sub_accounts), Decimal("0"))
            rows.append([
                account.code, account.description, BudgetLineType.ACCOUNT.value,
                format_amount(budgeted), format_amount(committed),
                format_amount(actual), format_amount(budgeted - committed - actual),
            ])
            for sub in account.sub_accounts:
                rows.append([
                    sub.code, sub.description, BudgetLineType.SUB_ACCOUNT.value,
                    format_amount(sub.budgeted), format_amount(sub.committed),
                    format_amount(sub.actual), format_amount(sub.available),
                ])
        return rows

"""Read-only repository over the ledger tables."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from ledger_reports.models.entities import (
    Account,
    Budget,
    BudgetLimit,
    JournalEntryRow,
    JournalType,
    TransactionCurrency,
    journal_entry_tags,
)
from ledger_reports.services.report_data import (
    Currency,
    DimensionSelector,
    JournalEntry,
    JournalQuery,
    Period,
    TransactionType,
)


def to_currency(row: TransactionCurrency) -> Currency:
    return Currency(
        id=row.id,
        code=row.code,
        symbol=row.symbol,
        name=row.name,
        decimal_places=row.decimal_places,
    )


def to_journal_entry(row: JournalEntryRow) -> JournalEntry:
    return JournalEntry(
        id=row.id,
        date=row.transaction_date,
        description=row.description,
        transaction_type=TransactionType(row.transaction_type.value),
        source_account_id=row.source_account_id,
        source_account_name=row.source_account.name,
        destination_account_id=row.destination_account_id,
        destination_account_name=row.destination_account.name,
        currency=to_currency(row.currency),
        amount=row.amount,
        budget_id=row.budget_id,
        budget_name=row.budget.name if row.budget is not None else None,
        category_id=row.category_id,
        category_name=row.category.name if row.category is not None else None,
        tags=tuple((tag.id, tag.tag) for tag in row.tags),
    )


class LedgerRepository:
    """Queries used by report collection; never writes."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ---------- Reference data ----------
    def list_accounts(self, account_ids: Iterable[int]) -> list[Account]:
        ids = list(account_ids)
        if not ids:
            return []
        rows = self.db.scalars(select(Account).where(Account.id.in_(ids))).unique().all()
        by_id = {row.id: row for row in rows}
        return [by_id[account_id] for account_id in ids if account_id in by_id]

    def list_budgets(self, budget_ids: Iterable[int]) -> list[Budget]:
        ids = list(budget_ids)
        if not ids:
            return []
        rows = self.db.scalars(select(Budget).where(Budget.id.in_(ids))).all()
        by_id = {row.id: row for row in rows}
        return [by_id[budget_id] for budget_id in ids if budget_id in by_id]

    def list_budget_limits(self, budget_ids: Iterable[int], period: Period) -> list[BudgetLimit]:
        ids = list(budget_ids)
        if not ids:
            return []
        return self.db.scalars(
            select(BudgetLimit)
            .where(
                and_(
                    BudgetLimit.budget_id.in_(ids),
                    BudgetLimit.start_date <= period.end,
                    BudgetLimit.end_date >= period.start,
                )
            )
            .order_by(BudgetLimit.budget_id.asc(), BudgetLimit.start_date.asc())
        ).unique().all()

    # ---------- Journals ----------
    @staticmethod
    def _account_filter(query: JournalQuery) -> ColumnElement[bool] | None:
        if not query.accounts:
            return None
        ids = list(query.accounts)
        clauses: list[ColumnElement[bool]] = []
        for transaction_type in query.transaction_types:
            journal_type = JournalType(transaction_type.value)
            if transaction_type is TransactionType.WITHDRAWAL:
                side = JournalEntryRow.source_account_id.in_(ids)
            elif transaction_type is TransactionType.DEPOSIT:
                side = JournalEntryRow.destination_account_id.in_(ids)
            else:
                side = or_(
                    JournalEntryRow.source_account_id.in_(ids),
                    JournalEntryRow.destination_account_id.in_(ids),
                )
            clauses.append(and_(JournalEntryRow.transaction_type == journal_type, side))
        return or_(*clauses)

    @staticmethod
    def _counterparty_filter(query: JournalQuery) -> ColumnElement[bool] | None:
        if not query.counterparties:
            return None
        ids = list(query.counterparties)
        return or_(
            and_(
                JournalEntryRow.transaction_type == JournalType.WITHDRAWAL,
                JournalEntryRow.destination_account_id.in_(ids),
            ),
            and_(
                JournalEntryRow.transaction_type == JournalType.DEPOSIT,
                JournalEntryRow.source_account_id.in_(ids),
            ),
        )

    def query_journals(self, period: Period, query: JournalQuery) -> list[JournalEntry]:
        statement = select(JournalEntryRow).where(
            and_(
                JournalEntryRow.transaction_date >= period.start,
                JournalEntryRow.transaction_date <= period.end,
                JournalEntryRow.transaction_type.in_(
                    [JournalType(transaction_type.value) for transaction_type in query.transaction_types]
                ),
            )
        )
        for clause in (self._account_filter(query), self._counterparty_filter(query)):
            if clause is not None:
                statement = statement.where(clause)
        if query.budgets:
            statement = statement.where(JournalEntryRow.budget_id.in_(list(query.budgets)))
        if query.categories:
            statement = statement.where(JournalEntryRow.category_id.in_(list(query.categories)))
        if query.tags:
            tagged = select(journal_entry_tags.c.journal_entry_id).where(
                journal_entry_tags.c.tag_id.in_(list(query.tags))
            )
            statement = statement.where(JournalEntryRow.id.in_(tagged))

        rows = self.db.scalars(
            statement.order_by(JournalEntryRow.transaction_date.asc(), JournalEntryRow.id.asc())
        ).unique().all()
        return [to_journal_entry(row) for row in rows]

    def list_entries_until(self, until: date, accounts: DimensionSelector) -> list[JournalEntry]:
        """All entries touching the accounts up to and including ``until``."""

        if not accounts:
            return []
        ids = list(accounts)
        rows = self.db.scalars(
            select(JournalEntryRow)
            .where(
                and_(
                    JournalEntryRow.transaction_date <= until,
                    or_(
                        JournalEntryRow.source_account_id.in_(ids),
                        JournalEntryRow.destination_account_id.in_(ids),
                    ),
                )
            )
            .order_by(JournalEntryRow.transaction_date.asc(), JournalEntryRow.id.asc())
        ).unique().all()
        return [to_journal_entry(row) for row in rows]


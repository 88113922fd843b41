"""ORM model package."""

from ledger_reports.models.entities import (
    Account,
    AccountType,
    Budget,
    BudgetLimit,
    Category,
    JournalEntryRow,
    JournalType,
    Tag,
    TransactionCurrency,
    journal_entry_tags,
)

__all__ = [
    "Account",
    "AccountType",
    "Budget",
    "BudgetLimit",
    "Category",
    "JournalEntryRow",
    "JournalType",
    "Tag",
    "TransactionCurrency",
    "journal_entry_tags",
]

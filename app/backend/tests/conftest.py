from __future__ import annotations

from collections.abc import Generator, Sequence
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ledger_reports.core.config import get_settings
from ledger_reports.db.base import Base
from ledger_reports.db.dependencies import get_db_session
import ledger_reports.models.entities  # noqa: F401
from ledger_reports.main import create_app
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
)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    app = create_app()

    def override_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db_session] = override_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def export_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Generator[Path, None, None]:
    """Switch exports to the on-disk round trip under a temporary directory."""

    directory = tmp_path / "exports"
    monkeypatch.setenv("EXPORT_DIRECTORY", str(directory))
    get_settings.cache_clear()
    yield directory
    monkeypatch.delenv("EXPORT_DIRECTORY")
    get_settings.cache_clear()


class LedgerSeed:
    """Small builder for ledger rows used across API and repository tests."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _add(self, row):
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def currency(self, code: str = "USD", *, symbol: str = "$", decimal_places: int = 2) -> TransactionCurrency:
        return self._add(
            TransactionCurrency(code=code, name=code, symbol=symbol, decimal_places=decimal_places, enabled=True)
        )

    def account(self, name: str, account_type: AccountType, currency: TransactionCurrency) -> Account:
        return self._add(Account(name=name, account_type=account_type, currency_id=currency.id, active=True))

    def budget(self, name: str) -> Budget:
        return self._add(Budget(name=name, active=True))

    def budget_limit(
        self,
        budget: Budget,
        currency: TransactionCurrency,
        *,
        start: date,
        end: date,
        amount: str,
    ) -> BudgetLimit:
        return self._add(
            BudgetLimit(
                budget_id=budget.id,
                currency_id=currency.id,
                start_date=start,
                end_date=end,
                amount=Decimal(amount),
            )
        )

    def category(self, name: str) -> Category:
        return self._add(Category(name=name))

    def tag(self, name: str) -> Tag:
        return self._add(Tag(tag=name))

    def journal(
        self,
        *,
        on: date,
        journal_type: JournalType,
        source: Account,
        destination: Account,
        amount: str,
        currency: TransactionCurrency,
        description: str = "",
        budget: Budget | None = None,
        category: Category | None = None,
        tags: Sequence[Tag] = (),
    ) -> JournalEntryRow:
        row = JournalEntryRow(
            transaction_date=on,
            description=description,
            transaction_type=journal_type,
            source_account_id=source.id,
            destination_account_id=destination.id,
            currency_id=currency.id,
            amount=Decimal(amount),
            budget_id=budget.id if budget else None,
            category_id=category.id if category else None,
        )
        row.tags = list(tags)
        return self._add(row)


@pytest.fixture()
def ledger(db_session: Session) -> LedgerSeed:
    return LedgerSeed(db_session)


@pytest.fixture()
def grocery_ledger(ledger: LedgerSeed) -> dict[str, object]:
    """One USD checking account with a January salary and two grocery runs."""

    usd = ledger.currency("USD")
    checking = ledger.account("Checking", AccountType.ASSET, usd)
    employer = ledger.account("Employer", AccountType.REVENUE, usd)
    market = ledger.account("Market", AccountType.EXPENSE, usd)
    groceries = ledger.category("Groceries")
    salary = ledger.category("Salary")

    ledger.journal(
        on=date(2024, 1, 3),
        journal_type=JournalType.WITHDRAWAL,
        source=checking,
        destination=market,
        amount="-50.00",
        currency=usd,
        description="Weekly shop",
        category=groceries,
    )
    ledger.journal(
        on=date(2024, 1, 17),
        journal_type=JournalType.WITHDRAWAL,
        source=checking,
        destination=market,
        amount="-25.00",
        currency=usd,
        description="Top-up shop",
        category=groceries,
    )
    ledger.journal(
        on=date(2024, 1, 25),
        journal_type=JournalType.DEPOSIT,
        source=employer,
        destination=checking,
        amount="1000.00",
        currency=usd,
        description="January salary",
        category=salary,
    )
    return {
        "usd": usd,
        "checking": checking,
        "employer": employer,
        "market": market,
        "groceries": groceries,
        "salary": salary,
    }

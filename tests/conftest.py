"""
Pytest configuration and fixtures for CSV import tests.
"""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Project root directory
PROJECT_ROOT = Path(__file__).parent.parent

sys.path.insert(0, str(PROJECT_ROOT / "python"))

from csv_import.models import (  # noqa: E402
    Account,
    AccountLookupMapping,
    AmountMode,
    AmountParsingMapping,
    AttributeColumnMapping,
    CsvColumn,
    CsvRow,
    Currency,
    CurrencyLookupMapping,
    DateTimeParsingMapping,
    DirectColumnMapping,
    ExistingTransferInfo,
    HardCodedAccountMapping,
    ImportStrategy,
    Transfer,
    TransferField,
)

BANK_HEADERS = ["Date", "Description", "Amount", "Payee", "Currency", "Transaction ID"]


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def config_dir() -> Path:
    """Return the config directory path."""
    return PROJECT_ROOT / "config"


@pytest.fixture
def gbp() -> Currency:
    return Currency(id=1, code="GBP", name="British Pound", scale_factor=100)


@pytest.fixture
def jpy() -> Currency:
    return Currency(id=3, code="JPY", name="Japanese Yen", scale_factor=1)


@pytest.fixture
def currencies(gbp: Currency, jpy: Currency) -> dict[int, Currency]:
    """Currency snapshot keyed by id."""
    return {gbp.id: gbp, jpy.id: jpy}


@pytest.fixture
def currencies_by_code(currencies: dict[int, Currency]) -> dict[str, Currency]:
    """Currency snapshot keyed by code."""
    return {c.code: c for c in currencies.values()}


@pytest.fixture
def accounts_by_name() -> dict[str, Account]:
    """Account snapshot keyed by name."""
    accounts = [
        Account(id=1, name="Current Account"),
        Account(id=2, name="Coffee Shop"),
        Account(id=99, name="Joint Account"),
    ]
    return {a.name: a for a in accounts}


@pytest.fixture
def bank_columns() -> list[CsvColumn]:
    """Columns of a typical bank statement export."""
    return make_columns(BANK_HEADERS)


@pytest.fixture
def bank_strategy() -> ImportStrategy:
    """Strategy for the bank statement export.

    Payments come out of the current account; positive amounts are refunds
    and flip the accounts.
    """
    return ImportStrategy(
        id="bank-strategy",
        name="Bank Statement",
        identification_columns=frozenset(BANK_HEADERS),
        field_mappings={
            TransferField.SOURCE_ACCOUNT: HardCodedAccountMapping(account_id=1),
            TransferField.TARGET_ACCOUNT: AccountLookupMapping(column_name="Payee"),
            TransferField.TIMESTAMP: DateTimeParsingMapping(
                date_column_name="Date", date_format="dd/MM/yyyy"
            ),
            TransferField.DESCRIPTION: DirectColumnMapping(column_name="Description"),
            TransferField.AMOUNT: AmountParsingMapping(
                mode=AmountMode.SINGLE_COLUMN,
                amount_column_name="Amount",
                flip_accounts_on_positive=True,
            ),
            TransferField.CURRENCY: CurrencyLookupMapping(column_name="Currency"),
        },
        attribute_mappings=[
            AttributeColumnMapping(
                column_name="Transaction ID",
                attribute_type_name="bank_ref",
                is_unique_identifier=True,
            )
        ],
    )


@pytest.fixture
def coffee_transfer() -> ExistingTransferInfo:
    """Previously imported coffee purchase, TX001."""
    return ExistingTransferInfo(
        transfer_id="t-1",
        transfer=Transfer(
            timestamp=datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc),
            description="Coffee",
            source_account_id=1,
            target_account_id=2,
            amount=350,
            currency_id=1,
        ),
        attributes=[("bank_ref", "TX001")],
        unique_identifier_values={"Transaction ID": "TX001"},
    )


def make_columns(headers: list[str]) -> list[CsvColumn]:
    """Build CSV columns from header names."""
    return [
        CsvColumn(id=f"col-{index}", column_index=index, original_name=name)
        for index, name in enumerate(headers)
    ]


def make_rows(values: list[list[str]], start_index: int = 0) -> list[CsvRow]:
    """Build CSV rows numbered from start_index."""
    return [
        CsvRow(row_index=start_index + offset, values=row)
        for offset, row in enumerate(values)
    ]


# Environment setup for tests
@pytest.fixture(autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ.setdefault("CORS_ORIGINS", "http://localhost:3000")
    yield

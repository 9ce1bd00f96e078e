"""
CSV Import Models

Data types shared by the import engine: CSV structure, import strategies,
field mappings, snapshots supplied by repositories and mapping results.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

UNCATEGORIZED_CATEGORY_ID = 0
UNCATEGORIZED_CATEGORY_NAME = "Uncategorized"


class TransferField(Enum):
    """Transfer fields that a strategy maps from CSV data."""
    SOURCE_ACCOUNT = "SOURCE_ACCOUNT"
    TARGET_ACCOUNT = "TARGET_ACCOUNT"
    TIMESTAMP = "TIMESTAMP"
    DESCRIPTION = "DESCRIPTION"
    AMOUNT = "AMOUNT"
    CURRENCY = "CURRENCY"
    TIMEZONE = "TIMEZONE"  # optional


REQUIRED_FIELDS = (
    TransferField.SOURCE_ACCOUNT,
    TransferField.TARGET_ACCOUNT,
    TransferField.TIMESTAMP,
    TransferField.DESCRIPTION,
    TransferField.AMOUNT,
    TransferField.CURRENCY,
)


class AmountMode(Enum):
    """How the amount is laid out in the CSV."""
    SINGLE_COLUMN = "SINGLE_COLUMN"  # signed value in one column
    DEBIT_CREDIT_COLUMNS = "DEBIT_CREDIT_COLUMNS"  # separate debit/credit columns


class ImportStatus(Enum):
    """Import status assigned to a CSV row."""
    IMPORTED = "IMPORTED"
    DUPLICATE = "DUPLICATE"
    UPDATED = "UPDATED"
    ERROR = "ERROR"


# ---------------------------------------------------------------------------
# CSV structure
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CsvColumn:
    """A column of a parsed CSV file."""

    id: str
    column_index: int
    original_name: str


@dataclass(frozen=True)
class CsvRow:
    """A row of a parsed CSV file.

    Rows may hold fewer values than there are columns; missing cells read
    as blank.
    """

    row_index: int
    values: list[str]
    transfer_id: str | None = None
    import_status: ImportStatus | None = None

    def value_at(self, index: int) -> str:
        if 0 <= index < len(self.values):
            return self.values[index] or ""
        return ""


# ---------------------------------------------------------------------------
# Repository snapshots
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Account:
    """An account known to the ledger."""

    id: int
    name: str
    category_id: int = UNCATEGORIZED_CATEGORY_ID


@dataclass(frozen=True)
class Currency:
    """A currency and its minor-unit scale (100 for GBP, 1 for JPY)."""

    id: int
    code: str
    name: str = ""
    scale_factor: int = 100


@dataclass(frozen=True)
class Category:
    """An account category."""

    id: int
    name: str


# ---------------------------------------------------------------------------
# Field mappings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegexRule:
    """Routes CSV values matching `pattern` to the account named `account_name`."""

    pattern: str
    account_name: str


@dataclass(frozen=True)
class HardCodedAccountMapping:
    """Always uses the same account, typically the statement's own account."""

    account_id: int


@dataclass(frozen=True)
class AccountLookupMapping:
    """Looks an account up by the name found in a CSV column.

    Fallback columns are tried in order when the primary column is blank.
    """

    column_name: str
    fallback_columns: tuple[str, ...] = ()
    create_if_missing: bool = True
    default_category_id: int = UNCATEGORIZED_CATEGORY_ID

    @property
    def all_columns(self) -> list[str]:
        return [self.column_name, *self.fallback_columns]


@dataclass(frozen=True)
class RegexAccountMapping:
    """Maps CSV values to account names through an ordered list of regex rules."""

    column_name: str
    rules: tuple[RegexRule, ...] = ()
    fallback_columns: tuple[str, ...] = ()
    default_category_id: int = UNCATEGORIZED_CATEGORY_ID

    @property
    def all_columns(self) -> list[str]:
        return [self.column_name, *self.fallback_columns]


@dataclass(frozen=True)
class DirectColumnMapping:
    """Copies a column value verbatim (used for the description)."""

    column_name: str
    fallback_columns: tuple[str, ...] = ()

    @property
    def all_columns(self) -> list[str]:
        return [self.column_name, *self.fallback_columns]


@dataclass(frozen=True)
class DateTimeParsingMapping:
    """Parses a timestamp from a date column and an optional time column."""

    date_column_name: str
    date_format: str
    time_column_name: str | None = None
    time_format: str | None = None
    # None falls back to the configured default time
    default_time: str | None = None


@dataclass(frozen=True)
class AmountParsingMapping:
    """Parses the amount from one signed column or from debit/credit columns.

    When flip_accounts_on_positive is set, a positive amount swaps the source
    and target accounts.
    """

    mode: AmountMode
    amount_column_name: str | None = None
    credit_column_name: str | None = None
    debit_column_name: str | None = None
    negate_values: bool = False
    flip_accounts_on_positive: bool = False

    def __post_init__(self):
        if self.mode == AmountMode.SINGLE_COLUMN and not self.amount_column_name:
            raise ValueError("amount_column_name is required for SINGLE_COLUMN mode")
        if self.mode == AmountMode.DEBIT_CREDIT_COLUMNS and not (
            self.credit_column_name and self.debit_column_name
        ):
            raise ValueError(
                "credit_column_name and debit_column_name are required "
                "for DEBIT_CREDIT_COLUMNS mode"
            )


@dataclass(frozen=True)
class HardCodedCurrencyMapping:
    currency_id: int


@dataclass(frozen=True)
class CurrencyLookupMapping:
    """Reads an ISO 4217 code (GBP, USD, ...) from a column."""

    column_name: str


@dataclass(frozen=True)
class HardCodedTimezoneMapping:
    timezone_id: str


@dataclass(frozen=True)
class TimezoneLookupMapping:
    """Reads an IANA timezone id (Europe/London, ...) from a column."""

    column_name: str


FieldMapping = (
    HardCodedAccountMapping
    | AccountLookupMapping
    | RegexAccountMapping
    | DirectColumnMapping
    | DateTimeParsingMapping
    | AmountParsingMapping
    | HardCodedCurrencyMapping
    | CurrencyLookupMapping
    | HardCodedTimezoneMapping
    | TimezoneLookupMapping
)

ACCOUNT_MAPPINGS = (HardCodedAccountMapping, AccountLookupMapping, RegexAccountMapping)

# Mapping cases each transfer field accepts
ALLOWED_MAPPINGS: dict[TransferField, tuple[type, ...]] = {
    TransferField.SOURCE_ACCOUNT: ACCOUNT_MAPPINGS,
    TransferField.TARGET_ACCOUNT: ACCOUNT_MAPPINGS,
    TransferField.TIMESTAMP: (DateTimeParsingMapping,),
    TransferField.DESCRIPTION: (DirectColumnMapping,),
    TransferField.AMOUNT: (AmountParsingMapping,),
    TransferField.CURRENCY: (HardCodedCurrencyMapping, CurrencyLookupMapping),
    TransferField.TIMEZONE: (HardCodedTimezoneMapping, TimezoneLookupMapping),
}


@dataclass(frozen=True)
class AttributeColumnMapping:
    """Captures an otherwise unused column as a transfer attribute.

    Columns flagged as unique identifiers are used for duplicate detection;
    when several are flagged, all of them must match.
    """

    column_name: str
    attribute_type_name: str
    is_unique_identifier: bool = False


@dataclass
class ImportStrategy:
    """A reusable recipe mapping CSV columns onto transfer fields."""

    id: str
    name: str
    identification_columns: frozenset[str]
    field_mappings: dict[TransferField, FieldMapping]
    attribute_mappings: list[AttributeColumnMapping] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self):
        self.identification_columns = frozenset(self.identification_columns)

    def is_valid(self) -> bool:
        """Check that every required field has a mapping."""
        return not self.missing_fields()

    def missing_fields(self) -> list[TransferField]:
        return [f for f in REQUIRED_FIELDS if f not in self.field_mappings]

    def matches_columns(self, headers) -> bool:
        """Exact, order-independent comparison with the CSV headers."""
        return self.identification_columns == frozenset(headers)

    @property
    def unique_identifier_columns(self) -> list[str]:
        return [m.column_name for m in self.attribute_mappings if m.is_unique_identifier]


# ---------------------------------------------------------------------------
# Account mappings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class CsvAccountMapping:
    """Persisted rule routing CSV values matching a regex to an account.

    Applied before name lookup so renamed or consolidated accounts keep
    resolving. Lower ids take precedence.
    """

    id: int
    strategy_id: str
    column_name: str
    value_pattern: str
    account_id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass(frozen=True)
class DiscoveredAccountMapping:
    """A mapping candidate captured when a new account is identified.

    matched_pattern is None when the value was used verbatim; the caller
    should then persist an exact-match pattern.
    """

    column_name: str
    csv_value: str
    target_account_name: str
    matched_pattern: str | None = None

    def suggested_pattern(self) -> str:
        if self.matched_pattern is not None:
            return self.matched_pattern
        return f"^{re.escape(self.csv_value)}$"


# ---------------------------------------------------------------------------
# Transfers and results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Transfer:
    """A transfer between two accounts.

    amount is non-negative and in minor units; the direction is carried by
    the source and target accounts.
    """

    timestamp: datetime
    description: str
    source_account_id: int
    target_account_id: int
    amount: int
    currency_id: int


@dataclass(frozen=True)
class ExistingTransferInfo:
    """Snapshot of a stored transfer used for duplicate detection."""

    transfer_id: str
    transfer: Transfer
    attributes: list[tuple[str, str]] = field(default_factory=list)
    unique_identifier_values: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MappingSuccess:
    """A row mapped to a transfer."""

    transfer: Transfer
    new_account_name: str | None = None
    discovered_mapping: DiscoveredAccountMapping | None = None
    attributes: list[tuple[str, str]] = field(default_factory=list)
    unique_identifier_values: dict[str, str] = field(default_factory=dict)
    new_account_category_id: int = UNCATEGORIZED_CATEGORY_ID


@dataclass(frozen=True)
class MappingError:
    """A row that could not be mapped."""

    row_index: int
    error_message: str
    field: TransferField | None = None


MappingResult = MappingSuccess | MappingError


@dataclass(frozen=True)
class CsvTransferWithAttributes:
    """A mapped transfer ready for persistence, with its import status."""

    transfer: Transfer
    attributes: list[tuple[str, str]]
    row_index: int
    import_status: ImportStatus = ImportStatus.IMPORTED
    existing_transfer_id: str | None = None
    unique_identifier_values: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NewAccount:
    """An account to create before the transfers are persisted."""

    name: str
    category_id: int = UNCATEGORIZED_CATEGORY_ID


@dataclass
class ImportPreparation:
    """Result of preparing an import batch."""

    valid_transfers: list[CsvTransferWithAttributes] = field(default_factory=list)
    error_rows: list[MappingError] = field(default_factory=list)
    new_accounts: list[NewAccount] = field(default_factory=list)
    discovered_mappings: list[DiscoveredAccountMapping] = field(default_factory=list)
    existing_account_matches: dict[str, int] = field(default_factory=dict)
    status_counts: dict[ImportStatus, int] = field(default_factory=dict)

    @property
    def total_rows(self) -> int:
        return len(self.valid_transfers) + len(self.error_rows)

    def to_dict(self) -> dict:
        return {
            "valid_count": len(self.valid_transfers),
            "error_count": len(self.error_rows),
            "new_accounts": [a.name for a in self.new_accounts],
            "status_counts": {s.value: c for s, c in self.status_counts.items()},
        }

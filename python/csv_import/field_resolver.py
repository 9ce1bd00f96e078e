"""
Field Resolver Module

Evaluates a strategy's field mappings against a CSV row, producing the value
of one transfer field at a time.
"""

import logging
import re
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from .account_resolver import AccountResolver
from .amount_parser import AmountParser
from .config import ImportSettings
from .errors import (
    ColumnNotFoundError,
    CsvImportError,
    CurrencyNotFoundError,
    DateParseError,
    InvalidMappingError,
)
from .models import (
    ALLOWED_MAPPINGS,
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
    FieldMapping,
    HardCodedAccountMapping,
    HardCodedCurrencyMapping,
    HardCodedTimezoneMapping,
    RegexAccountMapping,
    TimezoneLookupMapping,
    TransferField,
)

logger = logging.getLogger(__name__)

# Unicode date/time pattern letters (dd/MM/yyyy, HH:mm) to strptime directives
_UNICODE_DIRECTIVES = {
    "yyyy": "%Y", "uuuu": "%Y", "yy": "%y", "uu": "%y",
    "MMMM": "%B", "MMM": "%b", "MM": "%m", "M": "%m",
    "dd": "%d", "d": "%d",
    "EEEE": "%A", "EEE": "%a",
    "HH": "%H", "H": "%H", "hh": "%I", "h": "%I",
    "mm": "%M", "m": "%M",
    "ss": "%S", "s": "%S",
    "a": "%p",
}
_LETTER_RUN = re.compile(r"'[^']*'|([A-Za-z])\1*")

DEFAULT_TIME_FORMATS = ["%H:%M:%S", "%H:%M"]


def expand_optional_sections(fmt: str) -> list[str]:
    """Expand "[...]" optional sections, longest variant first.

    "HH:mm[:ss]" -> ["HH:mm:ss", "HH:mm"]
    """
    start = fmt.find("[")
    if start == -1:
        return [fmt]

    depth = 0
    for end in range(start, len(fmt)):
        if fmt[end] == "[":
            depth += 1
        elif fmt[end] == "]":
            depth -= 1
            if depth == 0:
                break
    else:
        return [fmt]

    head, inner, tail = fmt[:start], fmt[start + 1:end], fmt[end + 1:]
    variants = []
    for inner_variant in expand_optional_sections(inner):
        for tail_variant in expand_optional_sections(tail):
            variants.append(head + inner_variant + tail_variant)
    for tail_variant in expand_optional_sections(tail):
        variants.append(head + tail_variant)
    return variants


def to_strptime_formats(fmt: str) -> list[str]:
    """Convert a date/time pattern to the strptime formats to try.

    Patterns that already contain "%" directives are used as they are.
    """
    if "%" in fmt:
        return [fmt]

    def translate(match: re.Match) -> str:
        token = match.group(0)
        if token.startswith("'"):
            return token[1:-1] or "'"
        return _UNICODE_DIRECTIVES.get(token, token)

    return [_LETTER_RUN.sub(translate, variant) for variant in expand_optional_sections(fmt)]


class FieldResolver:
    """Resolves transfer field values from CSV rows."""

    def __init__(
        self,
        columns: list[CsvColumn],
        currencies: dict[int, Currency] | None = None,
        currencies_by_code: dict[str, Currency] | None = None,
        account_resolver: AccountResolver | None = None,
        amount_parser: AmountParser | None = None,
        settings: ImportSettings | None = None
    ):
        """Initialize the resolver.

        Args:
            columns: Columns of the CSV being imported
            currencies: Currency snapshot keyed by id
            currencies_by_code: Currency snapshot keyed by upper-case code
            account_resolver: Resolver for account lookups
            amount_parser: Parser for amount text
            settings: Engine settings
        """
        self.settings = settings or ImportSettings()
        self.currencies = currencies or {}
        self.currencies_by_code = {
            code.upper(): currency for code, currency in (currencies_by_code or {}).items()
        }
        self.account_resolver = account_resolver or AccountResolver({}, settings=self.settings)
        self.amount_parser = amount_parser or AmountParser()

        self._column_index: dict[str, int] = {}
        for column in columns:
            self._column_index.setdefault(column.original_name, column.column_index)

    # ------------------------------------------------------------------
    # Column access
    # ------------------------------------------------------------------

    def has_column(self, column_name: str) -> bool:
        return column_name in self._column_index

    def column_value(
        self,
        row: CsvRow,
        column_name: str,
        field: TransferField | None = None
    ) -> str:
        """Read a cell by column name.

        Raises:
            ColumnNotFoundError: If the CSV has no such column
        """
        index = self._column_index.get(column_name)
        if index is None:
            raise ColumnNotFoundError(column_name, field)
        return row.value_at(index)

    def first_non_blank(
        self,
        row: CsvRow,
        column_names: list[str],
        field: TransferField | None = None
    ) -> str:
        for column_name in column_names:
            value = self.column_value(row, column_name, field)
            if value.strip():
                return value
        return ""

    # ------------------------------------------------------------------
    # Field resolution
    # ------------------------------------------------------------------

    def resolve(
        self,
        field: TransferField,
        mapping: FieldMapping,
        row: CsvRow,
        tz: ZoneInfo | None = None
    ) -> Any:
        """Resolve one transfer field.

        Args:
            field: Field being resolved
            mapping: The field's mapping
            row: CSV row
            tz: Timezone for timestamp fields (defaults to settings)

        Returns:
            AccountResolution for account fields, datetime for TIMESTAMP,
            str for DESCRIPTION, signed Decimal for AMOUNT, Currency for
            CURRENCY and ZoneInfo for TIMEZONE

        Raises:
            CsvImportError: Subclass describing the failure
        """
        try:
            return self._resolve(field, mapping, row, tz)
        except CsvImportError as e:
            if e.field is None:
                e.field = field
            raise

    def _resolve(
        self,
        field: TransferField,
        mapping: FieldMapping,
        row: CsvRow,
        tz: ZoneInfo | None
    ) -> Any:
        allowed = ALLOWED_MAPPINGS[field]
        if not isinstance(mapping, allowed):
            raise InvalidMappingError(
                f"Invalid {field.value} mapping type: {type(mapping).__name__}", field
            )

        if isinstance(mapping, HardCodedAccountMapping):
            return self.account_resolver.resolve(mapping, [], field)
        if isinstance(mapping, (AccountLookupMapping, RegexAccountMapping)):
            column_values = [
                (column, self.column_value(row, column, field)) for column in mapping.all_columns
            ]
            return self.account_resolver.resolve(mapping, column_values, field)
        if isinstance(mapping, DirectColumnMapping):
            return self.first_non_blank(row, mapping.all_columns, field)
        if isinstance(mapping, DateTimeParsingMapping):
            return self._parse_timestamp(mapping, row, tz or self.default_timezone(), field)
        if isinstance(mapping, AmountParsingMapping):
            return self._parse_amount(mapping, row, field)
        if isinstance(mapping, HardCodedCurrencyMapping):
            currency = self.currencies.get(mapping.currency_id)
            if currency is None:
                raise CurrencyNotFoundError(f"Currency not found: id {mapping.currency_id}", field)
            return currency
        if isinstance(mapping, CurrencyLookupMapping):
            code = self.column_value(row, mapping.column_name, field).strip().upper()
            currency = self.currencies_by_code.get(code)
            if currency is None:
                raise CurrencyNotFoundError(f"Currency not found: {code or '(blank)'}", field)
            return currency
        if isinstance(mapping, HardCodedTimezoneMapping):
            return self._zone(mapping.timezone_id, field)
        if isinstance(mapping, TimezoneLookupMapping):
            timezone_id = self.column_value(row, mapping.column_name, field).strip()
            return self._zone(timezone_id, field) if timezone_id else self.default_timezone()

        raise InvalidMappingError(f"Unsupported mapping type: {type(mapping).__name__}", field)

    def resolve_timezone(self, mapping: FieldMapping | None, row: CsvRow) -> ZoneInfo:
        """Resolve the row timezone, defaulting when the strategy maps none."""
        if mapping is None:
            return self.default_timezone()
        return self.resolve(TransferField.TIMEZONE, mapping, row)

    def default_timezone(self) -> ZoneInfo:
        return self._zone(self.settings.default_timezone, TransferField.TIMEZONE)

    def attributes(
        self,
        row: CsvRow,
        attribute_mappings: list[AttributeColumnMapping]
    ) -> list[tuple[str, str]]:
        """Extract (attribute type name, value) pairs.

        Blank values and columns missing from the CSV are skipped.
        """
        attributes = []
        for mapping in attribute_mappings:
            if not self.has_column(mapping.column_name):
                continue
            value = self.column_value(row, mapping.column_name).strip()
            if value:
                attributes.append((mapping.attribute_type_name, value))
        return attributes

    def unique_identifier_values(self, row: CsvRow, column_names: list[str]) -> dict[str, str]:
        """Read the unique identifier columns of a row (blank when absent)."""
        return {
            name: self.column_value(row, name).strip() if self.has_column(name) else ""
            for name in column_names
        }

    # ------------------------------------------------------------------
    # Parsing helpers
    # ------------------------------------------------------------------

    def _parse_amount(
        self,
        mapping: AmountParsingMapping,
        row: CsvRow,
        field: TransferField
    ) -> Decimal:
        if mapping.mode == AmountMode.SINGLE_COLUMN:
            value = self.column_value(row, mapping.amount_column_name, field)
            amount = self.amount_parser.parse_decimal(value)
        else:
            credit_value = self.column_value(row, mapping.credit_column_name, field)
            debit_value = self.column_value(row, mapping.debit_column_name, field)
            credit = self.amount_parser.parse_decimal(credit_value) if credit_value.strip() else Decimal("0")
            debit = self.amount_parser.parse_decimal(debit_value) if debit_value.strip() else Decimal("0")
            # Debits are outflows whichever sign the bank prints
            amount = abs(credit) - abs(debit)

        return -amount if mapping.negate_values else amount

    def _parse_timestamp(
        self,
        mapping: DateTimeParsingMapping,
        row: CsvRow,
        tz: ZoneInfo,
        field: TransferField
    ) -> datetime:
        date_value = self.column_value(row, mapping.date_column_name, field).strip()
        parsed_date = self._parse_date(date_value, mapping.date_format, row, field)

        time_value = ""
        if mapping.time_column_name:
            time_value = self.column_value(row, mapping.time_column_name, field).strip()

        if time_value:
            parsed_time = self._parse_time(time_value, mapping.time_format, row, field)
        else:
            parsed_time = self._parse_time(
                mapping.default_time or self.settings.default_time, None, row, field
            )

        local = datetime.combine(parsed_date, parsed_time).replace(tzinfo=tz)
        return local.astimezone(timezone.utc)

    def _parse_date(self, value: str, fmt: str, row: CsvRow, field: TransferField) -> date:
        for strptime_format in to_strptime_formats(fmt):
            try:
                return datetime.strptime(value, strptime_format).date()
            except ValueError:
                continue
        raise DateParseError(
            f"Failed to parse date {value!r} with format {fmt!r} (row {row.row_index})", field
        )

    def _parse_time(self, value: str, fmt: str | None, row: CsvRow, field: TransferField) -> time:
        formats = to_strptime_formats(fmt) if fmt else DEFAULT_TIME_FORMATS
        for strptime_format in formats:
            try:
                return datetime.strptime(value, strptime_format).time()
            except ValueError:
                continue
        raise DateParseError(
            f"Failed to parse time {value!r} (row {row.row_index})", field
        )

    @staticmethod
    def _zone(timezone_id: str, field: TransferField | None) -> ZoneInfo:
        try:
            return ZoneInfo(timezone_id)
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            raise DateParseError(f"Unknown timezone: {timezone_id}", field) from e

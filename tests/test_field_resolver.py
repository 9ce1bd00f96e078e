"""
Field Resolver Tests

Tests for column access, timestamps, amounts, currencies, timezones and
attribute extraction.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "python"))

from conftest import make_columns
from csv_import.account_resolver import AccountResolver, ExistingAccount
from csv_import.config import ImportSettings
from csv_import.errors import (
    ColumnNotFoundError,
    CurrencyNotFoundError,
    DateParseError,
    InvalidMappingError,
)
from csv_import.field_resolver import (
    FieldResolver,
    expand_optional_sections,
    to_strptime_formats,
)
from csv_import.models import (
    AccountLookupMapping,
    AmountMode,
    AmountParsingMapping,
    AttributeColumnMapping,
    CsvRow,
    CurrencyLookupMapping,
    DateTimeParsingMapping,
    DirectColumnMapping,
    HardCodedCurrencyMapping,
    HardCodedTimezoneMapping,
    TimezoneLookupMapping,
    TransferField,
)

HEADERS = ["Date", "Time", "Description", "Amount", "Currency", "Memo", "Zone", "Credit", "Debit"]


def row(**values) -> CsvRow:
    """Build a row from column name keyword arguments."""
    return CsvRow(row_index=7, values=[values.get(h, "") for h in HEADERS])


class TestFormatTranslation:
    """Tests for date pattern translation."""

    def test_unicode_pattern(self):
        assert to_strptime_formats("dd/MM/yyyy") == ["%d/%m/%Y"]

    def test_strptime_pattern_unchanged(self):
        assert to_strptime_formats("%Y-%m-%d") == ["%Y-%m-%d"]

    def test_quoted_literal(self):
        assert to_strptime_formats("yyyy-MM-dd'T'HH:mm") == ["%Y-%m-%dT%H:%M"]

    def test_optional_section(self):
        assert expand_optional_sections("HH:mm[:ss]") == ["HH:mm:ss", "HH:mm"]
        assert to_strptime_formats("HH:mm[:ss]") == ["%H:%M:%S", "%H:%M"]


class TestFieldResolver:
    """Tests for FieldResolver."""

    @pytest.fixture
    def resolver(self, accounts_by_name, currencies, currencies_by_code):
        """Create field resolver over HEADERS."""
        return FieldResolver(
            make_columns(HEADERS),
            currencies=currencies,
            currencies_by_code=currencies_by_code,
            account_resolver=AccountResolver(accounts_by_name),
        )

    def test_direct_column(self, resolver):
        mapping = DirectColumnMapping("Description")

        assert resolver.resolve(TransferField.DESCRIPTION, mapping, row(Description="Coffee")) == "Coffee"

    def test_direct_column_fallback(self, resolver):
        mapping = DirectColumnMapping("Description", fallback_columns=("Memo",))

        result = resolver.resolve(TransferField.DESCRIPTION, mapping, row(Memo="Window cleaning"))

        assert result == "Window cleaning"

    def test_missing_column(self, resolver):
        mapping = DirectColumnMapping("Reference")

        with pytest.raises(ColumnNotFoundError, match="Column not found: Reference") as exc_info:
            resolver.resolve(TransferField.DESCRIPTION, mapping, row())

        assert exc_info.value.field == TransferField.DESCRIPTION

    def test_short_row_reads_blank(self, resolver):
        short = CsvRow(row_index=0, values=["15/01/2025"])

        assert resolver.resolve(TransferField.DESCRIPTION, DirectColumnMapping("Memo"), short) == ""

    def test_duplicate_header_first_wins(self):
        resolver = FieldResolver(make_columns(["Amount", "Amount"]))
        duplicate = CsvRow(row_index=0, values=["1", "2"])

        assert resolver.column_value(duplicate, "Amount") == "1"

    def test_date_with_default_time(self, resolver):
        """Test rows without a time get noon in the default timezone."""
        mapping = DateTimeParsingMapping("Date", "dd/MM/yyyy")

        result = resolver.resolve(TransferField.TIMESTAMP, mapping, row(Date="15/01/2025"))

        assert result == datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

    def test_configured_default_time(self, tmp_path):
        """Test the default time setting applies when the mapping sets none."""
        (tmp_path / "csv_import.yaml").write_text(
            "csv_import:\n  default_time: '09:15:00'\n  default_timezone: Europe/London\n"
        )
        resolver = FieldResolver(make_columns(HEADERS), settings=ImportSettings.load(tmp_path))

        result = resolver.resolve(
            TransferField.TIMESTAMP, DateTimeParsingMapping("Date", "dd/MM/yyyy"), row(Date="15/07/2025")
        )

        assert result == datetime(2025, 7, 15, 8, 15, tzinfo=timezone.utc)

    def test_mapping_default_time_overrides_setting(self):
        resolver = FieldResolver(make_columns(HEADERS), settings=ImportSettings(default_time="09:15:00"))
        mapping = DateTimeParsingMapping("Date", "dd/MM/yyyy", default_time="18:00")

        result = resolver.resolve(TransferField.TIMESTAMP, mapping, row(Date="15/01/2025"))

        assert result == datetime(2025, 1, 15, 18, 0, tzinfo=timezone.utc)

    def test_date_and_time_columns(self, resolver):
        mapping = DateTimeParsingMapping("Date", "%Y-%m-%d", time_column_name="Time")

        assert resolver.resolve(
            TransferField.TIMESTAMP, mapping, row(Date="2025-01-15", Time="09:30")
        ) == datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)
        assert resolver.resolve(
            TransferField.TIMESTAMP, mapping, row(Date="2025-01-15", Time="09:30:15")
        ) == datetime(2025, 1, 15, 9, 30, 15, tzinfo=timezone.utc)

    def test_blank_time_uses_default(self, resolver):
        mapping = DateTimeParsingMapping(
            "Date", "dd/MM/yyyy", time_column_name="Time", default_time="08:00:00"
        )

        result = resolver.resolve(TransferField.TIMESTAMP, mapping, row(Date="15/01/2025"))

        assert result == datetime(2025, 1, 15, 8, 0, tzinfo=timezone.utc)

    def test_timestamp_normalized_to_utc(self, resolver):
        """Test local times are converted to UTC."""
        mapping = DateTimeParsingMapping("Date", "dd/MM/yyyy")

        result = resolver.resolve(
            TransferField.TIMESTAMP, mapping, row(Date="15/07/2025"), ZoneInfo("Europe/London")
        )

        assert result == datetime(2025, 7, 15, 11, 0, tzinfo=timezone.utc)

    def test_invalid_date(self, resolver):
        mapping = DateTimeParsingMapping("Date", "%Y-%m-%d")

        with pytest.raises(DateParseError, match="date"):
            resolver.resolve(TransferField.TIMESTAMP, mapping, row(Date="2025-13-45"))

    def test_invalid_time(self, resolver):
        mapping = DateTimeParsingMapping("Date", "%Y-%m-%d", time_column_name="Time")

        with pytest.raises(DateParseError, match="time"):
            resolver.resolve(TransferField.TIMESTAMP, mapping, row(Date="2025-01-15", Time="noon"))

    def test_timezone_mappings(self, resolver):
        assert resolver.resolve(
            TransferField.TIMEZONE, HardCodedTimezoneMapping("Asia/Manila"), row()
        ) == ZoneInfo("Asia/Manila")
        assert resolver.resolve(
            TransferField.TIMEZONE, TimezoneLookupMapping("Zone"), row(Zone="Europe/Paris")
        ) == ZoneInfo("Europe/Paris")

    def test_blank_timezone_column_uses_default(self, resolver):
        result = resolver.resolve(TransferField.TIMEZONE, TimezoneLookupMapping("Zone"), row())

        assert result == ZoneInfo("UTC")

    def test_unknown_timezone(self, resolver):
        with pytest.raises(DateParseError, match="Unknown timezone"):
            resolver.resolve(TransferField.TIMEZONE, HardCodedTimezoneMapping("Mars/Olympus"), row())

    @pytest.mark.parametrize("zone", ["Europe", "America", "Etc"])
    def test_region_name_is_not_a_timezone(self, resolver, zone):
        """Test tz database directory names are rejected like unknown ids."""
        with pytest.raises(DateParseError, match="Unknown timezone") as exc_info:
            resolver.resolve(TransferField.TIMEZONE, TimezoneLookupMapping("Zone"), row(Zone=zone))

        assert exc_info.value.field == TransferField.TIMEZONE

    def test_hard_coded_region_name(self, resolver):
        with pytest.raises(DateParseError, match="Unknown timezone: Europe"):
            resolver.resolve(TransferField.TIMEZONE, HardCodedTimezoneMapping("Europe"), row())

    def test_single_column_amount(self, resolver):
        mapping = AmountParsingMapping(AmountMode.SINGLE_COLUMN, amount_column_name="Amount")

        assert resolver.resolve(TransferField.AMOUNT, mapping, row(Amount="-12.50")) == Decimal("-12.50")

    def test_negate_values(self, resolver):
        mapping = AmountParsingMapping(
            AmountMode.SINGLE_COLUMN, amount_column_name="Amount", negate_values=True
        )

        assert resolver.resolve(TransferField.AMOUNT, mapping, row(Amount="-12.50")) == Decimal("12.50")

    def test_debit_credit_columns(self, resolver):
        """Test credit minus debit with blanks as zero."""
        mapping = AmountParsingMapping(
            AmountMode.DEBIT_CREDIT_COLUMNS, credit_column_name="Credit", debit_column_name="Debit"
        )

        assert resolver.resolve(TransferField.AMOUNT, mapping, row(Debit="20.00")) == Decimal("-20.00")
        assert resolver.resolve(TransferField.AMOUNT, mapping, row(Credit="100.00")) == Decimal("100.00")

    def test_debit_credit_negated(self, resolver):
        mapping = AmountParsingMapping(
            AmountMode.DEBIT_CREDIT_COLUMNS,
            credit_column_name="Credit",
            debit_column_name="Debit",
            negate_values=True,
        )

        assert resolver.resolve(TransferField.AMOUNT, mapping, row(Debit="20.00")) == Decimal("20.00")

    def test_amount_mode_requires_columns(self):
        with pytest.raises(ValueError):
            AmountParsingMapping(AmountMode.DEBIT_CREDIT_COLUMNS, credit_column_name="Credit")

    def test_currency_lookup(self, resolver, gbp):
        mapping = CurrencyLookupMapping("Currency")

        assert resolver.resolve(TransferField.CURRENCY, mapping, row(Currency=" gbp ")) == gbp

    def test_unknown_currency_code(self, resolver):
        with pytest.raises(CurrencyNotFoundError, match="Currency"):
            resolver.resolve(TransferField.CURRENCY, CurrencyLookupMapping("Currency"), row(Currency="XYZ"))

    def test_hard_coded_currency(self, resolver, jpy):
        assert resolver.resolve(TransferField.CURRENCY, HardCodedCurrencyMapping(3), row()) == jpy

        with pytest.raises(CurrencyNotFoundError, match="Currency"):
            resolver.resolve(TransferField.CURRENCY, HardCodedCurrencyMapping(42), row())

    def test_account_lookup_delegates(self, resolver):
        mapping = AccountLookupMapping("Description")

        result = resolver.resolve(TransferField.TARGET_ACCOUNT, mapping, row(Description="Coffee Shop"))

        assert result == ExistingAccount(2)

    def test_wrong_mapping_for_field(self, resolver):
        """Test a field rejects mapping cases it cannot use."""
        with pytest.raises(InvalidMappingError, match="AMOUNT"):
            resolver.resolve(TransferField.AMOUNT, DirectColumnMapping("Amount"), row(Amount="1"))

    def test_attributes(self, resolver):
        """Test blank values and missing columns are skipped."""
        mappings = [
            AttributeColumnMapping("Memo", "memo"),
            AttributeColumnMapping("Zone", "zone"),
            AttributeColumnMapping("Reference", "reference"),
        ]

        assert resolver.attributes(row(Memo=" note "), mappings) == [("memo", "note")]

    def test_unique_identifier_values(self, resolver):
        values = resolver.unique_identifier_values(row(Memo=" TX001 "), ["Memo", "Reference"])

        assert values == {"Memo": "TX001", "Reference": ""}

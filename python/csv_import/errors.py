"""
CSV Import Errors

Row-scoped errors raised while mapping a CSV row. The mapper converts them
into MappingError results so one bad row never stops the batch.
"""

from .models import TransferField


class CsvImportError(ValueError):
    """Base class for row mapping failures."""

    def __init__(self, message: str, field: TransferField | None = None):
        super().__init__(message)
        self.field = field


class ColumnNotFoundError(CsvImportError):
    """The strategy references a column the CSV does not have."""

    def __init__(self, column_name: str, field: TransferField | None = None):
        super().__init__(f"Column not found: {column_name}", field)
        self.column_name = column_name


class DateParseError(CsvImportError):
    """Date or time text does not match the declared format."""


class CurrencyNotFoundError(CsvImportError):
    """Currency code or id is not in the currency snapshot."""


class AmountParseError(CsvImportError):
    """Numeric text cannot be parsed as an amount."""


class AccountNotFoundError(CsvImportError):
    """Account lookup failed and the mapping does not allow creating one."""


class InvalidMappingError(CsvImportError):
    """A field carries a mapping case it cannot use."""


class InvalidPatternError(CsvImportError):
    """A user-supplied regex was rejected."""


class StrategyExportError(ValueError):
    """A strategy export document cannot be read or converted."""

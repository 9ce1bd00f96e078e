"""
CSV Import Module

Maps bank and ledger CSV exports to transfers with reusable import
strategies, resolves accounts and detects re-imported rows.
"""

from .models import (
    Account,
    AccountLookupMapping,
    AmountMode,
    AmountParsingMapping,
    AttributeColumnMapping,
    Category,
    CsvAccountMapping,
    CsvColumn,
    CsvRow,
    CsvTransferWithAttributes,
    Currency,
    CurrencyLookupMapping,
    DateTimeParsingMapping,
    DirectColumnMapping,
    DiscoveredAccountMapping,
    ExistingTransferInfo,
    FieldMapping,
    HardCodedAccountMapping,
    HardCodedCurrencyMapping,
    HardCodedTimezoneMapping,
    ImportPreparation,
    ImportStatus,
    ImportStrategy,
    MappingError,
    MappingResult,
    MappingSuccess,
    NewAccount,
    RegexAccountMapping,
    RegexRule,
    TimezoneLookupMapping,
    Transfer,
    TransferField,
)
from .errors import (
    AccountNotFoundError,
    AmountParseError,
    ColumnNotFoundError,
    CsvImportError,
    CurrencyNotFoundError,
    DateParseError,
    InvalidMappingError,
    InvalidPatternError,
    StrategyExportError,
)
from .config import ImportSettings
from .amount_parser import AmountParser
from .account_resolver import AccountResolver, ExistingAccount, NewAccountCandidate, Placeholder
from .field_resolver import FieldResolver
from .duplicate_detector import DuplicateDetector, DuplicateMatch
from .strategy_matcher import find_all_matching_strategies, find_matching_strategy
from .transfer_mapper import CsvTransferMapper

__all__ = [
    # Models
    "Account",
    "AccountLookupMapping",
    "AmountMode",
    "AmountParsingMapping",
    "AttributeColumnMapping",
    "Category",
    "CsvAccountMapping",
    "CsvColumn",
    "CsvRow",
    "CsvTransferWithAttributes",
    "Currency",
    "CurrencyLookupMapping",
    "DateTimeParsingMapping",
    "DirectColumnMapping",
    "DiscoveredAccountMapping",
    "ExistingTransferInfo",
    "FieldMapping",
    "HardCodedAccountMapping",
    "HardCodedCurrencyMapping",
    "HardCodedTimezoneMapping",
    "ImportPreparation",
    "ImportStatus",
    "ImportStrategy",
    "MappingError",
    "MappingResult",
    "MappingSuccess",
    "NewAccount",
    "RegexAccountMapping",
    "RegexRule",
    "TimezoneLookupMapping",
    "Transfer",
    "TransferField",
    # Errors
    "AccountNotFoundError",
    "AmountParseError",
    "ColumnNotFoundError",
    "CsvImportError",
    "CurrencyNotFoundError",
    "DateParseError",
    "InvalidMappingError",
    "InvalidPatternError",
    "StrategyExportError",
    # Settings
    "ImportSettings",
    # Resolution
    "AmountParser",
    "AccountResolver",
    "ExistingAccount",
    "NewAccountCandidate",
    "Placeholder",
    "FieldResolver",
    # Duplicate Detection
    "DuplicateDetector",
    "DuplicateMatch",
    # Strategy Matching
    "find_matching_strategy",
    "find_all_matching_strategies",
    # Mapping
    "CsvTransferMapper",
]

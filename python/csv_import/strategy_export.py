"""
Strategy Export Module

Portable import strategy documents. Accounts, currencies and categories are
referenced by name or code instead of id so a strategy can move between
ledgers; references the target ledger lacks are reported for the caller to
resolve before the strategy is built.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, get_args

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import StrategyExportError
from .models import (
    UNCATEGORIZED_CATEGORY_ID,
    UNCATEGORIZED_CATEGORY_NAME,
    Account,
    AccountLookupMapping,
    AmountMode,
    AmountParsingMapping,
    AttributeColumnMapping,
    Category,
    Currency,
    CurrencyLookupMapping,
    DateTimeParsingMapping,
    DirectColumnMapping,
    FieldMapping,
    HardCodedAccountMapping,
    HardCodedCurrencyMapping,
    HardCodedTimezoneMapping,
    ImportStrategy,
    RegexAccountMapping,
    RegexRule,
    TimezoneLookupMapping,
    TransferField,
)

logger = logging.getLogger(__name__)

UNKNOWN_ACCOUNT_NAME = "Unknown Account"
UNKNOWN_CURRENCY_CODE = "XXX"


class ExportModel(BaseModel):
    """Base for export documents; unknown keys are ignored."""

    model_config = ConfigDict(extra="ignore")


class RegexRuleExport(ExportModel):
    pattern: str
    account_name: str


class HardCodedAccountExport(ExportModel):
    kind: Literal["hard_coded_account"] = "hard_coded_account"
    account_name: str


class AccountLookupExport(ExportModel):
    kind: Literal["account_lookup"] = "account_lookup"
    column_name: str
    fallback_columns: list[str] = Field(default_factory=list)
    create_if_missing: bool = True
    default_category_name: str = UNCATEGORIZED_CATEGORY_NAME


class RegexAccountExport(ExportModel):
    kind: Literal["regex_account"] = "regex_account"
    column_name: str
    rules: list[RegexRuleExport] = Field(default_factory=list)
    fallback_columns: list[str] = Field(default_factory=list)
    default_category_name: str = UNCATEGORIZED_CATEGORY_NAME


class DirectColumnExport(ExportModel):
    kind: Literal["direct_column"] = "direct_column"
    column_name: str
    fallback_columns: list[str] = Field(default_factory=list)


class DateTimeParsingExport(ExportModel):
    kind: Literal["date_time"] = "date_time"
    date_column_name: str
    date_format: str
    time_column_name: str | None = None
    time_format: str | None = None
    default_time: str | None = None


class AmountParsingExport(ExportModel):
    kind: Literal["amount"] = "amount"
    mode: AmountMode
    amount_column_name: str | None = None
    credit_column_name: str | None = None
    debit_column_name: str | None = None
    negate_values: bool = False
    flip_accounts_on_positive: bool = False


class HardCodedCurrencyExport(ExportModel):
    kind: Literal["hard_coded_currency"] = "hard_coded_currency"
    currency_code: str


class CurrencyLookupExport(ExportModel):
    kind: Literal["currency_lookup"] = "currency_lookup"
    column_name: str


class HardCodedTimezoneExport(ExportModel):
    kind: Literal["hard_coded_timezone"] = "hard_coded_timezone"
    timezone_id: str


class TimezoneLookupExport(ExportModel):
    kind: Literal["timezone_lookup"] = "timezone_lookup"
    column_name: str


FieldMappingExport = Annotated[
    HardCodedAccountExport
    | AccountLookupExport
    | RegexAccountExport
    | DirectColumnExport
    | DateTimeParsingExport
    | AmountParsingExport
    | HardCodedCurrencyExport
    | CurrencyLookupExport
    | HardCodedTimezoneExport
    | TimezoneLookupExport,
    Field(discriminator="kind"),
]

# Discriminator values in declaration order
MAPPING_KINDS = [
    model.model_fields["kind"].default for model in get_args(get_args(FieldMappingExport)[0])
]


class AttributeColumnExport(ExportModel):
    column_name: str
    attribute_type_name: str
    is_unique_identifier: bool = False


class StrategyExport(ExportModel):
    """Portable import strategy document."""

    version: str
    name: str
    identification_columns: list[str]
    field_mappings: dict[TransferField, FieldMappingExport]
    attribute_mappings: list[AttributeColumnExport] = Field(default_factory=list)


class ReferenceType(Enum):
    ACCOUNT = "ACCOUNT"
    CURRENCY = "CURRENCY"
    CATEGORY = "CATEGORY"


class UnresolvedReference(BaseModel):
    """A name or code in a document that the target ledger does not know."""

    model_config = ConfigDict(frozen=True)

    type: ReferenceType
    name: str
    field: TransferField


class ImportParseResult(BaseModel):
    """A parsed document and the references it still needs resolved."""

    strategy_name: str
    document: StrategyExport
    unresolved_references: list[UnresolvedReference] = Field(default_factory=list)

    @property
    def is_resolved(self) -> bool:
        return not self.unresolved_references


# ---------------------------------------------------------------------------
# Domain -> document
# ---------------------------------------------------------------------------

def to_export(
    strategy: ImportStrategy,
    accounts_by_id: dict[int, Account],
    currencies_by_id: dict[int, Currency],
    categories_by_id: dict[int, Category],
    version: str = "1.0.0"
) -> StrategyExport:
    """Convert a strategy to its portable document.

    Args:
        strategy: Strategy to export
        accounts_by_id: Account snapshot
        currencies_by_id: Currency snapshot
        categories_by_id: Category snapshot
        version: Version of the application writing the document

    Returns:
        StrategyExport
    """
    def category_name(category_id: int) -> str:
        category = categories_by_id.get(category_id)
        return category.name if category else UNCATEGORIZED_CATEGORY_NAME

    field_mappings = {}
    for field, mapping in strategy.field_mappings.items():
        if isinstance(mapping, HardCodedAccountMapping):
            account = accounts_by_id.get(mapping.account_id)
            if account is None:
                logger.warning(f"Exporting unknown account id {mapping.account_id} for {field.value}")
            exported = HardCodedAccountExport(
                account_name=account.name if account else UNKNOWN_ACCOUNT_NAME
            )
        elif isinstance(mapping, AccountLookupMapping):
            exported = AccountLookupExport(
                column_name=mapping.column_name,
                fallback_columns=list(mapping.fallback_columns),
                create_if_missing=mapping.create_if_missing,
                default_category_name=category_name(mapping.default_category_id),
            )
        elif isinstance(mapping, RegexAccountMapping):
            exported = RegexAccountExport(
                column_name=mapping.column_name,
                rules=[
                    RegexRuleExport(pattern=r.pattern, account_name=r.account_name)
                    for r in mapping.rules
                ],
                fallback_columns=list(mapping.fallback_columns),
                default_category_name=category_name(mapping.default_category_id),
            )
        elif isinstance(mapping, DirectColumnMapping):
            exported = DirectColumnExport(
                column_name=mapping.column_name,
                fallback_columns=list(mapping.fallback_columns),
            )
        elif isinstance(mapping, DateTimeParsingMapping):
            exported = DateTimeParsingExport(
                date_column_name=mapping.date_column_name,
                date_format=mapping.date_format,
                time_column_name=mapping.time_column_name,
                time_format=mapping.time_format,
                default_time=mapping.default_time,
            )
        elif isinstance(mapping, AmountParsingMapping):
            exported = AmountParsingExport(
                mode=mapping.mode,
                amount_column_name=mapping.amount_column_name,
                credit_column_name=mapping.credit_column_name,
                debit_column_name=mapping.debit_column_name,
                negate_values=mapping.negate_values,
                flip_accounts_on_positive=mapping.flip_accounts_on_positive,
            )
        elif isinstance(mapping, HardCodedCurrencyMapping):
            currency = currencies_by_id.get(mapping.currency_id)
            exported = HardCodedCurrencyExport(
                currency_code=currency.code if currency else UNKNOWN_CURRENCY_CODE
            )
        elif isinstance(mapping, CurrencyLookupMapping):
            exported = CurrencyLookupExport(column_name=mapping.column_name)
        elif isinstance(mapping, HardCodedTimezoneMapping):
            exported = HardCodedTimezoneExport(timezone_id=mapping.timezone_id)
        elif isinstance(mapping, TimezoneLookupMapping):
            exported = TimezoneLookupExport(column_name=mapping.column_name)
        else:
            raise StrategyExportError(f"Cannot export mapping type {type(mapping).__name__}")
        field_mappings[field] = exported

    return StrategyExport(
        version=version,
        name=strategy.name,
        identification_columns=sorted(strategy.identification_columns),
        field_mappings=field_mappings,
        attribute_mappings=[
            AttributeColumnExport(
                column_name=m.column_name,
                attribute_type_name=m.attribute_type_name,
                is_unique_identifier=m.is_unique_identifier,
            )
            for m in strategy.attribute_mappings
        ],
    )


# ---------------------------------------------------------------------------
# Document -> domain
# ---------------------------------------------------------------------------

def parse_export(
    document: StrategyExport,
    accounts: list[Account],
    currencies: list[Currency],
    categories: list[Category]
) -> ImportParseResult:
    """Find the references in a document that the ledger cannot resolve.

    Returns:
        ImportParseResult listing each unresolved (type, name) once
    """
    account_names = {a.name for a in accounts}
    currency_codes = {c.code.upper() for c in currencies}
    category_names = {c.name for c in categories} | {UNCATEGORIZED_CATEGORY_NAME}

    unresolved: list[UnresolvedReference] = []
    seen: set[tuple[ReferenceType, str]] = set()

    def add(ref_type: ReferenceType, name: str, field: TransferField) -> None:
        if (ref_type, name) not in seen:
            seen.add((ref_type, name))
            unresolved.append(UnresolvedReference(type=ref_type, name=name, field=field))

    for field, mapping in document.field_mappings.items():
        if isinstance(mapping, HardCodedAccountExport):
            if mapping.account_name not in account_names:
                add(ReferenceType.ACCOUNT, mapping.account_name, field)
        elif isinstance(mapping, (AccountLookupExport, RegexAccountExport)):
            if mapping.default_category_name not in category_names:
                add(ReferenceType.CATEGORY, mapping.default_category_name, field)
        elif isinstance(mapping, HardCodedCurrencyExport):
            if mapping.currency_code.upper() not in currency_codes:
                add(ReferenceType.CURRENCY, mapping.currency_code, field)

    if unresolved:
        logger.info(f"Strategy '{document.name}' has {len(unresolved)} unresolved references")

    return ImportParseResult(
        strategy_name=document.name,
        document=document,
        unresolved_references=unresolved,
    )


def from_export(
    document: StrategyExport,
    accounts: list[Account],
    currencies: list[Currency],
    categories: list[Category],
    resolutions: dict[tuple[ReferenceType, str], int] | None = None,
    strategy_id: str | None = None
) -> ImportStrategy:
    """Build a strategy from a document.

    Args:
        document: Parsed document
        accounts: Account snapshot
        currencies: Currency snapshot
        categories: Category snapshot
        resolutions: Ids chosen by the caller for unresolved references,
            keyed by (reference type, name in the document)
        strategy_id: Id of the new strategy (random when omitted)

    Returns:
        ImportStrategy

    Raises:
        StrategyExportError: If a reference is neither known nor resolved,
            or a mapping is inconsistent
    """
    resolutions = resolutions or {}
    account_ids = {a.name: a.id for a in accounts}
    currency_ids = {c.code.upper(): c.id for c in currencies}
    category_ids = {c.name: c.id for c in categories}
    category_ids.setdefault(UNCATEGORIZED_CATEGORY_NAME, UNCATEGORIZED_CATEGORY_ID)

    def lookup(ref_type: ReferenceType, name: str, known: dict[str, int], key: str) -> int:
        if (ref_type, name) in resolutions:
            return resolutions[(ref_type, name)]
        if key in known:
            return known[key]
        raise StrategyExportError(f"Unresolved {ref_type.value.lower()} reference: {name}")

    field_mappings: dict[TransferField, FieldMapping] = {}
    try:
        for field, mapping in document.field_mappings.items():
            field_mappings[field] = _to_domain(mapping, lookup, account_ids, currency_ids, category_ids)
    except ValueError as e:
        if isinstance(e, StrategyExportError):
            raise
        raise StrategyExportError(f"Invalid mapping in strategy '{document.name}': {e}") from e

    now = datetime.now(timezone.utc)
    return ImportStrategy(
        id=strategy_id or str(uuid.uuid4()),
        name=document.name,
        identification_columns=frozenset(document.identification_columns),
        field_mappings=field_mappings,
        attribute_mappings=[
            AttributeColumnMapping(
                column_name=m.column_name,
                attribute_type_name=m.attribute_type_name,
                is_unique_identifier=m.is_unique_identifier,
            )
            for m in document.attribute_mappings
        ],
        created_at=now,
        updated_at=now,
    )


def _to_domain(mapping, lookup, account_ids, currency_ids, category_ids) -> FieldMapping:
    if isinstance(mapping, HardCodedAccountExport):
        return HardCodedAccountMapping(
            lookup(ReferenceType.ACCOUNT, mapping.account_name, account_ids, mapping.account_name)
        )
    if isinstance(mapping, AccountLookupExport):
        return AccountLookupMapping(
            column_name=mapping.column_name,
            fallback_columns=tuple(mapping.fallback_columns),
            create_if_missing=mapping.create_if_missing,
            default_category_id=lookup(
                ReferenceType.CATEGORY, mapping.default_category_name,
                category_ids, mapping.default_category_name,
            ),
        )
    if isinstance(mapping, RegexAccountExport):
        return RegexAccountMapping(
            column_name=mapping.column_name,
            rules=tuple(RegexRule(r.pattern, r.account_name) for r in mapping.rules),
            fallback_columns=tuple(mapping.fallback_columns),
            default_category_id=lookup(
                ReferenceType.CATEGORY, mapping.default_category_name,
                category_ids, mapping.default_category_name,
            ),
        )
    if isinstance(mapping, DirectColumnExport):
        return DirectColumnMapping(mapping.column_name, tuple(mapping.fallback_columns))
    if isinstance(mapping, DateTimeParsingExport):
        return DateTimeParsingMapping(
            date_column_name=mapping.date_column_name,
            date_format=mapping.date_format,
            time_column_name=mapping.time_column_name,
            time_format=mapping.time_format,
            default_time=mapping.default_time,
        )
    if isinstance(mapping, AmountParsingExport):
        return AmountParsingMapping(
            mode=mapping.mode,
            amount_column_name=mapping.amount_column_name,
            credit_column_name=mapping.credit_column_name,
            debit_column_name=mapping.debit_column_name,
            negate_values=mapping.negate_values,
            flip_accounts_on_positive=mapping.flip_accounts_on_positive,
        )
    if isinstance(mapping, HardCodedCurrencyExport):
        return HardCodedCurrencyMapping(
            lookup(
                ReferenceType.CURRENCY, mapping.currency_code,
                currency_ids, mapping.currency_code.upper(),
            )
        )
    if isinstance(mapping, CurrencyLookupExport):
        return CurrencyLookupMapping(mapping.column_name)
    if isinstance(mapping, HardCodedTimezoneExport):
        return HardCodedTimezoneMapping(mapping.timezone_id)
    if isinstance(mapping, TimezoneLookupExport):
        return TimezoneLookupMapping(mapping.column_name)
    raise StrategyExportError(f"Unsupported mapping kind: {type(mapping).__name__}")


# ---------------------------------------------------------------------------
# Codecs
# ---------------------------------------------------------------------------

def dump_json(document: StrategyExport) -> str:
    return document.model_dump_json(indent=2)


def load_json(text: str) -> StrategyExport:
    """Read a JSON document.

    Raises:
        StrategyExportError: If the text is not a valid strategy document
    """
    try:
        return StrategyExport.model_validate(json.loads(text))
    except (json.JSONDecodeError, ValidationError) as e:
        raise StrategyExportError(f"Invalid strategy document: {e}") from e


def dump_yaml(document: StrategyExport) -> str:
    return yaml.safe_dump(
        document.model_dump(mode="json"),
        sort_keys=False,
        allow_unicode=True,
    )


def load_yaml(text: str) -> StrategyExport:
    """Read a YAML document.

    Raises:
        StrategyExportError: If the text is not a valid strategy document
    """
    try:
        data = yaml.safe_load(text)
        return StrategyExport.model_validate(data)
    except (yaml.YAMLError, ValidationError) as e:
        raise StrategyExportError(f"Invalid strategy document: {e}") from e

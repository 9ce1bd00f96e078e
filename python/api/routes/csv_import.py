"""
CSV Import API Routes

Stateless preview endpoints: the caller sends a strategy document, the CSV
and repository snapshots, and gets back what an import would do. Nothing is
persisted here.
"""

import logging
import os
from datetime import datetime
from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from csv_import import (
    Account,
    Category,
    CsvAccountMapping,
    CsvColumn,
    CsvRow,
    CsvTransferMapper,
    Currency,
    ExistingTransferInfo,
    ImportSettings,
    ImportStrategy,
    StrategyExportError,
    Transfer,
    find_all_matching_strategies,
)
from csv_import.strategy_export import (
    StrategyExport,
    UnresolvedReference,
    from_export,
    parse_export,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/csv-import", tags=["csv-import"])


@lru_cache
def get_settings() -> ImportSettings:
    """Engine settings, loaded once from CSV_IMPORT_CONFIG_DIR or config/."""
    return ImportSettings.load(os.getenv("CSV_IMPORT_CONFIG_DIR"))


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class AccountItem(BaseModel):
    id: int
    name: str
    category_id: int = 0


class CurrencyItem(BaseModel):
    id: int
    code: str
    name: str = ""
    scale_factor: int = 100


class CategoryItem(BaseModel):
    id: int
    name: str


class AccountMappingItem(BaseModel):
    """Persisted account mapping."""

    id: int
    column_name: str
    value_pattern: str
    account_id: int


class ExistingTransferItem(BaseModel):
    """Previously imported transfer."""

    transfer_id: str
    timestamp: datetime
    description: str
    source_account_id: int
    target_account_id: int
    amount: int
    currency_id: int
    attributes: dict[str, str] = Field(default_factory=dict)
    unique_identifier_values: dict[str, str] = Field(default_factory=dict)


class StrategyMatchRequest(BaseModel):
    headers: list[str]
    strategies: list[StrategyExport]


class StrategyMatchResponse(BaseModel):
    matches: list[str]


class PrepareImportRequest(BaseModel):
    """CSV content plus the snapshots the import runs against."""

    strategy: StrategyExport
    headers: list[str]
    rows: list[list[str]]
    accounts: list[AccountItem] = Field(default_factory=list)
    currencies: list[CurrencyItem] = Field(default_factory=list)
    categories: list[CategoryItem] = Field(default_factory=list)
    existing_transfers: list[ExistingTransferItem] = Field(default_factory=list)
    account_mappings: list[AccountMappingItem] = Field(default_factory=list)


class TransferItem(BaseModel):
    row_index: int
    import_status: str
    existing_transfer_id: str | None
    timestamp: datetime
    description: str
    source_account_id: int
    target_account_id: int
    amount: int
    currency_id: int
    attributes: dict[str, str]


class ErrorItem(BaseModel):
    row_index: int
    message: str
    field: str | None


class NewAccountItem(BaseModel):
    name: str
    category_id: int


class DiscoveredMappingItem(BaseModel):
    column_name: str
    csv_value: str
    target_account_name: str
    matched_pattern: str | None
    suggested_pattern: str


class PrepareImportResponse(BaseModel):
    """Preview of an import."""

    strategy_name: str
    total_rows: int
    valid_transfers: list[TransferItem]
    errors: list[ErrorItem]
    new_accounts: list[NewAccountItem]
    discovered_mappings: list[DiscoveredMappingItem]
    existing_account_matches: dict[str, int]
    status_counts: dict[str, int]


class UnresolvedReferencesDetail(BaseModel):
    message: str
    unresolved_references: list[UnresolvedReference]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/strategies/match", response_model=StrategyMatchResponse)
async def match_strategies(request: StrategyMatchRequest) -> StrategyMatchResponse:
    """Find the strategies whose identification columns equal the headers.

    Args:
        request: CSV headers and candidate strategy documents

    Returns:
        Names of matching strategies in the order given
    """
    # Only identification columns take part in matching
    catalog = [
        ImportStrategy(
            id=str(index),
            name=document.name,
            identification_columns=frozenset(document.identification_columns),
            field_mappings={},
        )
        for index, document in enumerate(request.strategies)
    ]
    matches = find_all_matching_strategies(request.headers, catalog)
    return StrategyMatchResponse(matches=[strategy.name for strategy in matches])


@router.post("/prepare", response_model=PrepareImportResponse)
async def prepare_import(
    request: PrepareImportRequest,
    settings: ImportSettings = Depends(get_settings),
) -> PrepareImportResponse:
    """Preview an import.

    Args:
        request: Strategy document, CSV content and snapshots
        settings: Engine settings

    Returns:
        Mapped transfers with their status, row errors, accounts to create
        and discovered account mappings

    Raises:
        HTTPException: 422 if the strategy references unknown accounts,
            currencies or categories, or is inconsistent
    """
    accounts = [Account(a.id, a.name, a.category_id) for a in request.accounts]
    currencies = [Currency(c.id, c.code, c.name, c.scale_factor) for c in request.currencies]
    categories = [Category(c.id, c.name) for c in request.categories]

    parsed = parse_export(request.strategy, accounts, currencies, categories)
    if not parsed.is_resolved:
        detail = UnresolvedReferencesDetail(
            message="Strategy has unresolved references",
            unresolved_references=parsed.unresolved_references,
        )
        raise HTTPException(status_code=422, detail=detail.model_dump(mode="json"))

    try:
        strategy = from_export(request.strategy, accounts, currencies, categories)
    except StrategyExportError as e:
        raise HTTPException(status_code=422, detail=str(e))

    columns = [
        CsvColumn(id=str(index), column_index=index, original_name=name)
        for index, name in enumerate(request.headers)
    ]
    rows = [CsvRow(row_index=index, values=values) for index, values in enumerate(request.rows)]

    mapper = CsvTransferMapper(
        strategy=strategy,
        columns=columns,
        existing_accounts={a.name: a for a in accounts},
        existing_currencies={c.id: c for c in currencies},
        existing_currencies_by_code={c.code.upper(): c for c in currencies},
        existing_transfers=[_existing_transfer(t) for t in request.existing_transfers],
        account_mappings=[
            CsvAccountMapping(
                id=m.id,
                strategy_id=strategy.id,
                column_name=m.column_name,
                value_pattern=m.value_pattern,
                account_id=m.account_id,
            )
            for m in request.account_mappings
        ],
        settings=settings,
    )
    preparation = mapper.prepare_import(rows)
    logger.info(f"Previewed {preparation.total_rows} rows with strategy '{strategy.name}'")

    return PrepareImportResponse(
        strategy_name=strategy.name,
        total_rows=preparation.total_rows,
        valid_transfers=[
            TransferItem(
                row_index=item.row_index,
                import_status=item.import_status.value,
                existing_transfer_id=item.existing_transfer_id,
                timestamp=item.transfer.timestamp,
                description=item.transfer.description,
                source_account_id=item.transfer.source_account_id,
                target_account_id=item.transfer.target_account_id,
                amount=item.transfer.amount,
                currency_id=item.transfer.currency_id,
                attributes=dict(item.attributes),
            )
            for item in preparation.valid_transfers
        ],
        errors=[
            ErrorItem(
                row_index=error.row_index,
                message=error.error_message,
                field=error.field.value if error.field else None,
            )
            for error in preparation.error_rows
        ],
        new_accounts=[
            NewAccountItem(name=a.name, category_id=a.category_id)
            for a in preparation.new_accounts
        ],
        discovered_mappings=[
            DiscoveredMappingItem(
                column_name=m.column_name,
                csv_value=m.csv_value,
                target_account_name=m.target_account_name,
                matched_pattern=m.matched_pattern,
                suggested_pattern=m.suggested_pattern(),
            )
            for m in preparation.discovered_mappings
        ],
        existing_account_matches=preparation.existing_account_matches,
        status_counts={s.value: c for s, c in preparation.status_counts.items()},
    )


def _existing_transfer(item: ExistingTransferItem) -> ExistingTransferInfo:
    return ExistingTransferInfo(
        transfer_id=item.transfer_id,
        transfer=Transfer(
            timestamp=item.timestamp,
            description=item.description,
            source_account_id=item.source_account_id,
            target_account_id=item.target_account_id,
            amount=item.amount,
            currency_id=item.currency_id,
        ),
        attributes=list(item.attributes.items()),
        unique_identifier_values=item.unique_identifier_values,
    )

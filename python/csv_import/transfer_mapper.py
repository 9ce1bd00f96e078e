"""
CSV Transfer Mapper Module

Maps CSV rows to transfers with an import strategy and prepares import
batches: valid transfers with their duplicate status, row errors, accounts
to create and account mappings discovered along the way.
"""

import logging
from collections import Counter

from .account_resolver import (
    AccountResolution,
    AccountResolver,
    NewAccountCandidate,
)
from .amount_parser import AmountParser
from .config import ImportSettings
from .duplicate_detector import DuplicateDetector
from .errors import AmountParseError, CsvImportError
from .field_resolver import FieldResolver
from .models import (
    REQUIRED_FIELDS,
    Account,
    AmountParsingMapping,
    CsvAccountMapping,
    CsvColumn,
    CsvRow,
    CsvTransferWithAttributes,
    Currency,
    ExistingTransferInfo,
    ImportPreparation,
    ImportStatus,
    ImportStrategy,
    MappingError,
    MappingResult,
    MappingSuccess,
    NewAccount,
    Transfer,
    TransferField,
)

logger = logging.getLogger(__name__)


class CsvTransferMapper:
    """Maps CSV rows to transfers using an import strategy.

    The mapper only reads the snapshots it is given; mapping the same row
    twice gives the same result.
    """

    def __init__(
        self,
        strategy: ImportStrategy,
        columns: list[CsvColumn],
        existing_accounts: dict[str, Account] | None = None,
        existing_currencies: dict[int, Currency] | None = None,
        existing_currencies_by_code: dict[str, Currency] | None = None,
        existing_transfers: list[ExistingTransferInfo] | None = None,
        account_mappings: list[CsvAccountMapping] | None = None,
        settings: ImportSettings | None = None
    ):
        """Initialize the mapper.

        Args:
            strategy: Import strategy to apply
            columns: Columns of the CSV
            existing_accounts: Accounts keyed by name
            existing_currencies: Currencies keyed by id
            existing_currencies_by_code: Currencies keyed by upper-case code
            existing_transfers: Previously imported transfers for duplicate detection
            account_mappings: Persisted account mappings of the strategy
            settings: Engine settings
        """
        self.strategy = strategy
        self.settings = settings or ImportSettings()
        self.existing_accounts = existing_accounts or {}

        self.amount_parser = AmountParser()
        self.account_resolver = AccountResolver(
            self.existing_accounts, account_mappings, self.settings
        )
        self.field_resolver = FieldResolver(
            columns,
            currencies=existing_currencies,
            currencies_by_code=existing_currencies_by_code,
            account_resolver=self.account_resolver,
            amount_parser=self.amount_parser,
            settings=self.settings,
        )
        self.duplicate_detector = DuplicateDetector(
            existing_transfers or [], strategy.unique_identifier_columns
        )

        self._account_names_by_id: dict[int, list[str]] = {}
        for name, account in self.existing_accounts.items():
            self._account_names_by_id.setdefault(account.id, []).append(name)

    def map_row(self, row: CsvRow) -> MappingResult:
        """Map a single CSV row to a transfer.

        Args:
            row: CSV row

        Returns:
            MappingSuccess, or MappingError naming the field that failed
        """
        mappings = self.strategy.field_mappings
        for required in REQUIRED_FIELDS:
            if required not in mappings:
                return MappingError(row.row_index, f"Missing {required.value} mapping", required)

        try:
            return self._map_row(row)
        except CsvImportError as e:
            logger.debug(f"Row {row.row_index} failed: {e}")
            return MappingError(row.row_index, str(e), e.field)

    def _map_row(self, row: CsvRow) -> MappingSuccess:
        mappings = self.strategy.field_mappings
        resolve = self.field_resolver.resolve

        # Amount first, its sign decides whether accounts are flipped
        amount_mapping = mappings[TransferField.AMOUNT]
        raw_amount = resolve(TransferField.AMOUNT, amount_mapping, row)
        currency = resolve(TransferField.CURRENCY, mappings[TransferField.CURRENCY], row)

        source = resolve(TransferField.SOURCE_ACCOUNT, mappings[TransferField.SOURCE_ACCOUNT], row)
        target = resolve(TransferField.TARGET_ACCOUNT, mappings[TransferField.TARGET_ACCOUNT], row)

        source_account_id = source.account_id
        target_account_id = target.account_id
        if (
            isinstance(amount_mapping, AmountParsingMapping)
            and amount_mapping.flip_accounts_on_positive
            and raw_amount > 0
        ):
            source_account_id, target_account_id = target_account_id, source_account_id

        tz = self.field_resolver.resolve_timezone(mappings.get(TransferField.TIMEZONE), row)
        timestamp = resolve(TransferField.TIMESTAMP, mappings[TransferField.TIMESTAMP], row, tz)
        description = resolve(TransferField.DESCRIPTION, mappings[TransferField.DESCRIPTION], row)

        try:
            amount = self.amount_parser.to_minor_units(abs(raw_amount), currency.scale_factor)
        except AmountParseError as e:
            e.field = TransferField.AMOUNT
            raise

        transfer = Transfer(
            timestamp=timestamp,
            description=description,
            source_account_id=source_account_id,
            target_account_id=target_account_id,
            amount=amount,
            currency_id=currency.id,
        )

        attributes = self.field_resolver.attributes(row, self.strategy.attribute_mappings)
        unique_identifier_values = self.field_resolver.unique_identifier_values(
            row, self.strategy.unique_identifier_columns
        )

        new_account = self._new_account(target)
        return MappingSuccess(
            transfer=transfer,
            new_account_name=new_account.name if new_account else None,
            discovered_mapping=new_account.discovered_mapping if new_account else None,
            attributes=attributes,
            unique_identifier_values=unique_identifier_values,
            new_account_category_id=(
                new_account.category_id if new_account else self.settings.uncategorized_category_id
            ),
        )

    @staticmethod
    def _new_account(resolution: AccountResolution) -> NewAccountCandidate | None:
        if isinstance(resolution, NewAccountCandidate):
            return resolution
        return None

    def prepare_import(self, rows: list[CsvRow]) -> ImportPreparation:
        """Map all rows and collect what the import needs.

        Args:
            rows: CSV rows to import

        Returns:
            ImportPreparation with transfers in row order
        """
        preparation = ImportPreparation()
        status_counts: Counter = Counter()
        new_account_names: set[str] = set()
        discovered_keys: set[tuple[str, str]] = set()

        for row in rows:
            result = self.map_row(row)

            if isinstance(result, MappingError):
                preparation.error_rows.append(result)
                status_counts[ImportStatus.ERROR] += 1
                continue

            status, existing_transfer_id = self.duplicate_detector.classify(result)
            status_counts[status] += 1
            preparation.valid_transfers.append(
                CsvTransferWithAttributes(
                    transfer=result.transfer,
                    attributes=result.attributes,
                    row_index=row.row_index,
                    import_status=status,
                    existing_transfer_id=existing_transfer_id,
                    unique_identifier_values=result.unique_identifier_values,
                )
            )

            if result.new_account_name and result.new_account_name not in new_account_names:
                new_account_names.add(result.new_account_name)
                preparation.new_accounts.append(
                    NewAccount(result.new_account_name, result.new_account_category_id)
                )

            discovered = result.discovered_mapping
            if discovered:
                key = (discovered.column_name, discovered.csv_value)
                if key not in discovered_keys:
                    discovered_keys.add(key)
                    preparation.discovered_mappings.append(discovered)

            for account_id in (result.transfer.source_account_id, result.transfer.target_account_id):
                for name in self._account_names_by_id.get(account_id, []):
                    preparation.existing_account_matches[name] = account_id

        preparation.status_counts = dict(status_counts)

        logger.info(
            f"Prepared import with strategy '{self.strategy.name}': "
            f"{len(preparation.valid_transfers)} valid, {len(preparation.error_rows)} errors, "
            f"{len(preparation.new_accounts)} new accounts"
        )
        return preparation

    @staticmethod
    def rows_needing_import(rows: list[CsvRow]) -> list[CsvRow]:
        """Filter rows to those never imported or that failed last time."""
        return [
            row for row in rows
            if row.import_status is None or row.import_status == ImportStatus.ERROR
        ]

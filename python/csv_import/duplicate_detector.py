"""
Duplicate Transfer Detector Module

Classifies mapped transfers against previously imported transfers as new,
duplicate or updated.
"""

import logging
from dataclasses import dataclass, field

from .models import (
    CsvTransferWithAttributes,
    ExistingTransferInfo,
    ImportStatus,
    MappingSuccess,
    Transfer,
)

logger = logging.getLogger(__name__)


@dataclass
class DuplicateMatch:
    """Represents the existing transfer a candidate matched."""

    status: ImportStatus
    existing: ExistingTransferInfo
    match_reasons: list[str] = field(default_factory=list)


class DuplicateDetector:
    """Detects re-imported transfers.

    With unique identifier columns the candidate is looked up by its
    identifier values (all columns must match). Without them, transfers are
    compared on timestamp, description and amount.
    """

    def __init__(
        self,
        existing_transfers: list[ExistingTransferInfo],
        unique_id_columns: list[str] | None = None
    ):
        """Initialize the duplicate detector.

        Args:
            existing_transfers: Snapshot of stored transfers, scoped by the caller
            unique_id_columns: Columns flagged as unique identifiers
        """
        self.existing_transfers = list(existing_transfers)
        self.unique_id_columns = list(unique_id_columns or [])
        self._transfer_index: dict[tuple[str, ...], ExistingTransferInfo] = {}

        if self.unique_id_columns:
            self._build_index(self.existing_transfers)

    def classify(
        self,
        candidate: MappingSuccess | CsvTransferWithAttributes
    ) -> tuple[ImportStatus, str | None]:
        """Classify a mapped transfer.

        Args:
            candidate: Mapped transfer with its attributes and unique
                identifier values

        Returns:
            (import status, existing transfer id or None)
        """
        match = self.find_match(
            candidate.transfer, candidate.attributes, candidate.unique_identifier_values
        )
        if match is None:
            return ImportStatus.IMPORTED, None
        logger.debug(
            f"Matched transfer {match.existing.transfer_id} as {match.status.value}: "
            f"{', '.join(match.match_reasons)}"
        )
        return match.status, match.existing.transfer_id

    def find_match(
        self,
        transfer: Transfer,
        attributes: list[tuple[str, str]],
        unique_identifier_values: dict[str, str]
    ) -> DuplicateMatch | None:
        if self.unique_id_columns:
            return self._find_by_unique_id(transfer, attributes, unique_identifier_values)
        return self._find_by_fields(transfer, attributes)

    def _build_index(self, transfers: list[ExistingTransferInfo]) -> None:
        """Index existing transfers by their unique identifier values.

        Args:
            transfers: Transfers to index
        """
        self._transfer_index.clear()

        for info in transfers:
            key = self._key(info.unique_identifier_values)
            if not any(key):
                continue
            # First transfer in the snapshot keeps the key
            self._transfer_index.setdefault(key, info)

    def _key(self, values: dict[str, str]) -> tuple[str, ...]:
        return tuple((values.get(column) or "").strip() for column in self.unique_id_columns)

    def _find_by_unique_id(
        self,
        transfer: Transfer,
        attributes: list[tuple[str, str]],
        unique_identifier_values: dict[str, str]
    ) -> DuplicateMatch | None:
        key = self._key(unique_identifier_values)

        # Blank identifiers mean the bank gave no id for this row
        if not any(key):
            return None

        existing = self._transfer_index.get(key)
        if existing is None:
            return None

        reasons = [f"Same {', '.join(self.unique_id_columns)}"]
        differences = self._differences(transfer, attributes, existing)
        if differences:
            reasons.extend(differences)
            return DuplicateMatch(ImportStatus.UPDATED, existing, reasons)
        return DuplicateMatch(ImportStatus.DUPLICATE, existing, reasons)

    def _find_by_fields(
        self,
        transfer: Transfer,
        attributes: list[tuple[str, str]]
    ) -> DuplicateMatch | None:
        # An exact match anywhere beats an earlier partial one
        partial = None
        for existing in self.existing_transfers:
            if not self._core_fields_match(transfer, existing.transfer):
                continue
            if self._attributes_match(attributes, existing.attributes):
                return DuplicateMatch(ImportStatus.DUPLICATE, existing, ["All fields match"])
            if partial is None:
                partial = DuplicateMatch(
                    ImportStatus.UPDATED, existing, ["Core fields match", "Attributes differ"]
                )
        return partial

    def _differences(
        self,
        transfer: Transfer,
        attributes: list[tuple[str, str]],
        existing: ExistingTransferInfo
    ) -> list[str]:
        differences = []
        if transfer.timestamp != existing.transfer.timestamp:
            differences.append("Timestamp differs")
        if transfer.description != existing.transfer.description:
            differences.append("Description differs")
        if (transfer.amount, transfer.currency_id) != (
            existing.transfer.amount, existing.transfer.currency_id
        ):
            differences.append("Amount differs")
        if not self._attributes_match(attributes, existing.attributes):
            differences.append("Attributes differ")
        return differences

    @staticmethod
    def _core_fields_match(transfer: Transfer, other: Transfer) -> bool:
        return (
            transfer.timestamp == other.timestamp
            and transfer.description == other.description
            and transfer.amount == other.amount
            and transfer.currency_id == other.currency_id
        )

    @staticmethod
    def _attributes_match(
        attributes: list[tuple[str, str]],
        other: list[tuple[str, str]]
    ) -> bool:
        """Order-independent comparison of attribute pairs."""
        return dict(attributes) == dict(other)

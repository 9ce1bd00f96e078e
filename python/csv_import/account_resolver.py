"""
Account Resolver Module

Resolves CSV values to account ids: persisted account mappings first, then
strategy regex rules, then lookup by account name. Identifies new accounts
and captures the mapping that produced them.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass

from .config import ImportSettings
from .errors import AccountNotFoundError, InvalidMappingError, InvalidPatternError
from .models import (
    Account,
    AccountLookupMapping,
    CsvAccountMapping,
    DiscoveredAccountMapping,
    HardCodedAccountMapping,
    RegexAccountMapping,
    RegexRule,
    TransferField,
    UNCATEGORIZED_CATEGORY_ID,
)
from .patterns import compile_pattern, pattern_matches

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExistingAccount:
    """Value resolved to an account that already exists."""

    account_id: int


@dataclass(frozen=True)
class NewAccountCandidate:
    """Value names an account that does not exist yet."""

    name: str
    account_id: int  # placeholder until the account is created
    discovered_mapping: DiscoveredAccountMapping
    category_id: int = UNCATEGORIZED_CATEGORY_ID


@dataclass(frozen=True)
class Placeholder:
    """No column yielded an account name.

    The transfer keeps the placeholder id and fails when persisted.
    """

    account_id: int


AccountResolution = ExistingAccount | NewAccountCandidate | Placeholder


class AccountResolver:
    """Resolves account fields of a CSV row."""

    def __init__(
        self,
        accounts_by_name: dict[str, Account],
        account_mappings: list[CsvAccountMapping] | None = None,
        settings: ImportSettings | None = None
    ):
        """Initialize the resolver.

        Args:
            accounts_by_name: Existing accounts keyed by exact name
            account_mappings: Persisted account mappings for the strategy
            settings: Engine settings
        """
        self.accounts_by_name = accounts_by_name
        self.settings = settings or ImportSettings()
        self._mappings_by_column: dict[str, list[tuple[re.Pattern, CsvAccountMapping]]] = (
            defaultdict(list)
        )

        # Lower id = created first = wins
        for mapping in sorted(account_mappings or [], key=lambda m: m.id):
            try:
                compiled = compile_pattern(mapping.value_pattern, self.settings.max_pattern_length)
            except InvalidPatternError as e:
                logger.warning(f"Skipping account mapping {mapping.id}: {e}")
                continue
            self._mappings_by_column[mapping.column_name].append((compiled, mapping))

    def resolve(
        self,
        mapping: HardCodedAccountMapping | AccountLookupMapping | RegexAccountMapping,
        column_values: list[tuple[str, str]],
        field: TransferField | None = None
    ) -> AccountResolution:
        """Resolve an account field.

        Args:
            mapping: The account mapping of the field
            column_values: (column, raw value) for the primary column followed
                by the fallback columns, in order
            field: Field being resolved, for error reporting

        Returns:
            ExistingAccount, NewAccountCandidate or Placeholder
        """
        if isinstance(mapping, HardCodedAccountMapping):
            return ExistingAccount(mapping.account_id)
        if not isinstance(mapping, (AccountLookupMapping, RegexAccountMapping)):
            raise InvalidMappingError(
                f"Invalid account mapping type: {type(mapping).__name__}", field
            )

        values = [(column, (value or "").strip()) for column, value in column_values]
        effective = next(((c, v) for c, v in values if v), None)

        # 1. Persisted mappings on the column that supplied the value
        if effective:
            account_id = self.match_persisted(*effective)
            if account_id is not None:
                return ExistingAccount(account_id)

        # 2. Strategy regex rules on the primary column
        name = None
        source = effective
        matched_pattern = None
        if isinstance(mapping, RegexAccountMapping) and values and values[0][1]:
            rule = self.match_rule(mapping.rules, values[0][1])
            if rule:
                name = rule.account_name
                source = values[0]
                matched_pattern = rule.pattern

        if name is None:
            if effective is None:
                return Placeholder(self.settings.placeholder_account_id)
            name = effective[1]

        # 3. Name lookup
        account = self.accounts_by_name.get(name)
        if account:
            return ExistingAccount(account.id)

        if isinstance(mapping, AccountLookupMapping) and not mapping.create_if_missing:
            raise AccountNotFoundError(f"Account not found: {name}", field)

        return NewAccountCandidate(
            name=name,
            account_id=self.settings.placeholder_account_id,
            category_id=mapping.default_category_id,
            discovered_mapping=DiscoveredAccountMapping(
                column_name=source[0],
                csv_value=source[1],
                target_account_name=name,
                matched_pattern=matched_pattern,
            ),
        )

    def match_persisted(self, column_name: str, value: str) -> int | None:
        """Return the account of the first persisted mapping matching value."""
        for compiled, mapping in self._mappings_by_column.get(column_name, []):
            if pattern_matches(compiled, value, self.settings.max_match_length):
                logger.debug(
                    f"Account mapping {mapping.id} routed {column_name}={value!r} "
                    f"to account {mapping.account_id}"
                )
                return mapping.account_id
        return None

    def match_rule(self, rules, value: str) -> RegexRule | None:
        """Return the first rule whose pattern matches value."""
        for rule in rules:
            try:
                compiled = compile_pattern(rule.pattern, self.settings.max_pattern_length)
            except InvalidPatternError as e:
                logger.warning(f"Skipping regex rule for {rule.account_name!r}: {e}")
                continue
            if pattern_matches(compiled, value, self.settings.max_match_length):
                return rule
        return None

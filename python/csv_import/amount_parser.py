"""
Amount Parser Module

Parses free-form amount text from bank exports into Decimal values and
fixed-point minor units.
"""

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .errors import AmountParseError

# Currency symbols or codes around the number: "£", "US$", "GBP", "EUR "
_LEADING_SYMBOLS = re.compile(r"^[^\d+\-.,()]+")
_TRAILING_SYMBOLS = re.compile(r"[^\d+\-.,()]+$")
_NUMBER = re.compile(r"^(\d+(\.\d*)?|\.\d+)$")
_THOUSANDS = re.compile(r"^\d{1,3}(,\d{3})+(\.\d*)?$")


class AmountParser:
    """Parses amounts such as "1,234.00", "£50.00", "(12.50)" or "7.99-".

    Conversion to minor units rounds half-up, so "0.005" at scale 100 is 1.
    """

    ROUNDING = ROUND_HALF_UP

    def parse_decimal(self, raw: str) -> Decimal:
        """Parse amount text to a signed Decimal.

        Args:
            raw: Amount text (may include currency symbols, commas, signs)

        Returns:
            Parsed Decimal

        Raises:
            AmountParseError: If the text holds no number or a malformed one
        """
        if raw is None or not raw.strip():
            raise AmountParseError("Amount is blank")

        cleaned = re.sub(r"\s+", "", raw)
        cleaned = self._strip_symbols(cleaned)

        # Handle negative indicators
        is_negative = False
        if cleaned.startswith("(") and cleaned.endswith(")"):
            cleaned = self._strip_symbols(cleaned[1:-1])
            is_negative = True

        if cleaned.startswith("-"):
            cleaned = cleaned[1:]
            is_negative = True
        elif cleaned.endswith("-"):
            cleaned = cleaned[:-1]
            is_negative = True
        elif cleaned.startswith("+"):
            cleaned = cleaned[1:]

        # "-£50.00"
        cleaned = self._strip_symbols(cleaned)

        if "," in cleaned:
            if not _THOUSANDS.match(cleaned):
                raise AmountParseError(f"Cannot parse amount: {raw}")
            cleaned = cleaned.replace(",", "")

        if not _NUMBER.match(cleaned):
            raise AmountParseError(f"Cannot parse amount: {raw}")

        try:
            amount = Decimal(cleaned)
        except InvalidOperation as e:
            raise AmountParseError(f"Cannot parse amount: {raw}") from e

        return -amount if is_negative else amount

    def to_minor_units(self, amount: Decimal, scale_factor: int) -> int:
        """Scale a Decimal amount to an integer number of minor units.

        Raises:
            AmountParseError: If the scaled amount exceeds decimal precision
        """
        try:
            scaled = amount * Decimal(scale_factor)
            return int(scaled.quantize(Decimal(1), rounding=self.ROUNDING))
        except InvalidOperation as e:
            raise AmountParseError(f"Amount out of range: {amount}") from e

    def parse(self, raw: str, scale_factor: int) -> int:
        """Parse amount text straight to minor units.

        Examples:
            parse("1,234.00", 100) -> 123400
            parse("£50.00", 100) -> 5000
        """
        return self.to_minor_units(self.parse_decimal(raw), scale_factor)

    @staticmethod
    def _strip_symbols(text: str) -> str:
        text = _LEADING_SYMBOLS.sub("", text)
        return _TRAILING_SYMBOLS.sub("", text)

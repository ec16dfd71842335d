"""
Financial year arithmetic.

The financial year runs from April 1 of year Y to March 31 of year Y+1 and
is written ``Y-yy`` (``2024-25`` covers 2024-04-01 to 2025-03-31).  The
boundary is fixed; it is not configurable.
"""

import re
from dataclasses import dataclass
from datetime import date

FY_START_MONTH = 4
FY_START_DAY = 1

_CODE_PATTERN = re.compile(r"^(?:FY\s*)?(\d{4})\s*[-/]\s*(\d{2}|\d{4})$", re.IGNORECASE)


@dataclass(frozen=True, order=True)
class FinancialYear:
    """
    One April-to-March financial year, identified by its starting year.

    Guarantees:
        - start_date is April 1 of start_year.
        - end_date is March 31 of start_year + 1.
        - code round-trips through parse().
    """

    start_year: int

    @classmethod
    def for_date(cls, d: date) -> "FinancialYear":
        """The financial year whose window contains ``d``."""
        if (d.month, d.day) >= (FY_START_MONTH, FY_START_DAY):
            return cls(d.year)
        return cls(d.year - 1)

    @classmethod
    def parse(cls, code: "str | FinancialYear") -> "FinancialYear":
        """
        Parse ``2024-25``, ``2024-2025`` or ``FY2024-25``.

        Raises:
            ValueError: if the code is malformed or the two years are not
                consecutive.
        """
        if isinstance(code, FinancialYear):
            return code
        match = _CODE_PATTERN.match(str(code).strip())
        if match is None:
            raise ValueError(f"Invalid financial year code: {code!r}")
        start = int(match.group(1))
        end_text = match.group(2)
        end = int(end_text) if len(end_text) == 4 else (start // 100) * 100 + int(end_text)
        if len(end_text) == 2 and end < start:
            end += 100
        if end != start + 1:
            raise ValueError(
                f"Invalid financial year code: {code!r} "
                "(years must be consecutive)"
            )
        return cls(start)

    @property
    def code(self) -> str:
        return f"{self.start_year}-{(self.start_year + 1) % 100:02d}"

    @property
    def start_date(self) -> date:
        return date(self.start_year, FY_START_MONTH, FY_START_DAY)

    @property
    def end_date(self) -> date:
        return date(self.start_year + 1, FY_START_MONTH - 1, 31)

    def contains(self, d: date) -> bool:
        return self.start_date <= d <= self.end_date

    def next(self) -> "FinancialYear":
        return FinancialYear(self.start_year + 1)

    def previous(self) -> "FinancialYear":
        return FinancialYear(self.start_year - 1)

    def __str__(self) -> str:
        return self.code

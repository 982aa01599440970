"""Transaction date derivation for monthly branch forms.

A form only names its month. Every ledger row for the form, including the
balancing entry, is dated on the same fixed day of that month
(:data:`TRANSACTION_DAY`) in the posting year. Output dates use ``M/D/YYYY``
without zero padding, which is what the accounting import expects.
"""

from __future__ import annotations

from datetime import date

from .exceptions import InvalidMonthError

MONTHS: tuple[str, ...] = (
    "JANUARY",
    "FEBRUARY",
    "MARCH",
    "APRIL",
    "MAY",
    "JUNE",
    "JULY",
    "AUGUST",
    "SEPTEMBER",
    "OCTOBER",
    "NOVEMBER",
    "DECEMBER",
)

_MONTH_NUMBERS: dict[str, int] = {name: i for i, name in enumerate(MONTHS, start=1)}

TRANSACTION_DAY = 4


def month_number(month_name: str) -> int:
    """Return 1..12 for a canonical month name (case-insensitive)."""

    if not isinstance(month_name, str):
        raise InvalidMonthError(month_name)
    try:
        return _MONTH_NUMBERS[month_name.strip().upper()]
    except KeyError:
        raise InvalidMonthError(month_name) from None


def derive_transaction_date(month_name: str, year: int | None = None) -> date:
    """Map a month name to the form's transaction date.

    ``year`` defaults to the current calendar year.
    """

    if year is None:
        year = date.today().year
    return date(year, month_number(month_name), TRANSACTION_DAY)


def format_tx_date(d: date) -> str:
    return f"{d.month}/{d.day}/{d.year}"


__all__ = [
    "MONTHS",
    "TRANSACTION_DAY",
    "month_number",
    "derive_transaction_date",
    "format_tx_date",
]

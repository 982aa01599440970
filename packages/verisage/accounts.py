"""Account mapping table: form field name → ledger account.

The table is read-only at run time. Several income subtypes intentionally
share one account code (``4550``); each field still has its own description
so the ledger line stays readable. Fields missing from the table are not
ledger items and are skipped by the row generator without error.

:data:`DEFAULT_ACCOUNT_MAP` is the production table. The row generator takes
the table as a keyword argument so callers (and tests) can pass another one
built with :meth:`AccountMap.from_rows`.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Literal

# Account used by the balancing (petty cash) entry.
CASH_ACCOUNT = "1300"
PETTY_CASH_DESCRIPTION = "PETTY CASH"


@dataclass(frozen=True, slots=True)
class AccountMapping:
    field: str
    account: str
    description: str
    is_debit: Literal["Y", "N"]

    @property
    def is_credit(self) -> bool:
        return self.is_debit == "N"


class AccountMap(Mapping[str, AccountMapping]):
    """Immutable field-name → :class:`AccountMapping` lookup."""

    __slots__ = ("_entries",)

    def __init__(self, entries: Iterable[AccountMapping]) -> None:
        table: dict[str, AccountMapping] = {}
        for entry in entries:
            if entry.field in table:
                raise ValueError(f"duplicate account mapping for field {entry.field!r}")
            if entry.is_debit not in ("Y", "N"):
                raise ValueError(
                    f"is_debit must be 'Y' or 'N' for field {entry.field!r}, "
                    f"got {entry.is_debit!r}"
                )
            table[entry.field] = entry
        self._entries = MappingProxyType(table)

    @classmethod
    def from_rows(cls, rows: Iterable[tuple[str, str, str, str]]) -> AccountMap:
        """Build a table from ``(field, account, description, is_debit)`` tuples."""

        return cls(
            AccountMapping(field=f, account=a, description=d, is_debit=flag)  # type: ignore[arg-type]
            for (f, a, d, flag) in rows
        )

    def __getitem__(self, field: str) -> AccountMapping:
        return self._entries[field]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"AccountMap({len(self._entries)} entries)"


# Final field set agreed with finance (derived from the sample import batch
# and the chart of accounts).
DEFAULT_ACCOUNT_MAP = AccountMap.from_rows(
    [
        # Income / credit (IsDebit = N)
        ("offering", "4500", "OFFERING", "N"),
        ("tithe", "4510", "TITHE", "N"),
        ("seed_offering", "4550", "SEED OFFERING", "N"),
        ("thanksgiving", "4550", "THANKSGIVING", "N"),
        ("annual_thanksgiving", "4550", "ANNUAL THANKSGIVING", "N"),
        ("other_project", "4550", "OTHER PROJECTS", "N"),
        ("donation_received", "4560", "DONATION RECEIVED", "N"),
        # Expense / debit (IsDebit = Y)
        ("remittance_25_percent", "5000", "25% REMITTANCE TO NAT. OFFICE", "Y"),
        ("remittance_5_percent_zonal", "5001", "5% REMITTANCE TO ZONAL HEADQUARTERS", "Y"),
        ("remittance_5_percent_hq", "5002", "5% REMITTANCE FOR HQ. BUILDING", "Y"),
        ("pastors_pension", "4020", "PASTOR'S PENSION", "Y"),
        ("medical_welfare", "7120", "MEDICAL WELFARE", "Y"),
        ("office_expenses", "6005", "OFFICE EXPENSES", "Y"),
        ("fuel_and_oil", "8200", "FUEL & OIL", "Y"),
        ("repairs_equipment", "8410", "REPAIRS & MAINTENANCE - EQUIPMENT", "Y"),
        ("donations_gifts_love_offering", "5030", "DONATIONS/GIFTS/LOVE OFFERING", "Y"),
    ]
)


__all__ = [
    "CASH_ACCOUNT",
    "PETTY_CASH_DESCRIPTION",
    "AccountMapping",
    "AccountMap",
    "DEFAULT_ACCOUNT_MAP",
]

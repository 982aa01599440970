"""Form → ledger rows, plus the balancing (petty cash) entry.

``generate_rows`` walks a form record in its natural key order and emits one
:class:`~verisage.models.LedgerRow` per non-zero numeric field that has an
account mapping. ``compute_balancing_row`` then offsets any difference between
credits and debits against the cash account so the form's rows balance:

- credits > debits → balancing row is a debit (``IsDebit = Y``)
- debits > credits → balancing row is a credit (``IsDebit = N``)
- equal totals     → no balancing row

Amounts are accumulated as ``Decimal`` so the balance check is exact.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from .accounts import CASH_ACCOUNT, DEFAULT_ACCOUNT_MAP, PETTY_CASH_DESCRIPTION, AccountMapping
from .dates import derive_transaction_date, format_tx_date
from .exceptions import FormValidationError
from .models import FormRecord, LedgerRow, LedgerRows

_ZERO = Decimal("0")


def _as_amount(value: Any) -> Decimal | None:
    """Return ``value`` as a ``Decimal`` when it is a finite number, else ``None``.

    Booleans and strings are not amounts. Floats go through ``str`` so that
    ``0.1`` stays ``Decimal("0.1")``.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        try:
            return Decimal(str(value))
        except InvalidOperation:  # pragma: no cover - str(float) is always parseable
            return None
    return None


def reference_for(form: FormRecord) -> str:
    """Ledger reference for every row of ``form``: the branch, upper-cased."""

    return str(form["branch"]).strip().upper()


def transaction_date_for(form: FormRecord, *, year: int | None = None) -> str:
    return format_tx_date(derive_transaction_date(form["month"], year))


def generate_rows(
    form: FormRecord,
    *,
    account_map: Mapping[str, AccountMapping] = DEFAULT_ACCOUNT_MAP,
    year: int | None = None,
) -> LedgerRows:
    """Emit one ledger row per non-zero, mapped numeric field of ``form``.

    Row order follows the record's own key order. Unmapped fields and
    non-numeric values are skipped silently. A negative amount is a data
    error (validation admits only ``>= 0``) and raises
    :class:`~verisage.exceptions.FormValidationError`.

    Raises :class:`~verisage.exceptions.InvalidMonthError` when the form's
    month is not a canonical month name.
    """

    tx_date = transaction_date_for(form, year=year)
    reference = reference_for(form)

    rows: list[LedgerRow] = []
    total_credit = _ZERO
    total_debit = _ZERO

    for field, value in form.items():
        entry = account_map.get(field)
        if entry is None:
            continue
        amount = _as_amount(value)
        if amount is None or amount == 0:
            continue
        if amount < 0:
            raise FormValidationError([f"{field}: amount must be >= 0, got {value}"])

        rows.append(
            LedgerRow(
                tx_date=tx_date,
                description=entry.description,
                reference=reference,
                amount=amount,
                account=entry.account,
                is_debit=entry.is_debit,
            )
        )
        if entry.is_credit:
            total_credit += amount
        else:
            total_debit += amount

    return LedgerRows(rows=rows, total_credit=total_credit, total_debit=total_debit)


def compute_balancing_row(
    total_credit: Decimal,
    total_debit: Decimal,
    form: FormRecord,
    *,
    year: int | None = None,
) -> LedgerRow | None:
    """Return the petty cash row that zeroes ``credit - debit``, or ``None``."""

    delta = Decimal(total_credit) - Decimal(total_debit)
    if delta == 0:
        return None

    return LedgerRow(
        tx_date=transaction_date_for(form, year=year),
        description=PETTY_CASH_DESCRIPTION,
        reference=reference_for(form),
        amount=abs(delta),
        account=CASH_ACCOUNT,
        # Surplus income is banked as a debit to cash; a shortfall is a credit.
        is_debit="Y" if delta > 0 else "N",
    )


def ledger_for_form(
    form: FormRecord,
    *,
    account_map: Mapping[str, AccountMapping] = DEFAULT_ACCOUNT_MAP,
    year: int | None = None,
) -> list[LedgerRow]:
    """All rows for one form: mapped rows followed by the balancing row, if any."""

    generated = generate_rows(form, account_map=account_map, year=year)
    rows = list(generated.rows)
    balancing = compute_balancing_row(
        generated.total_credit, generated.total_debit, form, year=year
    )
    if balancing is not None:
        rows.append(balancing)
    return rows


def is_balanced(rows: list[LedgerRow]) -> bool:
    credit = sum((r.amount for r in rows if r.is_credit), _ZERO)
    debit = sum((r.amount for r in rows if not r.is_credit), _ZERO)
    return credit == debit


__all__ = [
    "reference_for",
    "transaction_date_for",
    "generate_rows",
    "compute_balancing_row",
    "ledger_for_form",
    "is_balanced",
]

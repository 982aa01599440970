"""Data models and type aliases for ``verisage``.

A branch form reaches the batch engine as an opaque, mapping-like record (see
:data:`FormRecord`): classification keys (``id``, ``branch``, ``month``,
``zone``), pass-through metadata, and the financial amounts flattened into the
same mapping in their submitted order. The engine walks that mapping; it does
not depend on a fixed schema beyond ``branch``/``month``/``id``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Literal, NamedTuple, TypeAlias

# ---------------------------------------------------------------------------
# Form records
# ---------------------------------------------------------------------------

FormRecord: TypeAlias = Mapping[str, Any]
"""A single branch form as consumed by the batch engine.

Required keys: ``branch`` (str), ``month`` (canonical month name) and ``id``
(opaque identifier, used in file names). Every other key is either a
financial field (numeric value) or metadata that the engine ignores.
"""

FormRecords: TypeAlias = Iterable[FormRecord]

FormStatus: TypeAlias = Literal["unreviewed", "reviewed", "posted"]

# Declaration order of the form's financial fields. Records built from the
# database list their amounts in this order, so ledger rows do too.
INCOME_FIELDS: tuple[str, ...] = (
    "offering",
    "tithe",
    "seed_offering",
    "thanksgiving",
    "annual_thanksgiving",
    "building_project",
    "other_project",
    "crusade_and_missionary",
    "group_ministry_deposits",
    "asset_disposal",
    "interest_income",
    "loan_repaid_by_debtors",
    "loan_received",
    "donation_received",
)

EXPENSE_FIELDS: tuple[str, ...] = (
    "remittance_25_percent",
    "remittance_5_percent_hq",
    "remittance_5_percent_zonal",
    "salaries_and_allowances",
    "pastors_pension",
    "crusade_mission",
    "parsonage_welfare",
    "transport_and_travels",
    "hotel_and_accommodation",
    "donations_gifts_love_offering",
    "entertainment_and_feeding",
    "medical_welfare",
    "church_expenses",
    "office_expenses",
    "rent_parsonage",
    "rent_church_building",
    "telephone_internet",
    "electricity_lighting",
    "fuel_and_oil",
    "license_dues_subscriptions",
    "security",
    "bank_charges",
    "group_expenses",
    "loan_advanced",
    "loan_repaid_to_creditor",
    "repairs_furniture_and_fittings",
    "repairs_equipment",
    "repairs_motor_vehicles",
    "repairs_church_building",
    "repairs_parsonage",
    "building",
    "motor_vehicle",
    "generator",
    "musical_equipment",
    "asaba_project",
    "others",
)

FINANCIAL_FIELDS: tuple[str, ...] = INCOME_FIELDS + EXPENSE_FIELDS

# Metadata keys carried on a record ahead of the amounts.
METADATA_FIELDS: tuple[str, ...] = (
    "zone",
    "branch",
    "resident_pastor",
    "report_prepared_by",
    "official_email",
    "month",
    "confirmation_of_payment",
    "number_of_full_time_pastors",
)

# Receipt references accepted alongside the remittance amounts they support.
RECEIPT_FIELDS: tuple[str, ...] = (
    "remittance_25_percent_receipt",
    "remittance_5_percent_hq_receipt",
)


# ---------------------------------------------------------------------------
# Ledger output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LedgerRow:
    """One transaction line of a batch file, in output column order.

    ``amount`` is always positive. Tax and project columns are not modeled and
    keep their neutral constants.
    """

    tx_date: str
    description: str
    reference: str
    amount: Decimal
    account: str
    is_debit: Literal["Y", "N"]
    use_tax: str = "N"
    tax_type: str = "0"
    tax_account: str = ""
    tax_amount: str = ""
    project: str = ""

    @property
    def is_credit(self) -> bool:
        return self.is_debit == "N"


class LedgerRows(NamedTuple):
    """Rows generated from one form plus the running totals per side."""

    rows: list[LedgerRow]
    total_credit: Decimal
    total_debit: Decimal


@dataclass(frozen=True, slots=True)
class BatchFile:
    """Serialized batch content for a single form."""

    content: str
    filename: str
    form_id: str


@dataclass(frozen=True, slots=True)
class SkippedForm:
    form_id: str
    reason: str


@dataclass(frozen=True, slots=True)
class BulkBatchFile:
    """Serialized batch content for several forms.

    ``form_ids`` lists the forms whose rows made it into ``content`` in output
    order; ``skipped`` lists forms left out because they could not be
    converted.
    """

    content: str
    filename: str
    batch_id: str
    form_ids: tuple[str, ...]
    skipped: tuple[SkippedForm, ...] = ()


__all__ = [
    "FormRecord",
    "FormRecords",
    "FormStatus",
    "INCOME_FIELDS",
    "EXPENSE_FIELDS",
    "FINANCIAL_FIELDS",
    "METADATA_FIELDS",
    "RECEIPT_FIELDS",
    "LedgerRow",
    "LedgerRows",
    "BatchFile",
    "SkippedForm",
    "BulkBatchFile",
]

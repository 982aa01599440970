"""Form submission validation.

Branch forms arrive as flat key/value payloads (form posts or JSON files).
This module cleans them up before anything is stored:

- ``filter_filled_fields``: drop ``None`` and empty-string values.
- ``canonical_field_name``: accept the legacy camelCase names
  (``seedOffering``, ``remittance5PercentHQ``...) next to snake_case.
- ``validate_form_submission``: split the payload into metadata, receipt
  references and amounts and validate it with :class:`FormSubmission`.

Unknown keys with numeric values are kept as amounts (the row generator
skips fields it has no account for); other unknown keys are dropped.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .dates import MONTHS
from .exceptions import FormValidationError
from .logging_setup import get_logger
from .models import FINANCIAL_FIELDS, METADATA_FIELDS, RECEIPT_FIELDS

_logger = get_logger("verisage.validation")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _camel(snake: str) -> str:
    head, *rest = snake.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


_SPECIAL_LEGACY_NAMES: dict[str, str] = {
    "remittance5PercentHQ": "remittance_5_percent_hq",
    "remittance5PercentHQReceipt": "remittance_5_percent_hq_receipt",
    # Older clients posted this spelling for the crusade/mission expense line.
    "crusadeMissionary": "crusade_mission",
}

_LEGACY_NAMES: dict[str, str] = {
    _camel(name): name for name in (*FINANCIAL_FIELDS, *METADATA_FIELDS, *RECEIPT_FIELDS)
} | _SPECIAL_LEGACY_NAMES

# System-managed keys; never accepted from a payload.
_RESERVED = frozenset(
    {
        "id",
        "status",
        "amounts",
        "receipts",
        "batch_id",
        "batch_file_url",
        "submitted_at",
        "reviewed_at",
        "posted_at",
        "created_at",
        "updated_at",
    }
)
_METADATA = frozenset(METADATA_FIELDS)
_RECEIPTS = frozenset(RECEIPT_FIELDS)
_FINANCIAL = frozenset(FINANCIAL_FIELDS)


def canonical_field_name(name: str) -> str:
    return _LEGACY_NAMES.get(name, name)


def filter_filled_fields(data: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``data`` without ``None``/empty-string values, order preserved."""

    filled: dict[str, Any] = {}
    for key, value in data.items():
        if value is None:
            continue
        if isinstance(value, str) and value.strip() == "":
            continue
        filled[key] = value
    return filled


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float | Decimal) and not isinstance(value, bool)


class FormSubmission(BaseModel):
    """Validated branch form, ready to persist."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    branch: str = Field(min_length=1)
    month: str
    zone: str | None = None
    resident_pastor: str | None = None
    report_prepared_by: str | None = None
    official_email: str | None = None
    confirmation_of_payment: Literal["YES", "NO"] | None = None
    number_of_full_time_pastors: int = Field(default=0, ge=0)
    receipts: dict[str, str] = Field(default_factory=dict)
    # Financial fields in record order; keys are canonical field names.
    amounts: dict[str, Decimal] = Field(default_factory=dict)

    @field_validator("month", mode="before")
    @classmethod
    def _month_canonical(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = v.strip().upper()
            if v not in MONTHS:
                raise ValueError(f"must be one of {', '.join(MONTHS)}")
        return v

    @field_validator("confirmation_of_payment", mode="before")
    @classmethod
    def _confirmation_upper(cls, v: Any) -> Any:
        return v.strip().upper() if isinstance(v, str) else v

    @field_validator("official_email")
    @classmethod
    def _email_shape(cls, v: str | None) -> str | None:
        if v is not None and not _EMAIL_RE.match(v):
            raise ValueError("must be a valid email address")
        return v

    @field_validator("amounts")
    @classmethod
    def _amounts_non_negative(cls, v: dict[str, Decimal]) -> dict[str, Decimal]:
        for name, amount in v.items():
            if not amount.is_finite():
                raise ValueError(f"{name} must be a finite number")
            if amount < 0:
                raise ValueError(f"{name} must be greater than or equal to 0")
        return v

    def amounts_json(self) -> dict[str, str]:
        """Amounts as exact decimal strings for JSON storage."""

        return {name: format(amount, "f") for name, amount in self.amounts.items()}


def _split_payload(data: Mapping[str, Any]) -> dict[str, Any]:
    metadata: dict[str, Any] = {}
    receipts: dict[str, Any] = {}
    known_amounts: dict[str, Any] = {}
    extra_amounts: dict[str, Any] = {}

    for raw_key, value in data.items():
        key = canonical_field_name(str(raw_key))
        if key in _RESERVED:
            _logger.debug("validation:reserved_field_ignored field=%s", raw_key)
        elif key in _METADATA:
            metadata[key] = value
        elif key in _RECEIPTS:
            receipts[key] = value
        elif key in _FINANCIAL:
            known_amounts[key] = value
        elif _is_number(value):
            extra_amounts[key] = value
        else:
            _logger.debug("validation:dropped_field field=%s", raw_key)

    # Declared fields first, in declaration order; unknown numeric fields after.
    amounts = {name: known_amounts[name] for name in FINANCIAL_FIELDS if name in known_amounts}
    amounts.update(extra_amounts)

    payload: dict[str, Any] = dict(metadata)
    payload["receipts"] = receipts
    payload["amounts"] = amounts
    return payload


def _format_errors(err: ValidationError) -> list[str]:
    messages: list[str] = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", ()) if p != "__root__")
        messages.append(f"{loc}: {e.get('msg')}" if loc else str(e.get("msg")))
    return messages


def validate_form_submission(data: Mapping[str, Any]) -> FormSubmission:
    """Validate a raw submission payload.

    Raises :class:`~verisage.exceptions.FormValidationError` listing every
    problem found.
    """

    payload = _split_payload(filter_filled_fields(data))
    try:
        return FormSubmission.model_validate(payload)
    except ValidationError as e:
        raise FormValidationError(_format_errors(e)) from e


__all__ = [
    "FormSubmission",
    "canonical_field_name",
    "filter_filled_fields",
    "validate_form_submission",
]

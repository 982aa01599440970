"""Public interface for the ``verisage`` package.

Branch financial forms in, accounting batch files out. This module re-exports
the API functions, the pure batch engine and the exception family as the
stable import surface; there is no runtime logic here.
"""

from .accounts import DEFAULT_ACCOUNT_MAP, AccountMap, AccountMapping
from .api import (
    delete_form,
    get_form,
    list_branches,
    list_forms,
    post_form,
    post_forms_bulk,
    review_form,
    submit_form,
)
from .batch import create_batch, create_bulk_batch, serialize_bulk, serialize_single
from .exceptions import (
    EmptyBatchError,
    FormNotFoundError,
    FormStateError,
    FormValidationError,
    InvalidMonthError,
    SerializationIOError,
    VerisageError,
)
from .ledger import compute_balancing_row, generate_rows, ledger_for_form
from .models import BatchFile, BulkBatchFile, FormRecord, LedgerRow

__all__ = [
    # API
    "submit_form",
    "get_form",
    "list_forms",
    "review_form",
    "post_form",
    "post_forms_bulk",
    "delete_form",
    "list_branches",
    # Batch engine
    "generate_rows",
    "compute_balancing_row",
    "ledger_for_form",
    "serialize_single",
    "serialize_bulk",
    "create_batch",
    "create_bulk_batch",
    # Accounts and models
    "AccountMap",
    "AccountMapping",
    "DEFAULT_ACCOUNT_MAP",
    "BatchFile",
    "BulkBatchFile",
    "FormRecord",
    "LedgerRow",
    # Errors
    "VerisageError",
    "InvalidMonthError",
    "SerializationIOError",
    "EmptyBatchError",
    "FormValidationError",
    "FormNotFoundError",
    "FormStateError",
]

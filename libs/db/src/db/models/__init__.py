"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the branch form domain models used by ``verisage``.
"""

from .forms import FORM_STATUSES, Base, BatchRun, BranchForm

__all__ = [
    "Base",
    "BatchRun",
    "BranchForm",
    "FORM_STATUSES",
]

# inventory_ledger/batch/__init__.py

from .nightly_job import run_nightly_job, run_reorder_evaluation, summarize_expiring_batches

__all__ = [
    'run_nightly_job',
    'run_reorder_evaluation',
    'summarize_expiring_batches'
]

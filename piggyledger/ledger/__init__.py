"""Mini README: Server-side device ledger.

The ``store`` module owns the per-device records; ``service`` validates and
applies increments and resets against an injected store. Both are
dependency-free so they can be exercised without the web layer.
"""

from .service import LedgerService, validate_amount, validate_device_id
from .store import LedgerRecord, LedgerState, LedgerStore

__all__ = [
    "LedgerRecord",
    "LedgerService",
    "LedgerState",
    "LedgerStore",
    "validate_amount",
    "validate_device_id",
]

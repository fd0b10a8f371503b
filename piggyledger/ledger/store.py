"""Mini README: In-memory per-device ledger store.

Structure:
    * LedgerState - immutable ``{device_id, total, version}`` snapshot.
    * LedgerRecord - mutable record held per device identifier.
    * LedgerStore - owns the device map and applies mutations atomically.

Records are created lazily on the first mutation and live for the process
lifetime; nothing is persisted. Each device has its own lock so a mutation
and its version bump form one indivisible step, while unrelated devices never
contend. Idempotency receipts let a duplicated submission replay the state it
produced originally instead of being applied twice.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

from ..logging_utils import get_logger

LOGGER = get_logger(__name__)

Amount = Union[int, float]


@dataclass(frozen=True, slots=True)
class LedgerState:
    """Post-operation view of a device ledger."""

    device_id: str
    total: Amount = 0
    version: int = 0

    def as_dict(self) -> Dict[str, object]:
        """Export the state using the wire field names."""

        return {"deviceId": self.device_id, "total": self.total, "version": self.version}


@dataclass(slots=True)
class LedgerRecord:
    """Running total and event version for one device."""

    total: Amount = 0
    version: int = 0
    receipts: "OrderedDict[str, LedgerState]" = field(default_factory=OrderedDict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


class LedgerStore:
    """Map device identifiers to ledger records."""

    def __init__(self, receipt_capacity: int = 64) -> None:
        if receipt_capacity < 0:
            raise ValueError("receipt_capacity must be zero or positive")
        self._records: Dict[str, LedgerRecord] = {}
        self._registry_lock = threading.Lock()
        self._receipt_capacity = receipt_capacity
        LOGGER.debug("Ledger store initialised (receipt capacity %s)", receipt_capacity)

    def _record_for(self, device_id: str) -> LedgerRecord:
        with self._registry_lock:
            record = self._records.get(device_id)
            if record is None:
                record = LedgerRecord()
                self._records[device_id] = record
                LOGGER.debug("Created ledger record for device %s", device_id)
            return record

    def snapshot(self, device_id: str) -> LedgerState:
        """Return the current state, or the zero record for an unseen device."""

        record = self._records.get(device_id)
        if record is None:
            return LedgerState(device_id=device_id)
        with record.lock:
            return LedgerState(device_id=device_id, total=record.total, version=record.version)

    def version(self, device_id: str) -> int:
        """Return only the event version for ``device_id``."""

        record = self._records.get(device_id)
        return record.version if record is not None else 0

    def apply(
        self,
        device_id: str,
        mutation: Callable[[Amount], Amount],
        *,
        idempotency_key: Optional[str] = None,
    ) -> LedgerState:
        """Replace the total with ``mutation(total)`` and bump the version.

        When ``idempotency_key`` has already been applied to this device the
        recorded state is returned and nothing changes.
        """

        record = self._record_for(device_id)
        with record.lock:
            if idempotency_key is not None and idempotency_key in record.receipts:
                LOGGER.info(
                    "Replaying receipt %s for device %s", idempotency_key, device_id
                )
                return record.receipts[idempotency_key]

            record.total = mutation(record.total)
            record.version += 1
            state = LedgerState(device_id=device_id, total=record.total, version=record.version)

            if idempotency_key is not None and self._receipt_capacity:
                record.receipts[idempotency_key] = state
                while len(record.receipts) > self._receipt_capacity:
                    record.receipts.popitem(last=False)
            return state

    def device_ids(self) -> List[str]:
        """Return identifiers of devices that hold a record."""

        with self._registry_lock:
            return sorted(self._records)

"""Mini README: Ledger service validating and applying device mutations.

Structure:
    * validate_device_id / validate_amount - argument checks shared with clients.
    * LedgerService - increment, reset and the two read operations.

Validation always runs before the store is touched, so a rejected request can
never leave a partial mutation behind. The service returns ``LedgerState``
snapshots that the web layer serialises directly.
"""

from __future__ import annotations

import math
from numbers import Real
from typing import Any, Optional

from ..errors import InvalidArgument
from ..logging_utils import get_logger
from .store import Amount, LedgerState, LedgerStore

LOGGER = get_logger(__name__)


def validate_device_id(device_id: Any) -> str:
    """Return ``device_id`` when it is a non-empty string."""

    if not isinstance(device_id, str) or not device_id.strip():
        raise InvalidArgument("deviceId required")
    return device_id


def validate_amount(amount: Any) -> Amount:
    """Return ``amount`` when it is a finite real number greater than zero."""

    if amount is None:
        raise InvalidArgument("amount required")
    if isinstance(amount, bool) or not isinstance(amount, Real):
        raise InvalidArgument(f"amount must be a number, got {type(amount).__name__}")
    try:
        finite = math.isfinite(amount)
    except OverflowError as error:
        raise InvalidArgument("amount is too large") from error
    if not finite:
        raise InvalidArgument("amount must be finite")
    if amount <= 0:
        raise InvalidArgument("amount must be greater than zero")
    if isinstance(amount, int):
        return int(amount)
    return float(amount)


def _checked_sum(total: Amount, amount: Amount) -> Amount:
    """Add inside the store lock, refusing sums that leave the float range."""

    try:
        result = total + amount
    except OverflowError as error:
        raise InvalidArgument("total would exceed the representable range") from error
    if isinstance(result, float) and not math.isfinite(result):
        raise InvalidArgument("total would exceed the representable range")
    return result


class LedgerService:
    """Apply ledger operations against an injected store."""

    def __init__(self, store: Optional[LedgerStore] = None) -> None:
        self.store = store if store is not None else LedgerStore()

    def increment(
        self, device_id: Any, amount: Any, *, idempotency_key: Optional[str] = None
    ) -> LedgerState:
        """Add ``amount`` to the device total and advance its version."""

        try:
            device_id = validate_device_id(device_id)
            amount = validate_amount(amount)
        except InvalidArgument as error:
            LOGGER.warning("Rejected increment for device %r: %s", device_id, error)
            raise
        state = self.store.apply(
            device_id,
            lambda total: _checked_sum(total, amount),
            idempotency_key=idempotency_key,
        )
        LOGGER.info(
            "Device %s +%s -> total=%s version=%s",
            device_id,
            amount,
            state.total,
            state.version,
        )
        return state

    def reset(self, device_id: Any, *, idempotency_key: Optional[str] = None) -> LedgerState:
        """Collapse the device total to zero; the version still advances."""

        try:
            device_id = validate_device_id(device_id)
        except InvalidArgument as error:
            LOGGER.warning("Rejected reset: %s", error)
            raise
        state = self.store.apply(device_id, lambda _total: 0, idempotency_key=idempotency_key)
        LOGGER.info("Device %s reset -> version=%s", device_id, state.version)
        return state

    def get_state(self, device_id: Any) -> LedgerState:
        """Return ``{total, version}`` without mutating anything."""

        device_id = validate_device_id(device_id)
        state = self.store.snapshot(device_id)
        LOGGER.debug("State read for %s: %s", device_id, state)
        return state

    def get_version(self, device_id: Any) -> int:
        """Return the event version only."""

        return self.store.version(validate_device_id(device_id))

"""Mini README: Tests for the ledger service validation and mutation rules.

Structure:
    * scenario test - the canonical increment/increment/reset/reject sequence.
    * validation tests - rejected inputs leave total and version untouched.
    * read tests - zero record for unknown devices and version consistency.
"""

from __future__ import annotations

import math

import pytest

from piggyledger.errors import ErrorKind, InvalidArgument
from piggyledger.ledger import LedgerService, LedgerState, LedgerStore


@pytest.fixture
def service() -> LedgerService:
    return LedgerService(LedgerStore())


def test_increment_reset_scenario(service: LedgerService) -> None:
    """Follow the reference sequence from an empty ledger."""

    assert service.increment("d1", 100) == LedgerState("d1", 100, 1)
    assert service.increment("d1", 50) == LedgerState("d1", 150, 2)
    assert service.reset("d1") == LedgerState("d1", 0, 3)

    with pytest.raises(InvalidArgument):
        service.increment("d1", -5)
    assert service.get_state("d1") == LedgerState("d1", 0, 3)


def test_total_is_sum_and_version_counts_increments(service: LedgerService) -> None:
    service.increment("d1", 3)
    before = service.get_version("d1")
    amounts = [1, 2.5, 40, 0.25, 7]
    for amount in amounts:
        service.increment("d1", amount)

    state = service.get_state("d1")
    assert state.total == pytest.approx(3 + sum(amounts))
    assert state.version == before + len(amounts)


@pytest.mark.parametrize("prior", [0, 1, 999])
def test_reset_always_advances_version_by_one(service: LedgerService, prior: int) -> None:
    for _ in range(prior):
        service.increment("d1", 10)
    before = service.get_version("d1")

    state = service.reset("d1")

    assert state.total == 0
    assert state.version == before + 1


def test_repeated_reset_is_not_a_version_noop(service: LedgerService) -> None:
    service.reset("d1")
    service.reset("d1")

    assert service.get_state("d1") == LedgerState("d1", 0, 2)


@pytest.mark.parametrize(
    "amount",
    [None, 0, -5, -0.01, "100", True, float("nan"), math.inf, [1], {"amount": 1}],
)
def test_invalid_amounts_leave_state_unchanged(service: LedgerService, amount: object) -> None:
    service.increment("d1", 10)

    with pytest.raises(InvalidArgument) as excinfo:
        service.increment("d1", amount)

    assert excinfo.value.kind is ErrorKind.INVALID_ARGUMENT
    assert service.get_state("d1") == LedgerState("d1", 10, 1)


@pytest.mark.parametrize("device_id", [None, "", "   ", 42])
def test_missing_device_id_is_rejected(service: LedgerService, device_id: object) -> None:
    with pytest.raises(InvalidArgument):
        service.increment(device_id, 10)
    with pytest.raises(InvalidArgument):
        service.reset(device_id)
    with pytest.raises(InvalidArgument):
        service.get_state(device_id)
    assert service.store.device_ids() == []


def test_unknown_device_reads_zero_record(service: LedgerService) -> None:
    assert service.get_state("unknown-device") == LedgerState("unknown-device", 0, 0)
    assert service.get_version("unknown-device") == 0


def test_version_read_matches_full_state(service: LedgerService) -> None:
    service.increment("d1", 1)
    service.reset("d1")
    service.increment("d1", 2)

    assert service.get_version("d1") == service.get_state("d1").version == 3


def test_idempotency_key_prevents_double_apply(service: LedgerService) -> None:
    first = service.increment("d1", 25, idempotency_key="retry-1")
    second = service.increment("d1", 25, idempotency_key="retry-1")

    assert first == second == LedgerState("d1", 25, 1)


def test_service_builds_default_store() -> None:
    service = LedgerService()

    assert isinstance(service.store, LedgerStore)
    assert service.increment("x", 1).version == 1


def test_oversized_integer_amount_is_invalid(service: LedgerService) -> None:
    with pytest.raises(InvalidArgument):
        service.increment("d1", int("9" * 400))

    assert service.get_state("d1") == LedgerState("d1", 0, 0)


def test_total_overflowing_float_range_is_rejected(service: LedgerService) -> None:
    service.increment("d1", 1.5e308)

    with pytest.raises(InvalidArgument):
        service.increment("d1", 1.5e308)

    assert service.get_state("d1") == LedgerState("d1", 1.5e308, 1)

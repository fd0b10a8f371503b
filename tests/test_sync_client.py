"""Mini README: Tests for the optimistic single-flight sync client.

Structure:
    * end-to-end tests - the client against the real app via ASGITransport.
    * rollback tests - transport failures and malformed bodies restore the
      previous displayed total exactly.
    * gating tests - offline, invalid amount, busy and confirmation paths
      never reach the network.
"""

from __future__ import annotations

import asyncio
from typing import Callable, List

import httpx
import pytest

from piggyledger.client import (
    ActionKind,
    ActionResult,
    ClientPhase,
    OptimisticSyncClient,
    Outcome,
    coerce_amount,
)
from piggyledger.configuration import PiggyLedgerSettings
from piggyledger.errors import (
    ErrorKind,
    InvalidArgument,
    MalformedResponse,
    TransportFailure,
    Unreachable,
)
from piggyledger.interface import create_application
from piggyledger.ledger import LedgerService, LedgerStore

BASE_URL = "http://ledger.test"


def _settings() -> PiggyLedgerSettings:
    return PiggyLedgerSettings(device_id="d1", server_url=BASE_URL, request_timeout_seconds=2.0)


def _client(transport: httpx.AsyncBaseTransport, **kwargs) -> OptimisticSyncClient:
    http_client = httpx.AsyncClient(transport=transport)
    return OptimisticSyncClient(http_client=http_client, settings=_settings(), **kwargs)


def _asgi_client(service: LedgerService, **kwargs) -> OptimisticSyncClient:
    return _client(httpx.ASGITransport(app=create_application(service)), **kwargs)


def _recording(
    respond: Callable[[httpx.Request], httpx.Response], calls: List[httpx.Request]
) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return respond(request)

    return httpx.MockTransport(handler)


class RecordingFeedback:
    """Feedback channel capturing cues."""

    def __init__(self) -> None:
        self.cues: List[tuple] = []

    def success(self, result: ActionResult) -> None:
        self.cues.append(("success", result.action))

    def failure(self, result: ActionResult) -> None:
        self.cues.append(("failure", result.action))


class ExplodingFeedback:
    def success(self, result: ActionResult) -> None:
        raise RuntimeError("speaker unplugged")

    def failure(self, result: ActionResult) -> None:
        raise RuntimeError("speaker unplugged")


# ---------------------------------------------------------------------------
# End to end against the real application
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_increment_adopts_server_total() -> None:
    service = LedgerService(LedgerStore())
    service.increment("d1", 40)
    client = _asgi_client(service)

    # The display starts at 0, so the speculative guess (25) is wrong; the
    # server's 65 must replace it rather than be added to it.
    result = await client.increment(25)

    assert result.ok
    assert result.phase is ClientPhase.RECONCILED
    assert client.displayed_total == 65
    assert client.version == 2
    assert client.phase is ClientPhase.IDLE
    assert client.busy is False
    assert client.status.ok is True
    await client.aclose()


@pytest.mark.asyncio
async def test_full_scenario_through_client() -> None:
    service = LedgerService(LedgerStore())
    client = _asgi_client(service)

    assert (await client.increment(100)).version == 1
    assert (await client.increment("50")).total == 150
    reset = await client.reset()
    assert (reset.total, reset.version) == (0, 3)

    rejected = await client.increment(-5)
    assert rejected.outcome is Outcome.FAILED
    assert isinstance(rejected.error, InvalidArgument)
    assert service.get_state("d1").version == 3
    await client.aclose()


@pytest.mark.asyncio
async def test_refresh_reads_full_state() -> None:
    service = LedgerService(LedgerStore())
    service.increment("d1", 12)
    client = _asgi_client(service)

    result = await client.refresh()

    assert result.ok and result.action is ActionKind.REFRESH
    assert (client.displayed_total, client.version) == (12, 1)
    await client.aclose()


@pytest.mark.asyncio
async def test_each_mutation_sends_a_fresh_idempotency_key() -> None:
    calls: List[httpx.Request] = []
    transport = _recording(lambda request: httpx.Response(200, json={"total": 1, "version": 1}), calls)
    client = _client(transport)

    await client.increment(1)
    await client.reset()

    keys = [request.headers.get("Idempotency-Key") for request in calls]
    assert all(keys) and keys[0] != keys[1]
    await client.aclose()


# ---------------------------------------------------------------------------
# Rollback
# ---------------------------------------------------------------------------


async def _seeded_client(
    respond: Callable[[httpx.Request], httpx.Response], **kwargs
) -> OptimisticSyncClient:
    """Client whose displayed total was set to 0.1 by a successful refresh."""

    state = {"seeded": False}

    def handler(request: httpx.Request) -> httpx.Response:
        if not state["seeded"]:
            state["seeded"] = True
            return httpx.Response(200, json={"total": 0.1, "version": 4})
        return respond(request)

    client = _client(httpx.MockTransport(handler), **kwargs)
    assert (await client.refresh()).ok
    return client


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "respond, error_type",
    [
        (lambda request: httpx.Response(200, json={"ok": True}), MalformedResponse),
        (lambda request: httpx.Response(200, json={"total": "150"}), MalformedResponse),
        (lambda request: httpx.Response(200, text="not json"), MalformedResponse),
        (lambda request: httpx.Response(200, content=b""), MalformedResponse),
        (lambda request: httpx.Response(500, text="boom"), TransportFailure),
        (lambda request: httpx.Response(400, json={"error": "nope"}), TransportFailure),
    ],
)
async def test_increment_rolls_back_bit_for_bit(respond, error_type) -> None:
    client = await _seeded_client(respond)
    before = client.displayed_total

    result = await client.increment(0.2)

    assert result.outcome is Outcome.FAILED
    assert result.phase is ClientPhase.ROLLED_BACK
    assert isinstance(result.error, error_type)
    assert client.displayed_total == before
    assert client.version == 4
    assert client.busy is False and client.phase is ClientPhase.IDLE
    assert client.status.ok is False
    await client.aclose()


@pytest.mark.asyncio
async def test_transport_exception_rolls_back() -> None:
    def respond(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = await _seeded_client(respond)

    result = await client.increment(5)

    assert result.error is not None and result.error.kind is ErrorKind.TRANSPORT_FAILURE
    assert client.displayed_total == 0.1
    await client.aclose()


@pytest.mark.asyncio
async def test_timeout_releases_busy_lock() -> None:
    def respond(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    client = await _seeded_client(respond)

    result = await client.reset()

    assert isinstance(result.error, TransportFailure)
    assert "timed out" in result.message
    assert client.displayed_total == 0.1
    assert client.busy is False
    await client.aclose()


@pytest.mark.asyncio
async def test_refresh_failure_keeps_display() -> None:
    client = await _seeded_client(lambda request: httpx.Response(503, text="down"))

    result = await client.refresh()

    assert result.outcome is Outcome.FAILED
    assert client.displayed_total == 0.1
    assert client.status.ok is False
    await client.aclose()


@pytest.mark.asyncio
async def test_speculative_total_is_visible_while_in_flight() -> None:
    release = asyncio.Event()
    seen: List[float] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append(client.displayed_total)
        await release.wait()
        return httpx.Response(503)

    client = _client(httpx.MockTransport(handler))
    task = asyncio.create_task(client.increment(30))
    while not seen:
        await asyncio.sleep(0)

    assert seen == [30]
    assert client.busy and client.phase is ClientPhase.BUSY
    release.set()
    await task
    assert client.displayed_total == 0
    await client.aclose()


# ---------------------------------------------------------------------------
# Gating
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_second_action_while_busy_has_no_effect() -> None:
    release = asyncio.Event()
    calls: List[str] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        await release.wait()
        return httpx.Response(200, json={"total": 10, "version": 1})

    client = _client(httpx.MockTransport(handler))
    first = asyncio.create_task(client.increment(10))
    while not calls:
        await asyncio.sleep(0)

    for attempt in (client.increment(99), client.reset(), client.refresh()):
        ignored = await attempt
        assert ignored.outcome is Outcome.IGNORED
        assert client.busy is True
        assert client.displayed_total == 10

    release.set()
    result = await first
    assert result.ok
    assert calls == ["/api/savings"]
    assert client.busy is False
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("action", ["increment", "reset", "refresh"])
async def test_offline_actions_send_nothing(action: str) -> None:
    calls: List[httpx.Request] = []
    transport = _recording(lambda request: httpx.Response(200, json={"total": 1}), calls)
    feedback = RecordingFeedback()
    client = _client(transport, is_online=lambda: False, feedback=feedback)

    method = getattr(client, action)
    result = await (method(10) if action == "increment" else method())

    assert calls == []
    assert isinstance(result.error, Unreachable)
    assert client.status.text.startswith("Offline")
    assert client.busy is False
    assert client.displayed_total == 0
    assert feedback.cues == [("failure", ActionKind(action))]
    await client.aclose()


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, -1, "", "abc", None, True, float("nan"), float("inf")])
async def test_invalid_amount_rejected_locally(amount: object) -> None:
    calls: List[httpx.Request] = []
    client = _client(_recording(lambda request: httpx.Response(200), calls))

    result = await client.increment(amount)

    assert calls == []
    assert result.error is not None and result.error.kind is ErrorKind.INVALID_ARGUMENT
    assert result.phase is ClientPhase.IDLE
    assert client.displayed_total == 0
    await client.aclose()


async def _decline_later(prompt: str) -> bool:
    return False


def _decline_now(prompt: str) -> bool:
    return False


@pytest.mark.asyncio
@pytest.mark.parametrize("confirm", [_decline_now, _decline_later])
async def test_declined_reset_sends_nothing(confirm: Callable[[str], object]) -> None:
    calls: List[httpx.Request] = []
    client = _client(
        _recording(lambda request: httpx.Response(200, json={"total": 0}), calls),
        confirm=confirm,
    )

    result = await client.reset()

    assert result.outcome is Outcome.CANCELLED
    assert calls == []
    await client.aclose()


@pytest.mark.asyncio
async def test_action_started_during_confirmation_blocks_the_reset() -> None:
    """An increment that wins the race during confirmation keeps the single slot."""

    confirm_entered = asyncio.Event()
    confirm_release = asyncio.Event()
    request_release = asyncio.Event()
    paths: List[str] = []
    in_flight = 0
    peak = 0

    async def confirm(prompt: str) -> bool:
        confirm_entered.set()
        await confirm_release.wait()
        return True

    async def handler(request: httpx.Request) -> httpx.Response:
        nonlocal in_flight, peak
        paths.append(request.url.path)
        in_flight += 1
        peak = max(peak, in_flight)
        await request_release.wait()
        in_flight -= 1
        return httpx.Response(200, json={"total": 10, "version": 1})

    client = _client(httpx.MockTransport(handler), confirm=confirm)
    reset_task = asyncio.create_task(client.reset())
    await confirm_entered.wait()

    increment_task = asyncio.create_task(client.increment(10))
    while not paths:
        await asyncio.sleep(0)

    confirm_release.set()
    reset_result = await reset_task
    assert reset_result.outcome is Outcome.IGNORED
    assert client.displayed_total == 10

    request_release.set()
    increment_result = await increment_task

    assert increment_result.ok
    assert paths == ["/api/savings"]
    assert peak == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_oversized_amount_is_rejected_not_raised() -> None:
    calls: List[httpx.Request] = []
    client = _client(_recording(lambda request: httpx.Response(200), calls))

    result = await client.increment("9" * 400)

    assert result.outcome is Outcome.FAILED
    assert isinstance(result.error, InvalidArgument)
    assert calls == []
    assert client.displayed_total == 0
    await client.aclose()


@pytest.mark.asyncio
async def test_feedback_channel_receives_cues() -> None:
    feedback = RecordingFeedback()
    client = _asgi_client(LedgerService(LedgerStore()), feedback=feedback)

    await client.increment(5)
    await client.increment(0)

    assert feedback.cues == [
        ("success", ActionKind.INCREMENT),
        ("failure", ActionKind.INCREMENT),
    ]
    await client.aclose()


@pytest.mark.asyncio
async def test_broken_feedback_channel_does_not_affect_ledger() -> None:
    service = LedgerService(LedgerStore())
    client = _asgi_client(service, feedback=ExplodingFeedback())

    result = await client.increment(7)

    assert result.ok
    assert client.displayed_total == 7
    assert service.get_state("d1").total == 7
    await client.aclose()


def test_coerce_amount_accepts_numeric_text() -> None:
    assert coerce_amount(" 120 ") == 120
    assert coerce_amount("2.5") == 2.5
    assert coerce_amount(3) == 3
    with pytest.raises(InvalidArgument):
        coerce_amount("-3")


def test_client_requires_device_id() -> None:
    with pytest.raises(InvalidArgument):
        OptimisticSyncClient("  ", settings=_settings())

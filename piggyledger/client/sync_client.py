"""Mini README: Optimistic, single-flight client for the device ledger.

Structure:
    * ActionKind / Outcome / ClientPhase - enums describing an action.
    * StatusMessage / ActionResult - what the caller renders after an action.
    * FeedbackChannel - optional best-effort success/failure cue hooks.
    * coerce_amount - local amount validation mirroring the server rules.
    * OptimisticSyncClient - increment, reset and refresh coroutines.

Each action moves Idle -> Busy -> (Reconciled | RolledBack) -> Idle. While
one action is Busy any other action is dropped without effect. Mutations show
a speculative total immediately; the server's total replaces it on success
and the previous total is restored exactly on failure. Actions never raise:
every failure becomes an ``ActionResult`` plus a status message.
"""

from __future__ import annotations

import asyncio
import inspect
import math
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

import httpx

from ..configuration import PiggyLedgerSettings, get_settings
from ..errors import (
    InvalidArgument,
    LedgerError,
    MalformedResponse,
    TransportFailure,
    Unreachable,
)
from ..ledger import LedgerState, validate_device_id
from ..ledger.store import Amount
from ..logging_utils import get_logger
from .transport import LedgerHttpApi

LOGGER = get_logger(__name__)

OFFLINE_MESSAGE = "Offline. Cannot reach the server."


class ActionKind(str, Enum):
    """User-initiated ledger actions."""

    INCREMENT = "increment"
    RESET = "reset"
    REFRESH = "refresh"


class Outcome(str, Enum):
    """How an action ended."""

    SUCCESS = "success"
    FAILED = "failed"
    IGNORED = "ignored"
    CANCELLED = "cancelled"


class ClientPhase(str, Enum):
    """Single-flight state machine phases."""

    IDLE = "idle"
    BUSY = "busy"
    RECONCILED = "reconciled"
    ROLLED_BACK = "rolled_back"


@dataclass(frozen=True, slots=True)
class StatusMessage:
    """The single human-readable status slot."""

    text: str = ""
    ok: bool = True


@dataclass(frozen=True, slots=True)
class ActionResult:
    """Result of one client action."""

    action: ActionKind
    outcome: Outcome
    phase: ClientPhase
    total: Amount
    version: Optional[int] = None
    error: Optional[LedgerError] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


class FeedbackChannel(Protocol):
    """Visual or audio cues triggered after an action settles."""

    def success(self, result: ActionResult) -> None:
        ...

    def failure(self, result: ActionResult) -> None:
        ...


ConfirmCallback = Callable[[str], Union[bool, Awaitable[bool]]]


def coerce_amount(value: Any) -> Amount:
    """Turn user input into a positive finite amount or raise ``InvalidArgument``.

    Numeric strings are accepted the way a form field would deliver them.
    """

    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidArgument("Enter a valid amount.")
        try:
            value = int(text)
        except ValueError:
            try:
                value = float(text)
            except ValueError as error:
                raise InvalidArgument("Enter a valid amount.") from error
    if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument("Enter a valid amount.")
    try:
        finite = math.isfinite(value)
    except OverflowError as error:
        raise InvalidArgument("Enter a valid amount.") from error
    if not finite or value <= 0:
        raise InvalidArgument("Enter a valid amount.")
    return value


class OptimisticSyncClient:
    """Interactive ledger session for one device."""

    def __init__(
        self,
        device_id: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        is_online: Optional[Callable[[], bool]] = None,
        confirm: Optional[ConfirmCallback] = None,
        feedback: Optional[FeedbackChannel] = None,
        settings: Optional[PiggyLedgerSettings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.device_id = validate_device_id(device_id or settings.device_id)
        self._api = LedgerHttpApi(
            self.device_id,
            base_url=base_url or settings.server_url,
            timeout=timeout or settings.request_timeout_seconds,
            http_client=http_client,
        )
        self._is_online = is_online or (lambda: True)
        self._confirm = confirm
        self._feedback = feedback
        self._busy = False
        self._phase = ClientPhase.IDLE
        self._displayed_total: Amount = 0
        self._version: Optional[int] = None
        self._status = StatusMessage()
        self.last_result: Optional[ActionResult] = None

    async def __aenter__(self) -> "OptimisticSyncClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._api.aclose()

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def phase(self) -> ClientPhase:
        return self._phase

    @property
    def displayed_total(self) -> Amount:
        return self._displayed_total

    @property
    def version(self) -> Optional[int]:
        """Last version confirmed by the server, if any."""

        return self._version

    @property
    def status(self) -> StatusMessage:
        return self._status

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def increment(self, amount: Any) -> ActionResult:
        """Add ``amount`` optimistically, reconciling with the server total."""

        action = ActionKind.INCREMENT
        if self._busy:
            return self._ignored(action)
        if not self._is_online():
            return self._refuse(action, Unreachable(OFFLINE_MESSAGE))
        try:
            value = coerce_amount(amount)
        except InvalidArgument as error:
            return self._refuse(action, error)

        return await self._mutate(
            action,
            speculative_total=lambda previous: previous + value,
            request=lambda key: self._api.increment(value, idempotency_key=key),
            pending_text="Sending...",
            success_text=f"+{value} added.",
            label="Send",
        )

    async def reset(self) -> ActionResult:
        """Reset the device total after a confirmation gate."""

        action = ActionKind.RESET
        if self._busy:
            return self._ignored(action)
        if not self._is_online():
            return self._refuse(action, Unreachable(OFFLINE_MESSAGE))
        if not await self._confirmed("Really reset the total?"):
            LOGGER.info("Reset for %s cancelled at confirmation", self.device_id)
            return self._settle(
                ActionResult(
                    action=action,
                    outcome=Outcome.CANCELLED,
                    phase=ClientPhase.IDLE,
                    total=self._displayed_total,
                    version=self._version,
                ),
                notify=False,
            )
        # Another action may have started while the confirmation was pending.
        if self._busy:
            return self._ignored(action)

        return await self._mutate(
            action,
            speculative_total=lambda _previous: 0,
            request=lambda key: self._api.reset(idempotency_key=key),
            pending_text="Resetting...",
            success_text="Reset complete.",
            label="Reset",
        )

    async def refresh(self) -> ActionResult:
        """Read the authoritative total; failures leave the display untouched."""

        action = ActionKind.REFRESH
        if self._busy:
            return self._ignored(action)
        if not self._is_online():
            return self._refuse(action, Unreachable(OFFLINE_MESSAGE))

        self._enter_busy("Loading...")
        try:
            state = await self._api.get_state()
        except Exception as error:
            failure = self._as_ledger_error(error)
            result = ActionResult(
                action=action,
                outcome=Outcome.FAILED,
                phase=ClientPhase.ROLLED_BACK,
                total=self._displayed_total,
                version=self._version,
                error=failure,
                message=self._failure_text("Load", failure),
            )
        else:
            self._adopt(state)
            result = ActionResult(
                action=action,
                outcome=Outcome.SUCCESS,
                phase=ClientPhase.RECONCILED,
                total=self._displayed_total,
                version=self._version,
                message="Updated.",
            )
        finally:
            self._leave_busy()
        return self._settle(result)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        action: ActionKind,
        *,
        speculative_total: Callable[[Amount], Amount],
        request: Callable[[str], Awaitable[LedgerState]],
        pending_text: str,
        success_text: str,
        label: str,
    ) -> ActionResult:
        previous_total = self._displayed_total
        self._enter_busy(pending_text)
        self._displayed_total = speculative_total(previous_total)
        LOGGER.debug(
            "%s speculative total %s -> %s", action.value, previous_total, self._displayed_total
        )
        try:
            state = await request(uuid.uuid4().hex)
        except asyncio.CancelledError:
            self._displayed_total = previous_total
            raise
        except Exception as error:
            failure = self._as_ledger_error(error)
            self._displayed_total = previous_total
            LOGGER.warning("%s rolled back to %s: %s", action.value, previous_total, failure)
            result = ActionResult(
                action=action,
                outcome=Outcome.FAILED,
                phase=ClientPhase.ROLLED_BACK,
                total=self._displayed_total,
                version=self._version,
                error=failure,
                message=self._failure_text(label, failure),
            )
        else:
            self._adopt(state)
            result = ActionResult(
                action=action,
                outcome=Outcome.SUCCESS,
                phase=ClientPhase.RECONCILED,
                total=self._displayed_total,
                version=self._version,
                message=success_text,
            )
        finally:
            self._leave_busy()
        return self._settle(result)

    async def _confirmed(self, prompt: str) -> bool:
        if self._confirm is None:
            return True
        try:
            answer = self._confirm(prompt)
            if inspect.isawaitable(answer):
                answer = await answer
        except Exception:
            LOGGER.exception("Confirmation callback failed; treating as declined")
            return False
        return bool(answer)

    def _adopt(self, state: LedgerState) -> None:
        self._displayed_total = state.total
        self._version = state.version

    def _enter_busy(self, text: str) -> None:
        self._busy = True
        self._phase = ClientPhase.BUSY
        self._status = StatusMessage(text, ok=True)

    def _leave_busy(self) -> None:
        self._busy = False
        self._phase = ClientPhase.IDLE

    def _ignored(self, action: ActionKind) -> ActionResult:
        LOGGER.debug("Ignoring %s while another action is in flight", action.value)
        return ActionResult(
            action=action,
            outcome=Outcome.IGNORED,
            phase=self._phase,
            total=self._displayed_total,
            version=self._version,
        )

    def _refuse(self, action: ActionKind, error: LedgerError) -> ActionResult:
        LOGGER.warning("%s refused locally: %s", action.value, error)
        return self._settle(
            ActionResult(
                action=action,
                outcome=Outcome.FAILED,
                phase=ClientPhase.IDLE,
                total=self._displayed_total,
                version=self._version,
                error=error,
                message=error.message,
            )
        )

    def _settle(self, result: ActionResult, *, notify: bool = True) -> ActionResult:
        if result.message:
            self._status = StatusMessage(result.message, ok=result.ok)
        self.last_result = result
        if notify and self._feedback is not None:
            cue = self._feedback.success if result.ok else self._feedback.failure
            try:
                cue(result)
            except Exception:
                LOGGER.exception("Feedback channel raised during %s", result.action.value)
        return result

    @staticmethod
    def _as_ledger_error(error: Exception) -> LedgerError:
        if isinstance(error, LedgerError):
            return error
        LOGGER.exception("Unexpected error during ledger request")
        return TransportFailure(str(error) or type(error).__name__)

    @staticmethod
    def _failure_text(label: str, error: LedgerError) -> str:
        if isinstance(error, MalformedResponse):
            return f"{label} reached the server but the response was unexpected:\n{error.message}"
        return f"{label} error:\n{error.message}"

"""Mini README: Reference implementation of the passive version poller.

Structure:
    * PollResult - what a single poll observed.
    * VersionPoller - checks the plain-text version and fetches state on change.

Embedded devices follow the same contract: read the cheap version scalar on
a fixed interval and only request the JSON state when it differs from the
last one seen. A lower version than before means the volatile server
restarted; it is logged and treated as a change.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

import httpx

from ..configuration import PiggyLedgerSettings, get_settings
from ..errors import LedgerError
from ..ledger import LedgerState, validate_device_id
from ..ledger.store import Amount
from ..logging_utils import get_logger
from .transport import LedgerHttpApi

LOGGER = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class PollResult:
    """Observation from one poll."""

    version: int
    changed: bool
    restarted: bool = False
    state: Optional[LedgerState] = None


class VersionPoller:
    """Poll a device's version and keep a local copy of its total."""

    def __init__(
        self,
        device_id: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        interval: Optional[float] = None,
        timeout: Optional[float] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        settings: Optional[PiggyLedgerSettings] = None,
    ) -> None:
        settings = settings or get_settings()
        self.device_id = validate_device_id(device_id or settings.device_id)
        self.interval = interval if interval is not None else settings.poll_interval_seconds
        self._api = LedgerHttpApi(
            self.device_id,
            base_url=base_url or settings.server_url,
            timeout=timeout or settings.request_timeout_seconds,
            http_client=http_client,
        )
        self.last_version: Optional[int] = None
        self.total: Optional[Amount] = None
        self.full_fetches = 0

    async def aclose(self) -> None:
        await self._api.aclose()

    async def poll_once(self) -> PollResult:
        """Check the version and fetch full state only when it moved."""

        version = await self._api.get_version()
        if self.last_version is not None and version == self.last_version:
            return PollResult(version=version, changed=False)

        restarted = self.last_version is not None and version < self.last_version
        if restarted:
            LOGGER.warning(
                "Version for %s dropped from %s to %s; assuming server restart",
                self.device_id,
                self.last_version,
                version,
            )
        state = await self._api.get_state()
        self.full_fetches += 1
        self.last_version = state.version
        self.total = state.total
        LOGGER.info(
            "Device %s changed: total=%s version=%s", self.device_id, state.total, state.version
        )
        return PollResult(version=state.version, changed=True, restarted=restarted, state=state)

    async def run(
        self,
        *,
        stop_event: Optional[asyncio.Event] = None,
        max_polls: Optional[int] = None,
        on_change: Optional[Callable[[LedgerState], None]] = None,
    ) -> int:
        """Poll until ``stop_event`` is set or ``max_polls`` is reached.

        Errors from a single poll are logged and polling continues. Returns
        the number of polls performed.
        """

        stop_event = stop_event or asyncio.Event()
        polls = 0
        while not stop_event.is_set():
            try:
                result = await self.poll_once()
            except LedgerError as error:
                LOGGER.warning("Poll for %s failed: %s", self.device_id, error)
            else:
                if result.changed and on_change is not None and result.state is not None:
                    on_change(result.state)
            polls += 1
            if max_polls is not None and polls >= max_polls:
                break
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        return polls

"""Mini README: Client side of the ledger protocol.

``sync_client`` holds the optimistic single-flight session used by
interactive front ends; ``poller`` is the reference passive poller; both talk
to the server through ``transport.LedgerHttpApi``.
"""

from .poller import PollResult, VersionPoller
from .sync_client import (
    ActionKind,
    ActionResult,
    ClientPhase,
    FeedbackChannel,
    OptimisticSyncClient,
    Outcome,
    StatusMessage,
    coerce_amount,
)
from .transport import LedgerHttpApi, parse_state_payload

__all__ = [
    "ActionKind",
    "ActionResult",
    "ClientPhase",
    "FeedbackChannel",
    "LedgerHttpApi",
    "OptimisticSyncClient",
    "Outcome",
    "PollResult",
    "StatusMessage",
    "VersionPoller",
    "coerce_amount",
    "parse_state_payload",
]

"""Mini README: Core package initializer for piggyledger.

piggyledger keeps a running savings total per device behind a small HTTP
API. The ``ledger`` package holds the authoritative store and service,
``interface`` serves it over FastAPI and ``client`` contains the optimistic
interactive client and the passive version poller.
"""

from .logging_utils import get_logger

__all__ = ["get_logger"]

"""Mini README: FastAPI application exposing the device ledger.

Structure:
    * create_application - application factory wiring routes to a service.
    * Write routes - ``POST /api/savings`` and ``POST /api/reset``.
    * Query routes - ``GET /api/device`` (JSON) and ``GET /api/latest-savings``
      (bare integer for the embedded poller).

The ledger service is injected so tests can build isolated applications;
``create_application()`` without arguments builds a fresh in-memory store
sized from the configured receipt capacity. Mutations accept an optional
``Idempotency-Key`` header that replays the original result when repeated.
Both service rejections and request-model validation failures are answered
with HTTP 400 and ``{"ok": false, "error": ...}``.
"""

from __future__ import annotations

from typing import Dict, Optional

from fastapi import FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse

from ..configuration import get_settings
from ..errors import InvalidArgument
from ..ledger import LedgerService, LedgerState, LedgerStore
from ..logging_utils import get_logger
from .models import ResetRequest, SavingsRequest

LOGGER = get_logger(__name__)


def _mutation_payload(state: LedgerState) -> Dict[str, object]:
    payload: Dict[str, object] = {"ok": True}
    payload.update(state.as_dict())
    payload["latestEventId"] = state.version
    return payload


def _describe_validation_error(error: RequestValidationError) -> str:
    """Flatten the first validation problem into a short message."""

    problems = error.errors()
    if not problems:
        return "invalid request"
    first = problems[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message


def create_application(service: Optional[LedgerService] = None) -> FastAPI:
    """Create the FastAPI application with ledger routes."""

    app = FastAPI(title="piggyledger", version="0.1.0")
    if service is None:
        service = LedgerService(LedgerStore(receipt_capacity=get_settings().receipt_capacity))
    app.state.ledger_service = service

    @app.exception_handler(InvalidArgument)
    async def invalid_argument_handler(request: Request, error: InvalidArgument) -> JSONResponse:
        """Report service rejections as HTTP 400 without touching the ledger."""

        LOGGER.debug("Invalid request to %s: %s", request.url.path, error)
        return JSONResponse({"ok": False, "error": error.message}, status_code=400)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, error: RequestValidationError
    ) -> JSONResponse:
        """Report malformed bodies with the same 400 shape as service rejections."""

        message = _describe_validation_error(error)
        LOGGER.debug("Malformed request to %s: %s", request.url.path, message)
        return JSONResponse({"ok": False, "error": message}, status_code=400)

    @app.post("/api/savings")
    async def add_savings(
        payload: Optional[SavingsRequest] = None,
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ) -> JSONResponse:
        """Add an amount to a device total."""

        payload = payload or SavingsRequest()
        state = service.increment(
            payload.device_id,
            payload.amount,
            idempotency_key=idempotency_key,
        )
        return JSONResponse(_mutation_payload(state))

    @app.post("/api/reset")
    async def reset_savings(
        payload: Optional[ResetRequest] = None,
        device_id: Optional[str] = Query(None, alias="deviceId"),
        idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    ) -> JSONResponse:
        """Reset a device total to zero, advancing its version."""

        body_device = payload.device_id if payload is not None else None
        state = service.reset(body_device or device_id, idempotency_key=idempotency_key)
        return JSONResponse(_mutation_payload(state))

    @app.get("/api/device")
    async def device_state(device_id: Optional[str] = Query(None, alias="deviceId")) -> JSONResponse:
        """Return the full ledger state for the interactive client."""

        return JSONResponse(service.get_state(device_id).as_dict())

    @app.get("/api/latest-savings", response_class=PlainTextResponse)
    async def latest_savings(
        device_id: Optional[str] = Query(None, alias="deviceId")
    ) -> PlainTextResponse:
        """Return the bare event version so constrained pollers skip JSON parsing."""

        try:
            version = service.get_version(device_id)
        except InvalidArgument as error:
            return PlainTextResponse(error.message, status_code=400)
        return PlainTextResponse(str(version))

    return app

"""
FastAPI server — admin endpoints for toggling and querying event status.

Architecture:
  - Route handlers are plain functions, so FastAPI runs them in its
    threadpool and a slow poller replacement never blocks the event loop
  - The EventStatusService is handed in from main.py via set_service()
  - /mock-api/... stands in for the upstream score service in development
"""

import asyncio
import logging
import random
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tracker.registry import InvalidEventIdError
from tracker.service import EventStatusService

logger = logging.getLogger("event_tracker.admin")

app = FastAPI(title="Live Event Tracker")

_service: EventStatusService | None = None
_mock_upstream = False


def set_service(service: EventStatusService) -> None:
    global _service
    _service = service


def set_mock_upstream(enabled: bool) -> None:
    global _mock_upstream
    _mock_upstream = enabled


def _require_service() -> EventStatusService:
    if _service is None:
        raise HTTPException(503, "Event status service not initialized")
    return _service


def _status_body(event_id: str, status: str, message: str) -> dict:
    return {"eventId": event_id, "status": status, "message": message}


@app.exception_handler(RequestValidationError)
async def _bad_request(request: Request, exc: RequestValidationError) -> JSONResponse:
    reasons = "; ".join(str(e.get("msg", "invalid value")) for e in exc.errors())
    return JSONResponse(
        status_code=400,
        content=_status_body(None, "error", f"Invalid request: {reasons}"),
    )


# ── Event status API ──────────────────────────────────────────────────────────

class StatusPayload(BaseModel):
    eventId: Optional[str] = None
    live: Optional[bool] = None


@app.post("/events/status")
def update_event_status(body: StatusPayload):
    service = _require_service()
    logger.info("Received event status update request: %s", body)

    if not body.eventId or not body.eventId.strip():
        return JSONResponse(
            _status_body(body.eventId, "error", "Event ID is required"), status_code=400
        )
    if body.live is None:
        return JSONResponse(
            _status_body(body.eventId, "error", "Status is required"), status_code=400
        )

    try:
        service.update_status(body.eventId, body.live)
    except InvalidEventIdError as exc:
        return JSONResponse(_status_body(body.eventId, "error", str(exc)), status_code=400)
    except Exception as exc:
        logger.error("Failed to update event status: %s", exc, exc_info=True)
        return JSONResponse(
            _status_body(body.eventId, "error", f"Failed to update event status: {exc}"),
            status_code=500,
        )

    return JSONResponse(_status_body(
        body.eventId,
        "live" if body.live else "not live",
        "Event status updated successfully",
    ))


@app.get("/events/active-count")
def active_event_count():
    count = _require_service().active_count()
    logger.debug("Active event count: %d", count)
    return JSONResponse(count)


@app.get("/events/{event_id}/status")
def get_event_status(event_id: str):
    logger.debug("Getting event status for eventId=%s", event_id)
    state = _require_service().get_status(event_id)
    if state is None:
        return JSONResponse(
            _status_body(event_id, "unknown", "Event not found"), status_code=404
        )
    return JSONResponse(
        _status_body(event_id, state.status, "Event status retrieved successfully")
    )


@app.get("/health")
def health():
    return JSONResponse(_require_service().health())


# ── Mock upstream ─────────────────────────────────────────────────────────────

@app.get("/mock-api/events/{event_id}/score")
async def mock_score(event_id: str):
    """Random "home:away" score after a short simulated delay."""
    if not _mock_upstream:
        raise HTTPException(404, "Mock upstream disabled")
    logger.debug("Mock API called for eventId=%s", event_id)
    await asyncio.sleep(random.uniform(0.1, 0.3))
    score = f"{random.randint(0, 4)}:{random.randint(0, 4)}"
    return JSONResponse({"eventId": event_id, "currentScore": score})

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse

from booking_engine import schemas
from booking_engine.database import Base, SessionLocal, engine
from booking_engine.errors import BookingError, Conflict, InvalidTransition
from booking_engine.repository import PageRequest
from booking_engine.service import BookingService, Caller

from .auth import admin_only, get_current_caller
from .logging_config import setup_logging

setup_logging()
logger = logging.getLogger(__name__)

SERVICE_NAME = "bookings"

booking_service = BookingService(SessionLocal)


def get_booking_service() -> BookingService:
    """
    Return the process-wide booking service.

    Declared as a dependency so tests can swap in a service bound to
    their own database and clock.
    """
    return booking_service


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    yield


app = FastAPI(title="Resource Allocator Service", version="1.0.0", lifespan=lifespan)
router_v1 = APIRouter(prefix="/api/v1")


def error_content(request: Request, status_code: int, detail) -> dict:
    return {
        "service": SERVICE_NAME,
        "path": request.url.path,
        "method": request.method,
        "status_code": status_code,
        "detail": detail,
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=error_content(request, exc.status_code, exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(BookingError)
async def booking_exception_handler(request: Request, exc: BookingError):
    content = error_content(request, exc.status_code, exc.message)
    content["error"] = exc.kind
    if isinstance(exc, Conflict):
        content["suggestions"] = [s.isoformat() for s in exc.suggestions]
    if isinstance(exc, InvalidTransition):
        content["required"] = list(exc.required)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content=error_content(request, 500, "Internal server error"),
    )


@app.get("/")
def root():
    """
    Health-check endpoint for the allocator service.

    Returns
    -------
    dict
        A small JSON payload indicating that the service is running.
    """
    return {"service": SERVICE_NAME, "status": "running"}


# ---------- Create booking ----------


@router_v1.post(
    "/bookings",
    response_model=schemas.BookingRead,
    status_code=status.HTTP_201_CREATED,
)
def create_booking(
    booking_in: schemas.BookingCreate,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
):
    """
    Request a booking for the authenticated user.

    Behavior
    --------
    - The booking is stored as ``pending`` until an admin decides on it.
    - The owner is taken from the JWT claims, never from the payload.
    - If an approved booking already holds part of the window, the
      response is 409 and carries alternative start times.

    Parameters
    ----------
    booking_in : BookingCreate
        Resource, time window and purpose of the request.
    caller : Caller
        Identity decoded from the bearer token.
    service : BookingService
        Booking engine.

    Returns
    -------
    BookingRead
        The newly created booking.
    """
    return service.create_booking(booking_in, caller)


# ---------- My bookings (current user) ----------


@router_v1.get("/bookings/me", response_model=schemas.BookingPage)
def list_my_bookings(
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
):
    """
    List bookings that belong to the authenticated user, latest start first.

    Parameters
    ----------
    status_filter : Optional[str]
        Only return bookings in this status.
    page : int
        1-based page number.
    limit : int
        Page size, capped at 100.

    Returns
    -------
    BookingPage
        The requested page plus pagination metadata.
    """
    return service.list_user_bookings(caller, status_filter, PageRequest.of(page, limit))


# ---------- Admin: list all bookings ----------


@router_v1.get("/bookings", response_model=schemas.BookingPage)
def list_all_bookings(
    resource_id: Optional[int] = Query(default=None, ge=1),
    user_id: Optional[str] = Query(default=None),
    status_filter: Optional[str] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1),
    caller: Caller = Depends(admin_only),
    service: BookingService = Depends(get_booking_service),
):
    """
    Admin: view all bookings with optional filters, newest request first.

    Access
    ------
    - Allowed roles: admin.
    """
    filters = {"resource_id": resource_id, "user_id": user_id, "status": status_filter}
    return service.list_bookings(caller, filters, PageRequest.of(page, limit))


# ---------- Slot suggestions ----------


@router_v1.get("/bookings/suggestions", response_model=schemas.SlotSuggestions)
def suggest_slots(
    resource_id: int = Query(..., ge=1),
    start_time: datetime = Query(...),
    duration_hours: int = Query(default=1, ge=1),
    _: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
):
    """
    Suggest free, policy-compliant start times for a resource.

    Raises
    ------
    NoSlotsFound
        Mapped to 404 when nothing is free within the search horizon.
    """
    suggestions = service.suggest_slots(resource_id, start_time, timedelta(hours=duration_hours))
    return schemas.SlotSuggestions(
        resource_id=resource_id,
        requested_start=service.policy.localize(start_time),
        duration_hours=duration_hours,
        suggestions=suggestions,
    )


# ---------- Single booking ----------


@router_v1.get("/bookings/{booking_id}", response_model=schemas.BookingRead)
def get_booking(
    booking_id: int,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id, caller)


@router_v1.put("/bookings/{booking_id}/status", response_model=schemas.BookingRead)
def update_booking_status(
    booking_id: int,
    update: schemas.BookingStatusUpdate,
    caller: Caller = Depends(admin_only),
    service: BookingService = Depends(get_booking_service),
):
    """
    Admin decision on a pending booking.

    Behavior
    --------
    - ``approved`` approves the booking and rejects every pending request
      overlapping it, atomically.
    - ``rejected`` stores the optional ``rejection_reason``.
    - Any other status is refused with 400.

    Returns
    -------
    BookingRead
        The decided booking.
    """
    return service.update_status(booking_id, update, caller)


@router_v1.post("/bookings/{booking_id}/cancel", response_model=schemas.BookingRead)
def cancel_booking(
    booking_id: int,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
):
    """
    Cancel one of the caller's own pending or approved bookings.

    The record is kept with status ``cancelled``.
    """
    return service.cancel(booking_id, caller)


@router_v1.post("/bookings/{booking_id}/check-in", response_model=schemas.BookingRead)
def check_in_booking(
    booking_id: int,
    caller: Caller = Depends(get_current_caller),
    service: BookingService = Depends(get_booking_service),
):
    """
    Check in to an approved booking.

    Accepted from the start time until the grace window closes; earlier
    attempts get 400 and later ones 403.
    """
    return service.check_in(booking_id, caller)


app.include_router(router_v1)

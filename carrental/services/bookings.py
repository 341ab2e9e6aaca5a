"""Booking conflict detection, creation and cancellation.

Two inclusive ranges ``[s1, e1]`` and ``[s2, e2]`` overlap iff
``s1 <= e2 and s2 <= e1``. Ranges that share a single day overlap.

Creation is serialized per vehicle: the first statement of the write
transaction bumps ``vehicles.booking_seq`` for the requested vehicle. That
write holds the vehicle's row lock (PostgreSQL) or the database write lock
(SQLite) until commit, so a concurrent request for the same vehicle only runs
its conflict query after this one has committed or rolled back.
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from prometheus_client import Counter
from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import AppError, ConflictError, NotFoundError, StoreError, ValidationError
from ..models import BOOKING_CANCELLED, BOOKING_CONFIRMED, Booking, Vehicle
from ..utils.notify import notify


log = logging.getLogger("carrental.bookings")

BOOKINGS = Counter("carrental_bookings_total", "Booking operations by outcome", ["outcome"])

CENTS = Decimal("0.01")


def overlaps(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    return a_start <= b_end and b_start <= a_end


def inclusive_days(start: date, end: date) -> int:
    return (end - start).days + 1


def quote_total(price_per_day: Decimal, start: date, end: date) -> Decimal:
    return (Decimal(price_per_day) * inclusive_days(start, end)).quantize(CENTS, rounding=ROUND_HALF_UP)


def conflict_clause(vehicle_id: int, start: date, end: date):
    """SQL form of ``overlaps`` against the vehicle's live bookings."""
    return and_(
        Booking.vehicle_id == vehicle_id,
        Booking.status != BOOKING_CANCELLED,
        Booking.start_date <= end,
        Booking.end_date >= start,
    )


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_zero_amount(value: Any) -> bool:
    try:
        return Decimal(str(value).strip()) == 0
    except InvalidOperation:
        return False


def _as_date(value: date | str, field: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise ValidationError("invalid date", {"field": field, "value": value})


def _as_amount(value: Decimal | str | float | int) -> Decimal:
    try:
        return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError("invalid amount", {"field": "total_price", "value": str(value)})


def validate_request(user_id, vehicle_id, start_date, end_date, total_price) -> tuple[date, date]:
    fields = {
        "user_id": user_id,
        "vehicle_id": vehicle_id,
        "start_date": start_date,
        "end_date": end_date,
        "total_price": total_price,
    }
    missing = [name for name, value in fields.items() if _is_blank(value)]
    # a zero quote is an unfilled form field, not a price
    if "total_price" not in missing and _is_zero_amount(total_price):
        missing.append("total_price")
    if missing:
        raise ValidationError("missing field", {"fields": missing})
    start = _as_date(start_date, "start_date")
    end = _as_date(end_date, "end_date")
    if end < start:
        raise ValidationError("invalid range", {"start_date": start.isoformat(), "end_date": end.isoformat()})
    return start, end


def create_booking(db: Session, user_id: int, vehicle_id: int, start_date, end_date, total_price) -> Booking:
    """Commit a CONFIRMED booking, or raise without changing anything.

    Raises ``ValidationError`` (missing field, invalid range, wrong quote),
    ``NotFoundError`` (unknown vehicle), ``ConflictError`` (overlap with a live
    booking) or ``StoreError``.
    """
    try:
        start, end = validate_request(user_id, vehicle_id, start_date, end_date, total_price)
    except ValidationError:
        BOOKINGS.labels("rejected").inc()
        raise
    try:
        locked = db.execute(
            update(Vehicle)
            .where(Vehicle.id == vehicle_id)
            .values(booking_seq=Vehicle.booking_seq + 1)
            .execution_options(synchronize_session=False)
        )
        if locked.rowcount == 0:
            raise NotFoundError("vehicle not found", {"vehicle_id": vehicle_id})

        price_per_day = db.execute(select(Vehicle.price_per_day).where(Vehicle.id == vehicle_id)).scalar_one()
        expected = quote_total(price_per_day, start, end)
        quoted = _as_amount(total_price)
        if quoted <= 0 or quoted != expected:
            raise ValidationError(
                "total_price does not match quote",
                {"field": "total_price", "expected": str(expected), "days": inclusive_days(start, end)},
            )

        clash = db.execute(select(Booking.id).where(conflict_clause(vehicle_id, start, end)).limit(1)).scalar_one_or_none()
        if clash is not None:
            raise ConflictError(
                "vehicle unavailable for requested dates",
                {"vehicle_id": vehicle_id, "conflicting_booking_id": clash},
            )

        booking = Booking(
            user_id=user_id,
            vehicle_id=vehicle_id,
            start_date=start,
            end_date=end,
            total_price=expected,
            status=BOOKING_CONFIRMED,
        )
        db.add(booking)
        db.flush()
        db.commit()
    except AppError as exc:
        db.rollback()
        BOOKINGS.labels("conflict" if isinstance(exc, ConflictError) else "rejected").inc()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        BOOKINGS.labels("error").inc()
        raise StoreError("booking could not be stored", str(exc)) from exc

    BOOKINGS.labels("created").inc()
    log.info("booking created id=%s vehicle=%s range=%s..%s", booking.id, vehicle_id, start, end)
    notify("booking.created", {"booking_id": booking.id, "vehicle_id": vehicle_id, "user_id": user_id})
    return booking


def cancel_booking(db: Session, booking_id: int, user_id: int | None = None) -> Booking:
    """CONFIRMED -> CANCELLED as one compare-and-set; re-cancelling is rejected."""
    stmt = update(Booking).where(Booking.id == booking_id, Booking.status != BOOKING_CANCELLED)
    if user_id is not None:
        stmt = stmt.where(Booking.user_id == user_id)
    try:
        res = db.execute(stmt.values(status=BOOKING_CANCELLED).execution_options(synchronize_session=False))
        if res.rowcount != 1:
            raise NotFoundError("booking not found or already cancelled", {"booking_id": booking_id})
        db.commit()
    except AppError:
        db.rollback()
        raise
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError("booking could not be cancelled", str(exc)) from exc

    BOOKINGS.labels("cancelled").inc()
    log.info("booking cancelled id=%s", booking_id)
    notify("booking.cancelled", {"booking_id": booking_id})
    return db.get(Booking, booking_id, populate_existing=True)


def list_bookings(db: Session, user_id: int | None = None) -> list[tuple[Booking, Vehicle | None]]:
    q = db.query(Booking, Vehicle).outerjoin(Vehicle, Vehicle.id == Booking.vehicle_id)
    if user_id is not None:
        q = q.filter(Booking.user_id == user_id)
    return q.order_by(Booking.created_at.desc(), Booking.id.desc()).all()


def booked_ranges(db: Session, vehicle_id: int, from_date: date | None = None, to_date: date | None = None) -> list[Booking]:
    if db.get(Vehicle, vehicle_id) is None:
        raise NotFoundError("vehicle not found", {"vehicle_id": vehicle_id})
    q = db.query(Booking).filter(Booking.vehicle_id == vehicle_id, Booking.status != BOOKING_CANCELLED)
    if from_date:
        q = q.filter(Booking.end_date >= from_date)
    if to_date:
        q = q.filter(Booking.start_date <= to_date)
    return q.order_by(Booking.start_date.asc()).all()

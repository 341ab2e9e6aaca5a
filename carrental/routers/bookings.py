from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import Booking, User, Vehicle
from ..schemas import BookingCreateIn, BookingOut, BookingsListOut
from ..services import bookings as booking_service


router = APIRouter(prefix="/bookings", tags=["bookings"])


def booking_out(b: Booking, v: Vehicle | None = None) -> BookingOut:
    return BookingOut(
        id=b.id, user_id=b.user_id, vehicle_id=b.vehicle_id, start_date=b.start_date, end_date=b.end_date,
        total_price=b.total_price, status=b.status, created_at=b.created_at,
        vehicle_make=v.make if v else None, vehicle_model=v.model if v else None, vehicle_year=v.year if v else None,
    )


@router.post("", response_model=BookingOut, status_code=status.HTTP_201_CREATED)
def create_booking(payload: BookingCreateIn, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    # The owner always comes from the session, never from the request body
    b = booking_service.create_booking(
        db,
        user_id=user.id,
        vehicle_id=payload.vehicle_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
        total_price=payload.total_price,
    )
    return booking_out(b, db.get(Vehicle, b.vehicle_id))


@router.get("", response_model=BookingsListOut)
def my_bookings(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = booking_service.list_bookings(db, user_id=user.id)
    return BookingsListOut(bookings=[booking_out(b, v) for (b, v) in rows])


@router.post("/{booking_id}/cancel", response_model=BookingOut)
def cancel_booking(booking_id: int, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    b = booking_service.cancel_booking(db, booking_id, user_id=user.id)
    return booking_out(b, db.get(Vehicle, b.vehicle_id))

from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..models import Vehicle
from ..schemas import AvailabilityOut, BookedRangeOut, VehicleOut
from ..services import bookings as booking_service
from ..services import catalog


router = APIRouter(prefix="/vehicles", tags=["vehicles"])


def vehicle_out(v: Vehicle, busy: set[int]) -> VehicleOut:
    return VehicleOut(
        id=v.id, make=v.make, model=v.model, year=v.year, category=v.category, seats=v.seats,
        fuel_type=v.fuel_type, transmission=v.transmission, price_per_day=v.price_per_day,
        image_url=v.image_url, description=v.description, features=v.features,
        is_available=v.id not in busy, created_at=v.created_at,
    )


@router.get("", response_model=list[VehicleOut])
def list_vehicles(
    start_date: date | None = None,
    end_date: date | None = None,
    make: str | None = None,
    db: Session = Depends(get_db),
):
    rows = catalog.list_vehicles(db, start_date=start_date, end_date=end_date, make=make)
    busy = catalog.busy_vehicle_ids(db)
    return [vehicle_out(v, busy) for v in rows]


@router.get("/{vehicle_id}", response_model=VehicleOut)
def vehicle_details(vehicle_id: int, db: Session = Depends(get_db)):
    v = catalog.get_vehicle(db, vehicle_id)
    return vehicle_out(v, catalog.busy_vehicle_ids(db))


@router.get("/{vehicle_id}/availability", response_model=AvailabilityOut)
def vehicle_availability(
    vehicle_id: int,
    from_date: date | None = None,
    to_date: date | None = None,
    db: Session = Depends(get_db),
):
    rows = booking_service.booked_ranges(db, vehicle_id, from_date=from_date, to_date=to_date)
    return AvailabilityOut(
        vehicle_id=vehicle_id,
        booked=[BookedRangeOut(booking_id=b.id, start_date=b.start_date, end_date=b.end_date) for b in rows],
    )

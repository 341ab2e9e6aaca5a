from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..schemas import BookingsListOut, VehicleCreateIn, VehicleOut
from ..services import bookings as booking_service
from ..services import catalog
from .bookings import booking_out
from .vehicles import vehicle_out


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/vehicles", response_model=VehicleOut, status_code=status.HTTP_201_CREATED)
def create_vehicle(payload: VehicleCreateIn, db: Session = Depends(get_db)):
    v = catalog.create_vehicle(db, payload)
    return vehicle_out(v, busy=set())


@router.post("/seed")
def seed(db: Session = Depends(get_db)):
    created = catalog.seed_vehicles(db)
    return {"detail": "seeded" if created else "exists", "vehicles": created}


@router.get("/bookings", response_model=BookingsListOut)
def all_bookings(user_id: int | None = None, db: Session = Depends(get_db)):
    rows = booking_service.list_bookings(db, user_id=user_id)
    return BookingsListOut(bookings=[booking_out(b, v) for (b, v) in rows])

import logging
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..errors import NotFoundError, StoreError, ValidationError
from ..models import BOOKING_CANCELLED, Booking, Vehicle
from ..schemas import VehicleCreateIn
from .bookings import conflict_clause


log = logging.getLogger("carrental.catalog")

DEMO_VEHICLES = [
    {
        "make": "Toyota", "model": "Camry", "year": 2024, "price_per_day": Decimal("50.00"),
        "category": "Sedan", "seats": 5, "fuel_type": "Petrol", "transmission": "automatic",
        "image_url": "https://images.unsplash.com/photo-1621007947382-bb3c3968e3bb?auto=format&fit=crop&w=800&q=80",
        "description": "Reliable and comfortable sedan.",
        "features": ["Bluetooth", "Backup Camera", "Cruise Control"],
    },
    {
        "make": "Tesla", "model": "Model 3", "year": 2023, "price_per_day": Decimal("85.00"),
        "category": "Electric", "seats": 5, "fuel_type": "Electric", "transmission": "automatic",
        "image_url": "https://images.unsplash.com/photo-1560958089-b8a1929cea89?auto=format&fit=crop&w=800&q=80",
        "description": "Electric performance and style.",
        "features": ["Autopilot", "Glass Roof", "Supercharging"],
    },
    {
        "make": "Ford", "model": "Mustang", "year": 2022, "price_per_day": Decimal("95.00"),
        "category": "Sports", "seats": 4, "fuel_type": "Petrol", "transmission": "manual",
        "image_url": "https://images.unsplash.com/photo-1584345604476-8ec5e12e42dd?auto=format&fit=crop&w=800&q=80",
        "description": "Classic american muscle car.",
        "features": ["V8 Engine", "Premium Audio"],
    },
    {
        "make": "BMW", "model": "X5", "year": 2023, "price_per_day": Decimal("120.00"),
        "category": "SUV", "seats": 7, "fuel_type": "Diesel", "transmission": "automatic",
        "image_url": "https://images.unsplash.com/photo-1556189250-72ba9545225a?auto=format&fit=crop&w=800&q=80",
        "description": "Luxury SUV for comfortable travel.",
        "features": ["Leather Seats", "Panoramic Roof", "All-Wheel Drive"],
    },
]


def busy_vehicle_ids(db: Session, on: date | None = None) -> set[int]:
    """Vehicles with a live booking covering ``on`` (default today)."""
    day = on or date.today()
    rows = (
        db.query(Booking.vehicle_id)
        .filter(Booking.status != BOOKING_CANCELLED, Booking.start_date <= day, Booking.end_date >= day)
        .distinct()
        .all()
    )
    return {vid for (vid,) in rows}


def list_vehicles(
    db: Session,
    start_date: date | None = None,
    end_date: date | None = None,
    make: str | None = None,
) -> list[Vehicle]:
    query = db.query(Vehicle)
    if make:
        query = query.filter(Vehicle.make.ilike(f"%{make}%"))
    if start_date or end_date:
        if not (start_date and end_date):
            raise ValidationError("start_date and end_date go together", {"fields": ["start_date", "end_date"]})
        if end_date < start_date:
            raise ValidationError("invalid range", {"start_date": start_date.isoformat(), "end_date": end_date.isoformat()})
        # Only vehicles free for the whole window
        taken = select(Booking.id).where(conflict_clause(Vehicle.id, start_date, end_date))
        query = query.filter(~taken.exists())
    return query.order_by(Vehicle.id.asc()).all()


def get_vehicle(db: Session, vehicle_id: int) -> Vehicle:
    v = db.get(Vehicle, vehicle_id)
    if v is None:
        raise NotFoundError("vehicle not found", {"vehicle_id": vehicle_id})
    return v


def create_vehicle(db: Session, payload: VehicleCreateIn) -> Vehicle:
    missing = [f for f in ("make", "model", "year", "price_per_day") if getattr(payload, f) in (None, "")]
    if missing:
        raise ValidationError("missing field", {"fields": missing})
    try:
        price = Decimal(str(payload.price_per_day))
    except InvalidOperation:
        raise ValidationError("invalid amount", {"field": "price_per_day"})
    if price <= 0:
        raise ValidationError("price_per_day must be positive", {"field": "price_per_day"})
    v = Vehicle(
        make=payload.make.strip(),
        model=payload.model.strip(),
        year=payload.year,
        price_per_day=price,
        image_url=payload.image_url,
        description=payload.description,
        category=payload.category,
        seats=payload.seats,
        fuel_type=payload.fuel_type,
        transmission=payload.transmission,
    )
    v.features = payload.features
    try:
        db.add(v)
        db.flush()
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError("vehicle could not be stored", str(exc)) from exc
    log.info("vehicle created id=%s %s %s", v.id, v.make, v.model)
    return v


def seed_vehicles(db: Session) -> int:
    if db.query(Vehicle).count() > 0:
        return 0
    for data in DEMO_VEHICLES:
        v = Vehicle(**{k: val for k, val in data.items() if k != "features"})
        v.features = data["features"]
        db.add(v)
    db.commit()
    return len(DEMO_VEHICLES)

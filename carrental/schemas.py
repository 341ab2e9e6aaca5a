from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from pydantic import BaseModel, Field


class RequestOtpIn(BaseModel):
    phone: str = Field(..., description="10 digits, no country prefix")
    country_code: str = Field(..., description="e.g. +1, +91")


class RequestOtpOut(BaseModel):
    detail: str
    expires_at: datetime
    dev_code: Optional[str] = None


class VerifyOtpIn(BaseModel):
    phone: str
    country_code: str
    otp: str
    name: Optional[str] = None


class UserOut(BaseModel):
    id: int
    phone: str
    country_code: str
    name: Optional[str] = None
    created_at: datetime


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut


# Required fields are optional on the wire; the services report missing ones
class VehicleCreateIn(BaseModel):
    make: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = Field(None, ge=1900)
    price_per_day: Optional[Decimal] = None
    image_url: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    seats: Optional[int] = Field(None, ge=1)
    fuel_type: Optional[str] = None
    transmission: Optional[str] = Field(None, description="automatic|manual")
    features: List[str] = Field(default_factory=list)


class VehicleOut(BaseModel):
    id: int
    make: str
    model: str
    year: int
    category: Optional[str] = None
    seats: Optional[int] = None
    fuel_type: Optional[str] = None
    transmission: Optional[str] = None
    price_per_day: Decimal
    image_url: Optional[str] = None
    description: Optional[str] = None
    features: List[str] = []
    is_available: bool
    created_at: datetime


class BookedRangeOut(BaseModel):
    booking_id: int
    start_date: date
    end_date: date


class AvailabilityOut(BaseModel):
    vehicle_id: int
    booked: List[BookedRangeOut]


class BookingCreateIn(BaseModel):
    vehicle_id: Optional[int] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    total_price: Optional[Decimal] = None


class BookingOut(BaseModel):
    id: int
    user_id: int
    vehicle_id: int
    start_date: date
    end_date: date
    total_price: Decimal
    status: str
    created_at: datetime
    vehicle_make: Optional[str] = None
    vehicle_model: Optional[str] = None
    vehicle_year: Optional[int] = None


class BookingsListOut(BaseModel):
    bookings: List[BookingOut]

import json
from datetime import datetime

from sqlalchemy import CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base, relationship


Base = declarative_base()

BOOKING_CONFIRMED = "CONFIRMED"
BOOKING_CANCELLED = "CANCELLED"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("phone", "country_code", name="uq_users_phone_country"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    phone = Column(String(10), nullable=False)
    country_code = Column(String(5), nullable=False)
    name = Column(String(128), nullable=True)
    # Present only while a login attempt is in flight
    otp = Column(String(4), nullable=True)
    otp_expires_at = Column(DateTime, nullable=True)
    otp_attempts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    bookings = relationship("Booking", back_populates="user")


class Vehicle(Base):
    __tablename__ = "vehicles"
    __table_args__ = (
        CheckConstraint("price_per_day > 0", name="ck_vehicles_price_positive"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    make = Column(String(64), nullable=False)
    model = Column(String(64), nullable=False)
    year = Column(Integer, nullable=False)
    category = Column(String(32), nullable=True)
    seats = Column(Integer, nullable=True)
    fuel_type = Column(String(32), nullable=True)
    transmission = Column(String(16), nullable=True)  # automatic|manual
    price_per_day = Column(Numeric(10, 2), nullable=False)
    image_url = Column(String(512), nullable=True)
    description = Column(Text, nullable=True)
    features_json = Column("features", Text, nullable=False, default="[]")
    # Bumped inside every booking write; the row lock it takes serializes bookings per vehicle
    booking_seq = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    bookings = relationship("Booking", back_populates="vehicle")

    @property
    def features(self) -> list[str]:
        try:
            data = json.loads(self.features_json or "[]")
        except ValueError:
            return []
        return [str(f) for f in data] if isinstance(data, list) else []

    @features.setter
    def features(self, value) -> None:
        self.features_json = json.dumps(list(value or []))


class Booking(Base):
    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_bookings_range"),
        CheckConstraint("total_price > 0", name="ck_bookings_total_positive"),
        Index("ix_bookings_vehicle_status", "vehicle_id", "status"),
        Index("ix_bookings_user", "user_id"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    start_date = Column(Date, nullable=False)  # inclusive
    end_date = Column(Date, nullable=False)  # inclusive
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(16), nullable=False, default=BOOKING_CONFIRMED)  # CONFIRMED|CANCELLED
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    user = relationship("User", back_populates="bookings")
    vehicle = relationship("Vehicle", back_populates="bookings")

"""Phone/OTP login.

The pending code lives on the user row (``otp``/``otp_expires_at``) and is
cleared on success, on expiry, and once ``OTP_MAX_ATTEMPTS`` wrong guesses
have been made.
"""

from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import AuthError, NotFoundError, StoreError, ValidationError
from ..models import User
from ..utils.phone_utils import is_valid_country_code, is_valid_phone, mask_phone, to_e164
from ..utils.sms_provider import send_code

logger = logging.getLogger("carrental.otp")


@dataclass
class OTPIssue:
    user_id: int
    code: str
    expires_at: datetime


def _now() -> datetime:
    return datetime.utcnow()


def generate_otp_code() -> str:
    return str(1000 + secrets.randbelow(9000))


def _check_identity(phone: str | None, country_code: str | None) -> None:
    if not phone or not country_code:
        raise ValidationError("missing field", {"fields": [f for f, v in (("phone", phone), ("country_code", country_code)) if not v]})
    if not is_valid_phone(phone):
        raise ValidationError("phone must be exactly 10 digits", {"field": "phone"})
    if not is_valid_country_code(country_code):
        raise ValidationError("invalid country code", {"field": "country_code"})


def _find_user(db: Session, phone: str, country_code: str) -> User | None:
    return db.query(User).filter(User.phone == phone, User.country_code == country_code).one_or_none()


def request_code(db: Session, phone: str, country_code: str) -> OTPIssue:
    _check_identity(phone, country_code)
    code = generate_otp_code()
    expires_at = _now() + settings.otp_ttl
    try:
        user = _find_user(db, phone, country_code)
        if user is None:
            user = User(phone=phone, country_code=country_code)
            db.add(user)
        user.otp = code
        user.otp_expires_at = expires_at
        user.otp_attempts = 0
        db.flush()
        db.commit()
    except IntegrityError:
        # Lost a first-login race on (phone, country_code); the row exists now
        db.rollback()
        return request_code(db, phone, country_code)
    except SQLAlchemyError as exc:
        db.rollback()
        raise StoreError("could not issue code", str(exc)) from exc

    try:
        send_code(to_e164(phone, country_code), code)
    except Exception:
        logger.exception("OTP delivery failed to=%s", mask_phone(phone))
        if settings.OTP_MODE != "dev":
            raise
    return OTPIssue(user_id=user.id, code=code, expires_at=expires_at)


def _clear_code(db: Session, user: User) -> None:
    user.otp = None
    user.otp_expires_at = None
    user.otp_attempts = 0
    db.commit()


def _count_miss(db: Session, user_id: int, pending: str) -> int | None:
    """Bump the attempt counter in SQL; None if the pending code changed underneath us."""
    res = db.execute(
        update(User)
        .where(User.id == user_id, User.otp == pending)
        .values(otp_attempts=User.otp_attempts + 1)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        return None
    attempts = db.execute(select(User.otp_attempts).where(User.id == user_id)).scalar_one()
    if attempts >= settings.OTP_MAX_ATTEMPTS:
        db.execute(
            update(User)
            .where(User.id == user_id, User.otp == pending)
            .values(otp=None, otp_expires_at=None, otp_attempts=0)
            .execution_options(synchronize_session=False)
        )
    return attempts


def verify_code(db: Session, phone: str, country_code: str, code: str, name: str | None = None) -> User:
    _check_identity(phone, country_code)
    if not code:
        raise ValidationError("missing field", {"fields": ["otp"]})
    user = _find_user(db, phone, country_code)
    if user is None or not user.otp:
        raise NotFoundError("no pending code; request a new one")
    pending = user.otp

    if not hmac.compare_digest(pending, str(code)):
        try:
            attempts = _count_miss(db, user.id, pending)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise StoreError("could not record attempt", str(exc)) from exc
        if attempts is None:
            raise NotFoundError("no pending code; request a new one")
        left = max(0, settings.OTP_MAX_ATTEMPTS - attempts)
        logger.info("OTP mismatch to=%s attempts_left=%s", mask_phone(phone), left)
        raise AuthError("invalid code", {"attempts_left": left})

    if user.otp_expires_at is None or _now() > user.otp_expires_at:
        _clear_code(db, user)
        raise AuthError("expired")

    # Compare-and-set on the stored code so two concurrent verifications cannot both succeed
    res = db.execute(
        update(User)
        .where(User.id == user.id, User.otp == pending)
        .values(otp=None, otp_expires_at=None, otp_attempts=0)
        .execution_options(synchronize_session=False)
    )
    if res.rowcount != 1:
        db.rollback()
        raise NotFoundError("no pending code; request a new one")
    if name and not user.name:
        user.name = name.strip()[:128] or None
    db.commit()
    db.refresh(user)
    return user

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import create_access_token, get_current_user
from ..config import settings
from ..database import get_db
from ..models import User
from ..schemas import RequestOtpIn, RequestOtpOut, TokenOut, UserOut, VerifyOtpIn
from ..services import otp as otp_service


router = APIRouter(prefix="/auth", tags=["auth"])


def user_out(u: User) -> UserOut:
    return UserOut(id=u.id, phone=u.phone, country_code=u.country_code, name=u.name, created_at=u.created_at)


@router.post("/request_otp", response_model=RequestOtpOut)
def request_otp(payload: RequestOtpIn, db: Session = Depends(get_db)):
    issued = otp_service.request_code(db, payload.phone.strip(), payload.country_code.strip())
    out = RequestOtpOut(detail="OTP sent", expires_at=issued.expires_at)
    if settings.OTP_MODE == "dev":
        out.dev_code = issued.code
    return out


@router.post("/verify_otp", response_model=TokenOut)
def verify_otp(payload: VerifyOtpIn, db: Session = Depends(get_db)):
    user = otp_service.verify_code(db, payload.phone.strip(), payload.country_code.strip(), payload.otp.strip(), name=payload.name)
    return TokenOut(access_token=create_access_token(user), user=user_out(user))


@router.get("/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)):
    return user_out(user)

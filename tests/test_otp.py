from datetime import timedelta

import pytest

from carrental.config import settings
from carrental.errors import AuthError, NotFoundError, ValidationError
from carrental.models import User
from carrental.services import otp as otp_service

from .utils import unique_phone


WRONG_CODE = "0000"  # never issued; codes are 1000-9999


def test_generated_codes_are_four_digits():
    for _ in range(200):
        code = otp_service.generate_otp_code()
        assert len(code) == 4
        assert 1000 <= int(code) <= 9999


def test_request_creates_user_and_stores_code(db):
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")
    user = db.get(User, issued.user_id)
    assert (user.phone, user.country_code) == (phone, "+1")
    assert user.otp == issued.code
    assert user.otp_attempts == 0


def test_code_is_single_use(db):
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")
    user = otp_service.verify_code(db, phone, "+1", issued.code, name="Ada")
    assert user.id == issued.user_id
    assert user.name == "Ada"
    assert user.otp is None
    with pytest.raises(NotFoundError):
        otp_service.verify_code(db, phone, "+1", issued.code)


def test_existing_name_is_kept(db):
    phone = unique_phone()
    otp_service.verify_code(db, phone, "+1", otp_service.request_code(db, phone, "+1").code, name="First")
    user = otp_service.verify_code(db, phone, "+1", otp_service.request_code(db, phone, "+1").code, name="Second")
    assert user.name == "First"


def test_wrong_code_counts_attempt_and_keeps_code(db):
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")
    with pytest.raises(AuthError) as ei:
        otp_service.verify_code(db, phone, "+1", WRONG_CODE)
    assert ei.value.message == "invalid code"
    assert ei.value.details["attempts_left"] == settings.OTP_MAX_ATTEMPTS - 1
    assert otp_service.verify_code(db, phone, "+1", issued.code).id == issued.user_id


def test_attempts_exhaustion_clears_code(db):
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")
    for _ in range(settings.OTP_MAX_ATTEMPTS):
        with pytest.raises(AuthError) as ei:
            otp_service.verify_code(db, phone, "+1", WRONG_CODE)
    assert ei.value.details["attempts_left"] == 0
    with pytest.raises(NotFoundError):
        otp_service.verify_code(db, phone, "+1", issued.code)


def test_new_request_replaces_code_and_resets_attempts(db):
    phone = unique_phone()
    old = otp_service.request_code(db, phone, "+1")
    with pytest.raises(AuthError):
        otp_service.verify_code(db, phone, "+1", WRONG_CODE)
    new = otp_service.request_code(db, phone, "+1")
    assert new.user_id == old.user_id
    db.expire_all()
    assert db.get(User, new.user_id).otp_attempts == 0
    if old.code != new.code:
        with pytest.raises(AuthError):
            otp_service.verify_code(db, phone, "+1", old.code)
    assert otp_service.verify_code(db, phone, "+1", new.code).id == new.user_id


def test_expired_code_is_rejected_and_cleared(db, monkeypatch):
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")
    later = issued.expires_at + timedelta(seconds=1)
    monkeypatch.setattr(otp_service, "_now", lambda: later)
    with pytest.raises(AuthError) as ei:
        otp_service.verify_code(db, phone, "+1", issued.code)
    assert ei.value.message == "expired"
    with pytest.raises(NotFoundError):
        otp_service.verify_code(db, phone, "+1", issued.code)


def test_code_valid_right_up_to_expiry(db, monkeypatch):
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")
    monkeypatch.setattr(otp_service, "_now", lambda: issued.expires_at)
    assert otp_service.verify_code(db, phone, "+1", issued.code).id == issued.user_id


def test_unknown_phone_has_no_pending_code(db):
    with pytest.raises(NotFoundError):
        otp_service.verify_code(db, unique_phone(), "+1", "1234")


@pytest.mark.parametrize(
    "phone, country_code",
    [
        ("12345", "+1"),
        ("12345678901", "+1"),
        ("55512345ab", "+1"),
        ("5551234567", "1"),
        ("5551234567", "+12345"),
        ("", "+1"),
    ],
)
def test_phone_format_is_enforced(db, phone, country_code):
    with pytest.raises(ValidationError):
        otp_service.request_code(db, phone, country_code)


def test_request_otp_endpoint_echoes_code_only_in_dev(client, monkeypatch):
    r = client.post("/auth/request_otp", json={"phone": unique_phone(), "country_code": "+44"})
    assert r.status_code == 200
    body = r.json()
    assert body["detail"] == "OTP sent"
    assert body["dev_code"] and len(body["dev_code"]) == 4

    monkeypatch.setattr(settings, "OTP_MODE", "sms")
    r = client.post("/auth/request_otp", json={"phone": unique_phone(), "country_code": "+44"})
    assert r.status_code == 200
    assert r.json()["dev_code"] is None


def test_verify_endpoint_errors(client):
    phone = unique_phone()
    r = client.post("/auth/request_otp", json={"phone": "123", "country_code": "+1"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "validation_error"

    r = client.post("/auth/verify_otp", json={"phone": phone, "country_code": "+1", "otp": "1234"})
    assert r.status_code == 404

    assert client.post("/auth/request_otp", json={"phone": phone, "country_code": "+1"}).status_code == 200
    r = client.post("/auth/verify_otp", json={"phone": phone, "country_code": "+1", "otp": WRONG_CODE})
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "auth_error"


def test_wrong_code_after_expiry_reports_invalid_code(db, monkeypatch):
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")
    later = issued.expires_at + timedelta(seconds=1)
    monkeypatch.setattr(otp_service, "_now", lambda: later)
    with pytest.raises(AuthError) as ei:
        otp_service.verify_code(db, phone, "+1", WRONG_CODE)
    assert ei.value.message == "invalid code"
    # the right code still gets the expiry answer
    with pytest.raises(AuthError) as ei:
        otp_service.verify_code(db, phone, "+1", issued.code)
    assert ei.value.message == "expired"


def test_parallel_wrong_guesses_are_all_counted(db, monkeypatch):
    from concurrent.futures import ThreadPoolExecutor
    from threading import Barrier
    from types import SimpleNamespace

    from carrental.database import SessionLocal

    guesses = settings.OTP_MAX_ATTEMPTS - 1
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")

    # line every guesser up after its compare so the increments race
    barrier = Barrier(guesses, timeout=10)

    def compare_then_wait(a, b):
        result = a == b
        barrier.wait()
        return result

    monkeypatch.setattr(otp_service, "hmac", SimpleNamespace(compare_digest=compare_then_wait))

    def guess(_):
        with SessionLocal() as s:
            try:
                otp_service.verify_code(s, phone, "+1", WRONG_CODE)
            except AuthError as exc:
                return exc.message

    with ThreadPoolExecutor(max_workers=guesses) as ex:
        outcomes = list(ex.map(guess, range(guesses)))

    assert outcomes == ["invalid code"] * guesses
    db.expire_all()
    user = db.get(User, issued.user_id)
    assert user.otp_attempts == guesses
    assert user.otp == issued.code


def test_parallel_guesses_cannot_exceed_the_cap(db, monkeypatch):
    from concurrent.futures import ThreadPoolExecutor
    from threading import Barrier
    from types import SimpleNamespace

    from carrental.database import SessionLocal

    guesses = settings.OTP_MAX_ATTEMPTS + 3
    phone = unique_phone()
    issued = otp_service.request_code(db, phone, "+1")
    barrier = Barrier(guesses, timeout=10)

    def compare_then_wait(a, b):
        result = a == b
        barrier.wait()
        return result

    monkeypatch.setattr(otp_service, "hmac", SimpleNamespace(compare_digest=compare_then_wait))

    def guess(_):
        with SessionLocal() as s:
            try:
                otp_service.verify_code(s, phone, "+1", WRONG_CODE)
            except (AuthError, NotFoundError) as exc:
                return type(exc).__name__

    with ThreadPoolExecutor(max_workers=guesses) as ex:
        outcomes = list(ex.map(guess, range(guesses)))

    assert outcomes.count("AuthError") == settings.OTP_MAX_ATTEMPTS, outcomes
    assert outcomes.count("NotFoundError") == guesses - settings.OTP_MAX_ATTEMPTS, outcomes
    monkeypatch.undo()
    with pytest.raises(NotFoundError):
        otp_service.verify_code(db, phone, "+1", issued.code)

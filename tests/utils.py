import uuid

from fastapi.testclient import TestClient


def unique_phone() -> str:
    """Return a random 10-digit national number."""
    return str(uuid.uuid4().int % (10 ** 10)).zfill(10)


def login(client: TestClient, phone: str | None = None, country_code: str = "+1", name: str = "Tester") -> dict:
    """Run the OTP flow and return bearer headers for the signed-in user."""
    phone = phone or unique_phone()
    r = client.post("/auth/request_otp", json={"phone": phone, "country_code": country_code})
    assert r.status_code == 200, r.text
    code = r.json()["dev_code"]
    r = client.post("/auth/verify_otp", json={"phone": phone, "country_code": country_code, "otp": code, "name": name})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}

"""
JSON endpoint for creating water requests.

Used by the request form's script and by the offline submission queue
(`client.submit.RequestSubmitter`). Every response uses the same envelope:
`{"data": ..., "error": null}` or `{"data": null, "error": {"message", "code"}}`.
"""
import logging
import re
from typing import Literal, Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError, field_validator

from app.auth_utils import get_current_user
from core.database import create_water_request

router = APIRouter()

log = logging.getLogger("api.requests")

PHONE_RE = re.compile(r"^\+56[0-9]{9}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class RequestInput(BaseModel):
    name: str = Field(min_length=2, max_length=100)
    phone: str
    email: str = ""
    address: str = Field(min_length=5, max_length=200)
    special_instructions: str = Field(min_length=1, max_length=500)
    amount: Literal["100", "1000", "5000", "10000"]
    is_urgent: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        if not PHONE_RE.fullmatch(value):
            raise ValueError("Phone format: +56912345678")
        return value

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        value = value.strip()
        if value and not EMAIL_RE.fullmatch(value):
            raise ValueError("Invalid email")
        return value.lower()


def _error(message: str, code: str, status_code: int) -> JSONResponse:
    return JSONResponse({"data": None, "error": {"message": message, "code": code}}, status_code=status_code)


def first_error_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid data"
    first = errors[0]
    field = ".".join(str(p) for p in first.get("loc", ()))
    msg = first.get("msg", "Invalid data")
    return f"{field}: {msg}" if field else msg


@router.get("/api/health")
def health():
    return {"status": "ok"}


@router.post("/api/requests")
async def create_request(request: Request):
    try:
        body = await request.json()
    except ValueError:
        return _error("Request body must be JSON", "VALIDATION_ERROR", 400)

    try:
        data = RequestInput.model_validate(body)
    except ValidationError as exc:
        return _error(first_error_message(exc), "VALIDATION_ERROR", 400)

    user, _ = get_current_user(request)
    consumer_id = user["id"] if user and user.get("role") == "consumer" else None

    try:
        created = create_water_request(
            address=data.address,
            amount=int(data.amount),
            guest_name=data.name,
            guest_phone=data.phone,
            guest_email=data.email,
            special_instructions=data.special_instructions,
            is_urgent=data.is_urgent,
            latitude=data.latitude,
            longitude=data.longitude,
            consumer_id=consumer_id,
        )
    except Exception as exc:
        log.error("Failed to create water request", extra={"error": str(exc)})
        return _error("Could not create the request. Please try again.", "DATABASE_ERROR", 500)

    created_at = created.get("created_at")
    return JSONResponse(
        {
            "data": {
                "id": created["id"],
                "tracking_token": created["tracking_token"],
                "status": created["status"],
                "created_at": created_at.isoformat() if hasattr(created_at, "isoformat") else created_at,
            },
            "error": None,
        },
        status_code=201,
    )

"""Identify endpoint: resolve a partial contact to a unified identity."""

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.alias_generators import to_camel

from ..models import IdentifyResult
from ..resolution import IdentityEngine
from . import ErrorResponse, get_identity_engine

router = APIRouter()


# =========================
# Request / Response Models
# =========================


class IdentifyRequest(BaseModel):
    """Partial contact submitted by the caller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    email: str | None = None
    phone_number: str | None = None

    @field_validator("phone_number", mode="before")
    @classmethod
    def _phone_number_as_text(cls, value):
        # Clients commonly send phone numbers as JSON numbers
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        return value


class ContactSummary(BaseModel):
    """Unified identity for a contact."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    primary_contact_id: int
    emails: list[str]
    phone_numbers: list[str]
    secondary_contact_ids: list[int]

    @classmethod
    def from_result(cls, result: IdentifyResult) -> "ContactSummary":
        return cls.model_validate(result.model_dump())


class IdentifyResponse(BaseModel):
    """Response body for identify and identity lookups."""

    contact: ContactSummary


# =========================
# Identify
# =========================


@router.post(
    "/identify",
    response_model=IdentifyResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Neither email nor phoneNumber supplied"},
        409: {"model": ErrorResponse, "description": "Concurrent resolution conflict, retry"},
        503: {"model": ErrorResponse, "description": "Contact store unavailable, retry"},
    },
)
async def identify(
    request: IdentifyRequest,
    engine: IdentityEngine = Depends(get_identity_engine),
) -> IdentifyResponse:
    """Identify a person from an email and/or phone number.

    Links the request to every stored contact sharing its email or phone
    number, merging identities when the two values belong to different
    people on record, and records any new information as a secondary
    contact.
    """
    result = await engine.identify(email=request.email, phone_number=request.phone_number)
    return IdentifyResponse(contact=ContactSummary.from_result(result))

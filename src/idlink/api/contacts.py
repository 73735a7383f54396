"""Contact API endpoints for idlink."""

from fastapi import APIRouter, Depends, Path

from ..resolution import IdentityEngine
from . import ErrorResponse, get_identity_engine
from .identify import ContactSummary, IdentifyResponse

router = APIRouter(prefix="/contacts")


@router.get(
    "/{contact_id}/identity",
    response_model=IdentifyResponse,
    responses={404: {"model": ErrorResponse, "description": "Contact not found"}},
)
async def get_contact_identity(
    contact_id: int = Path(..., ge=1),
    engine: IdentityEngine = Depends(get_identity_engine),
) -> IdentifyResponse:
    """Get the identity a contact belongs to, without recording anything."""
    result = await engine.lookup(contact_id)
    return IdentifyResponse(contact=ContactSummary.from_result(result))

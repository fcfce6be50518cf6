"""
Contact directory API routes.

Exposes the local get-or-create service so other instances can use it
through HttpContactDirectory (MATCHER_DIRECTORY_URL).
"""
import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from contact_matcher.services.contact_directory import SqliteContactDirectory
from contact_matcher.services.contact_store import get_contact_store
from contact_matcher.services.errors import ExternalServiceFailure, InsufficientContactData

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


class GetOrCreateRequest(BaseModel):
    model_config = ConfigDict(extra="allow")

    profile: Optional[str] = Field(default=None, description="Match profile, omit for the default")
    contact_type: str = Field(default="Individual")
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    organization_name: Optional[str] = None
    email: Optional[str] = None


class GetOrCreateResponse(BaseModel):
    id: str
    created: bool
    contact: dict


@router.post("/getorcreate", response_model=GetOrCreateResponse)
def get_or_create_contact(request: GetOrCreateRequest):
    """Return the contact matching the given fields, creating it if missing."""
    directory = SqliteContactDirectory(get_contact_store())
    try:
        contact, created = directory.get_or_create_contact(request.model_dump())
    except InsufficientContactData as e:
        raise HTTPException(status_code=422, detail=e.message)
    except ExternalServiceFailure as e:
        logger.error(f"Get-or-create failed: {e}")
        raise HTTPException(status_code=502, detail=e.message)

    return GetOrCreateResponse(id=str(contact.id), created=created, contact=contact.to_dict())


@router.get("/{contact_id}")
def get_contact(contact_id: int):
    contact = get_contact_store().get(contact_id)
    if contact is None:
        raise HTTPException(status_code=404, detail=f"Contact {contact_id} not found")
    return contact.to_dict()

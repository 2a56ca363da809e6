"""
Sites API Routes
Site listing (with invitations and pins), creation, lookup and pin toggling.
"""

from dataclasses import asdict
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from sitehub.auth import get_current_user
from sitehub.database import get_session
from sitehub.models.site_membership import SITE_ROLES
from sitehub.models.user import User
from sitehub.services import sites as sites_service
from sitehub.services.sites import DomainTakenError, ListEntry, SiteCreate, TooManyPinsError

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class SiteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    domain: str
    timezone: str
    stats_start_date: Optional[date] = None
    created_at: datetime


class SiteListEntryResponse(BaseModel):
    entry_type: str  # invitation|pinned_site|site
    id: int
    domain: str
    timezone: str
    role: Optional[str] = None
    pinned_at: Optional[datetime] = None
    invitation_id: Optional[str] = None
    inviter_email: Optional[str] = None
    invited_at: Optional[datetime] = None


class SiteListResponse(BaseModel):
    entries: List[SiteListEntryResponse]
    page_number: int
    page_size: int
    total_entries: int
    total_pages: int


class PreferenceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    site_id: int
    user_id: int
    pinned_at: Optional[datetime] = None


def _entry_response(entry: ListEntry) -> SiteListEntryResponse:
    return SiteListEntryResponse(entry_type=entry.entry_type.value, **asdict(entry))


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/sites", response_model=SiteListResponse)
def list_sites(
    page: Optional[str] = Query(default=None),
    page_size: Optional[str] = Query(default=None),
    filter_by_domain: Optional[str] = Query(default=None),
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """
    List invitations, pinned sites and sites for the current user.

    Order: invitations (oldest first), pinned sites (most recently pinned
    first), then sites by domain. Pagination spans the merged list.
    """
    result = sites_service.list_with_invitations(
        session,
        user,
        {"page": page, "page_size": page_size},
        filter_by_domain=filter_by_domain,
    )
    return SiteListResponse(
        entries=[_entry_response(e) for e in result.entries],
        page_number=result.page_number,
        page_size=result.page_size,
        total_entries=result.total_entries,
        total_pages=result.total_pages,
    )


@router.post("/sites", response_model=SiteResponse, status_code=201)
def create_site(
    site_data: SiteCreate,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Create a site owned by the current user"""
    try:
        return sites_service.create(session, user, site_data)
    except DomainTakenError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/sites/{domain}", response_model=SiteResponse)
def get_site(
    domain: str,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Get a site the current user can access (super admins can access any site)"""
    site = sites_service.get_for_user(session, user.id, domain, [*SITE_ROLES, sites_service.ROLE_SUPER_ADMIN])
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")

    sites_service.stats_start_date(session, site)
    return site


@router.post("/sites/{domain}/pin", response_model=PreferenceResponse)
def toggle_pin(
    domain: str,
    user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    """Pin the site for the current user, or unpin it if already pinned"""
    site = sites_service.get_for_user(session, user.id, domain)
    if not site:
        raise HTTPException(status_code=404, detail="Site not found")

    try:
        return sites_service.toggle_pin(session, user, site)
    except TooManyPinsError as e:
        raise HTTPException(status_code=400, detail=f"too_many_pins: {str(e)}")

"""Pending invitation to join a site, keyed by (site, email)."""

import secrets
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from sitehub.models.site import Site


def generate_invitation_id() -> str:
    return secrets.token_urlsafe(16)


class Invitation(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("site_id", "email", name="uq_invitation_site_email"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    invitation_id: str = Field(default_factory=generate_invitation_id, unique=True, index=True)
    site_id: int = Field(foreign_key="site.id", index=True)
    email: str = Field(index=True)  # Invitee email; matched against User.email
    inviter_id: int = Field(foreign_key="user.id")
    role: str  # owner|admin|viewer
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationship
    site: "Site" = Relationship(back_populates="invitations")

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from sitehub.models.site import Site

ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_VIEWER = "viewer"
SITE_ROLES = (ROLE_OWNER, ROLE_ADMIN, ROLE_VIEWER)


class SiteMembership(SQLModel, table=True):
    __tablename__ = "site_membership"
    __table_args__ = (SAUniqueConstraint("site_id", "user_id", name="uq_site_membership_site_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="site.id", index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    role: str = Field(default=ROLE_VIEWER)  # owner|admin|viewer
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Relationship
    site: "Site" = Relationship(back_populates="memberships")

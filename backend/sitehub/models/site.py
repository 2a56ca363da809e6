from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from sitehub.models.invitation import Invitation
    from sitehub.models.site_membership import SiteMembership


class Site(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    domain: str = Field(unique=True, index=True)
    timezone: str  # IANA name, e.g. "Europe/London"
    # Date of the first pageview in the site's timezone, filled lazily by Sites.stats_start_date
    stats_start_date: Optional[date] = Field(default=None)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)})

    # Relationships
    memberships: List["SiteMembership"] = Relationship(back_populates="site")
    invitations: List["Invitation"] = Relationship(back_populates="site")

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel

# Preference columns that Sites.set_option is allowed to write
PREFERENCE_OPTIONS = frozenset({"pinned_at"})


class SiteUserPreference(SQLModel, table=True):
    """Per-user, per-site display preferences (currently only the pin)."""

    __tablename__ = "site_user_preference"
    __table_args__ = (SAUniqueConstraint("user_id", "site_id", name="uq_site_user_preference_user_site"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    site_id: int = Field(foreign_key="site.id", index=True)
    pinned_at: Optional[datetime] = Field(default=None)  # NULL = not pinned
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), sa_column_kwargs={"onupdate": lambda: datetime.now(timezone.utc)})

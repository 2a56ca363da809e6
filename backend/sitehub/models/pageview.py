"""Raw pageview events. Only the earliest timestamp per site is read here."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class Pageview(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    site_id: int = Field(foreign_key="site.id", index=True)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)  # UTC
    pathname: str = Field(default="/")

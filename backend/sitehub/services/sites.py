"""
Sites service: creation, access checks, pins and the merged site listing.

The listing merges up to three kinds of rows into one ordered sequence:

1. invitations addressed to the user's email (oldest invitation first)
2. sites the user is a member of and has pinned (most recently pinned first)
3. the remaining member sites (domain ascending)

Ties in every tier are broken by site id. A site that has an invitation and a
membership at the same time is listed once, as an invitation. Pagination is
applied to the merged sequence, never per tier.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Sequence, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, field_validator
from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError, NoResultFound
from sqlmodel import Session, select

from sitehub import config
from sitehub.models.invitation import Invitation
from sitehub.models.pageview import Pageview
from sitehub.models.site import Site
from sitehub.models.site_membership import ROLE_OWNER, SITE_ROLES, SiteMembership
from sitehub.models.site_user_preference import PREFERENCE_OPTIONS, SiteUserPreference
from sitehub.models.user import User
from sitehub.utils.pagination import Page, PageParams, paginate
from sitehub.utils.sql import escape_like, scalar_int

logger = logging.getLogger(__name__)

PINS_LIMIT = 9
ROLE_SUPER_ADMIN = "super_admin"

TIER_INVITATION = 0
TIER_PINNED_SITE = 1
TIER_SITE = 2


class TooManyPinsError(Exception):
    """Raised when pinning would exceed PINS_LIMIT for the user"""

    def __init__(self, user_id: int, limit: int = PINS_LIMIT):
        super().__init__(f"User {user_id} already has {limit} pinned sites")
        self.user_id = user_id
        self.limit = limit


class DomainTakenError(Exception):
    """Raised when a site with the requested domain already exists"""

    pass


# ============================================================================
# List entries
# ============================================================================


class EntryType(str, Enum):
    INVITATION = "invitation"
    PINNED_SITE = "pinned_site"
    SITE = "site"


@dataclass(frozen=True)
class InvitationEntry:
    id: int
    domain: str
    timezone: str
    invitation_id: str
    role: str
    inviter_email: Optional[str]
    invited_at: datetime

    entry_type: ClassVar[EntryType] = EntryType.INVITATION


@dataclass(frozen=True)
class PinnedSiteEntry:
    id: int
    domain: str
    timezone: str
    role: str
    pinned_at: datetime

    entry_type: ClassVar[EntryType] = EntryType.PINNED_SITE


@dataclass(frozen=True)
class SiteEntry:
    id: int
    domain: str
    timezone: str
    role: str

    entry_type: ClassVar[EntryType] = EntryType.SITE


ListEntry = Union[InvitationEntry, PinnedSiteEntry, SiteEntry]


# ============================================================================
# Creation and access
# ============================================================================


def load_zone(name: str) -> ZoneInfo:
    """
    ZoneInfo for an IANA timezone name.

    Raises:
        ValueError: `name` is not a timezone (unknown key, malformed key, or a
            tzdata directory such as "Europe")
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, OSError):
        raise ValueError(f"Unknown timezone: {name!r}")


class SiteCreate(BaseModel):
    domain: str
    timezone: str = "Etc/UTC"

    @field_validator("domain")
    @classmethod
    def normalize_domain(cls, v):
        v = (v or "").strip().lower()
        for prefix in ("https://", "http://"):
            if v.startswith(prefix):
                v = v[len(prefix):]
        v = v.split("/", 1)[0].strip(".")
        if not v or " " in v or "." not in v:
            raise ValueError("domain must be a hostname such as example.com")
        return v

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v):
        v = (v or "").strip()
        try:
            load_zone(v)
        except ValueError:
            raise ValueError("timezone is invalid")
        return v


def create(session: Session, user: User, params: Union[SiteCreate, Mapping[str, Any]]) -> Site:
    """
    Create a site owned by `user`.

    `params` may be a SiteCreate or a plain mapping (validated here).

    Raises:
        pydantic.ValidationError: invalid domain or timezone
        DomainTakenError: domain already registered
    """
    data = params if isinstance(params, SiteCreate) else SiteCreate.model_validate(dict(params))

    existing = session.exec(select(Site).where(Site.domain == data.domain)).first()
    if existing:
        raise DomainTakenError(f"Domain '{data.domain}' is already registered")

    site = Site(domain=data.domain, timezone=data.timezone)
    site.memberships.append(SiteMembership(user_id=user.id, role=ROLE_OWNER))

    try:
        session.add(site)
        session.commit()
    except IntegrityError:
        session.rollback()
        raise DomainTakenError(f"Domain '{data.domain}' is already registered")

    session.refresh(site)
    logger.info(f"Site {site.id} ({site.domain}) created by user {user.id}")
    return site


def is_member(session: Session, user_id: int, site: Site) -> bool:
    membership_id = session.exec(
        select(SiteMembership.id).where(SiteMembership.user_id == user_id, SiteMembership.site_id == site.id)
    ).first()
    return membership_id is not None


def get_for_user(
    session: Session, user_id: int, domain: str, roles: Sequence[str] = SITE_ROLES
) -> Optional[Site]:
    """
    Get the site with `domain` if the user holds one of `roles` on it.

    Passing "super_admin" in `roles` lets users listed in SUPER_ADMIN_USER_IDS
    open any site regardless of membership.
    """
    if ROLE_SUPER_ADMIN in roles and user_id in config.SUPER_ADMIN_USER_IDS:
        return session.exec(select(Site).where(Site.domain == domain)).first()

    member_roles = [r for r in roles if r != ROLE_SUPER_ADMIN]
    if not member_roles:
        return None

    return session.exec(
        select(Site)
        .join(SiteMembership, SiteMembership.site_id == Site.id)
        .where(
            Site.domain == domain,
            SiteMembership.user_id == user_id,
            SiteMembership.role.in_(member_roles),
        )
    ).first()


# ============================================================================
# Stats start date
# ============================================================================


def _first_pageview_date(session: Session, site: Site) -> Optional[date]:
    first_timestamp = session.exec(select(func.min(Pageview.timestamp)).where(Pageview.site_id == site.id)).one()
    if first_timestamp is None:
        return None

    try:
        tz = load_zone(site.timezone)
    except ValueError:
        logger.warning(f"Site {site.id} has unknown timezone '{site.timezone}', using UTC")
        tz = timezone.utc

    # SQLite hands timestamps back naive; they are stored as UTC
    if first_timestamp.tzinfo is None:
        first_timestamp = first_timestamp.replace(tzinfo=timezone.utc)
    return first_timestamp.astimezone(tz).date()


def stats_start_date(session: Session, site: Site) -> Optional[date]:
    """
    Date of the site's first pageview, in the site's timezone.

    Cache-aside: the value stored on the site is returned as-is; on a miss it is
    computed from pageviews and written back. Sites without any pageviews
    return None and nothing is stored.
    """
    if site.stats_start_date is not None:
        return site.stats_start_date

    start_date = _first_pageview_date(session, site)
    if start_date is None:
        return None

    site.stats_start_date = start_date
    session.add(site)
    session.commit()
    session.refresh(site)
    logger.info(f"Memoized stats_start_date={start_date} for site {site.id}")
    return start_date


def has_stats(session: Session, site: Site) -> bool:
    return stats_start_date(session, site) is not None


# ============================================================================
# Listing
# ============================================================================


def list_sites(
    session: Session,
    user: User,
    pagination_params: Optional[Mapping[str, Any]] = None,
    filter_by_domain: Optional[str] = None,
) -> Page[ListEntry]:
    """List the user's member sites, pinned first."""
    return _list(session, user, pagination_params, filter_by_domain, with_invitations=False)


def list_with_invitations(
    session: Session,
    user: User,
    pagination_params: Optional[Mapping[str, Any]] = None,
    filter_by_domain: Optional[str] = None,
) -> Page[ListEntry]:
    """List pending invitations for the user's email, then pinned sites, then sites."""
    return _list(session, user, pagination_params, filter_by_domain, with_invitations=True)


def _list(
    session: Session,
    user: User,
    pagination_params: Optional[Mapping[str, Any]],
    filter_by_domain: Optional[str],
    with_invitations: bool,
) -> Page[ListEntry]:
    params = PageParams.from_params(pagination_params)
    query = _entries_query(user, with_invitations, filter_by_domain)
    return paginate(session, query, params, lambda rows: _build_entries(session, user, rows))


def _entries_query(user: User, with_invitations: bool, filter_by_domain: Optional[str]):
    membership = (
        select(SiteMembership.site_id, SiteMembership.role)
        .where(SiteMembership.user_id == user.id)
        .subquery("membership")
    )
    preference = (
        select(SiteUserPreference.site_id, SiteUserPreference.pinned_at)
        .where(SiteUserPreference.user_id == user.id)
        .subquery("preference")
    )

    is_member_site = membership.c.site_id.is_not(None)
    is_pinned = is_member_site & preference.c.pinned_at.is_not(None)

    if with_invitations:
        invited = (
            select(Invitation.site_id, func.min(Invitation.created_at).label("invited_at"))
            .where(Invitation.email == user.email)
            .group_by(Invitation.site_id)
            .subquery("invited")
        )
        is_invited = invited.c.site_id.is_not(None)
        tier = case((is_invited, TIER_INVITATION), (is_pinned, TIER_PINNED_SITE), else_=TIER_SITE)
        invited_at = invited.c.invited_at
        visible = or_(is_member_site, is_invited)
    else:
        tier = case((is_pinned, TIER_PINNED_SITE), else_=TIER_SITE)
        visible = is_member_site

    query = select(
        Site.id,
        Site.domain,
        Site.timezone,
        membership.c.role,
        preference.c.pinned_at,
        tier.label("tier"),
    ).select_from(Site)
    query = query.outerjoin(membership, membership.c.site_id == Site.id)
    query = query.outerjoin(preference, preference.c.site_id == Site.id)
    if with_invitations:
        query = query.outerjoin(invited, invited.c.site_id == Site.id)

    query = query.where(visible)
    if filter_by_domain:
        query = query.where(Site.domain.ilike(f"%{escape_like(filter_by_domain)}%", escape="\\"))

    # Each tier has its own sort key; the key is NULL outside its tier
    order_by = [tier]
    if with_invitations:
        order_by.append(case((tier == TIER_INVITATION, invited_at)))
    order_by.append(case((tier == TIER_PINNED_SITE, preference.c.pinned_at)).desc())
    order_by.append(case((tier == TIER_SITE, Site.domain)))
    order_by.append(Site.id)

    return query.order_by(*order_by)


def _build_entries(session: Session, user: User, rows: list) -> List[ListEntry]:
    invited_site_ids = [row.id for row in rows if row.tier == TIER_INVITATION]
    invitations = _invitations_by_site(session, user, invited_site_ids)

    entries: List[ListEntry] = []
    for row in rows:
        if row.tier == TIER_INVITATION:
            invitation, inviter_email = invitations[row.id]
            entries.append(
                InvitationEntry(
                    id=row.id,
                    domain=row.domain,
                    timezone=row.timezone,
                    invitation_id=invitation.invitation_id,
                    role=invitation.role,
                    inviter_email=inviter_email,
                    invited_at=invitation.created_at,
                )
            )
        elif row.tier == TIER_PINNED_SITE:
            entries.append(
                PinnedSiteEntry(
                    id=row.id,
                    domain=row.domain,
                    timezone=row.timezone,
                    role=row.role,
                    pinned_at=row.pinned_at,
                )
            )
        else:
            entries.append(SiteEntry(id=row.id, domain=row.domain, timezone=row.timezone, role=row.role))
    return entries


def _invitations_by_site(session: Session, user: User, site_ids: List[int]) -> Dict[int, tuple]:
    if not site_ids:
        return {}

    results = session.exec(
        select(Invitation, User.email)
        .outerjoin(User, User.id == Invitation.inviter_id)
        .where(Invitation.email == user.email, Invitation.site_id.in_(site_ids))
        .order_by(Invitation.created_at, Invitation.id)
    ).all()

    by_site: Dict[int, tuple] = {}
    for invitation, inviter_email in results:
        # Oldest invitation per site, matching the ordering key
        by_site.setdefault(invitation.site_id, (invitation, inviter_email))
    return by_site


# ============================================================================
# Preferences and pins
# ============================================================================


def _get_membership(session: Session, user: User, site: Site) -> SiteMembership:
    # .one() raises NoResultFound for an inconsistent user/site pair
    return session.exec(
        select(SiteMembership).where(SiteMembership.user_id == user.id, SiteMembership.site_id == site.id)
    ).one()


def _get_preference(session: Session, user: User, site: Site) -> Optional[SiteUserPreference]:
    return session.exec(
        select(SiteUserPreference).where(SiteUserPreference.user_id == user.id, SiteUserPreference.site_id == site.id)
    ).first()


def _write_option(session: Session, user: User, site: Site, option: str, value: Any) -> SiteUserPreference:
    """Upsert the preference row without committing."""
    # uq_site_user_preference_user_site rejects a concurrent second insert
    preference = _get_preference(session, user, site)
    if preference is None:
        preference = SiteUserPreference(user_id=user.id, site_id=site.id)
    setattr(preference, option, value)
    preference.updated_at = datetime.now(timezone.utc)
    session.add(preference)
    return preference


def set_option(session: Session, user: User, site: Site, option: str, value: Any) -> SiteUserPreference:
    """
    Set a single preference field for (user, site).

    Raises:
        ValueError: `option` is not a recognized preference field
        sqlalchemy.exc.NoResultFound: the user is not a member of the site
    """
    if option not in PREFERENCE_OPTIONS:
        raise ValueError(f"Unknown site preference option: {option!r}")

    _get_membership(session, user, site)
    preference = _write_option(session, user, site, option, value)
    session.commit()
    session.refresh(preference)
    return preference


def pins_count(session: Session, user_id: int) -> int:
    return scalar_int(
        session.exec(
            select(func.count(SiteUserPreference.id)).where(
                SiteUserPreference.user_id == user_id,
                SiteUserPreference.pinned_at.is_not(None),
            )
        ).one()
    )


def _lock_user(session: Session, user_id: int) -> None:
    result = session.execute(
        update(User)
        .where(User.id == user_id)
        .values(id=User.id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NoResultFound(f"User {user_id} not found")


def toggle_pin(session: Session, user: User, site: Site) -> SiteUserPreference:
    """
    Pin the site for the user if it is unpinned, unpin it otherwise.

    The transaction opens with a no-op UPDATE of the user row. That takes the
    row lock on server databases and the write lock on SQLite (where SELECT
    ... FOR UPDATE is ignored), so two concurrent pins by the same user
    cannot both pass the limit check.

    Raises:
        TooManyPinsError: pinning would exceed PINS_LIMIT (unpinning never fails)
        sqlalchemy.exc.NoResultFound: the user is not a member of the site
    """
    try:
        _lock_user(session, user.id)
        _get_membership(session, user, site)

        preference = _get_preference(session, user, site)
        currently_pinned = preference is not None and preference.pinned_at is not None

        if currently_pinned:
            pinned_at = None
        else:
            if pins_count(session, user.id) >= PINS_LIMIT:
                logger.info(f"User {user.id} hit the pin limit ({PINS_LIMIT}) pinning site {site.id}")
                raise TooManyPinsError(user.id)
            pinned_at = datetime.now(timezone.utc)

        preference = _write_option(session, user, site, "pinned_at", pinned_at)
        session.commit()
    except Exception:
        session.rollback()
        raise

    session.refresh(preference)
    logger.info(f"User {user.id} {'pinned' if pinned_at else 'unpinned'} site {site.id}")
    return preference

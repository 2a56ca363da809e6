from sitehub.models.invitation import Invitation
from sitehub.models.pageview import Pageview
from sitehub.models.site import Site
from sitehub.models.site_membership import SiteMembership
from sitehub.models.site_user_preference import SiteUserPreference
from sitehub.models.user import User

__all__ = [
    "User",
    "Site",
    "SiteMembership",
    "Invitation",
    "SiteUserPreference",
    "Pageview",
]

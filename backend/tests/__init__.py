# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from sitehub.models.invitation import Invitation  # noqa: F401
from sitehub.models.pageview import Pageview  # noqa: F401
from sitehub.models.site import Site  # noqa: F401
from sitehub.models.site_membership import SiteMembership  # noqa: F401
from sitehub.models.site_user_preference import SiteUserPreference  # noqa: F401
from sitehub.models.user import User  # noqa: F401

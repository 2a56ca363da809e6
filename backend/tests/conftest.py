import os
from datetime import datetime, timezone
from itertools import count

import pytest

# Keep app startup (init_db) off the on-disk database during tests
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from sitehub.database import get_session  # noqa: E402
from sitehub.main import app  # noqa: E402

TEST_DATABASE_URL = "sqlite:///:memory:"

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so ALL sessions share same DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models MUST be imported before create_all() (see session_fixture)
# 4. App dependency overridden to use test_engine (see client_fixture)
# 5. Tables created per test and dropped afterwards, so fixed domains and
#    emails can be reused between tests
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


def override_get_session():
    """Override session to use test engine"""
    with Session(test_engine) as session:
        yield session


@pytest.fixture(name="session", scope="function")
def session_fixture():
    """Provide a test database session on freshly created tables"""
    # Import all models to ensure they're registered BEFORE create_all
    from sitehub.models.invitation import Invitation  # noqa: F401
    from sitehub.models.pageview import Pageview  # noqa: F401
    from sitehub.models.site import Site  # noqa: F401
    from sitehub.models.site_membership import SiteMembership  # noqa: F401
    from sitehub.models.site_user_preference import SiteUserPreference  # noqa: F401
    from sitehub.models.user import User  # noqa: F401

    SQLModel.metadata.create_all(test_engine)

    with Session(test_engine) as session:
        yield session

    SQLModel.metadata.drop_all(test_engine)


@pytest.fixture(name="client")
def client_fixture(session: Session):
    """Provide a test client with overridden database session

    Override MUST be set BEFORE TestClient() and stay in place for the
    entire duration, so the app never uses its own engine.
    """
    app.dependency_overrides[get_session] = override_get_session

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


# ============================================================================
# Factories
# ============================================================================

_sequence = count(1)


@pytest.fixture
def insert_user(session: Session):
    """Insert a user; email defaults to a unique address"""
    from sitehub.models.user import User

    def _insert(email=None, name=None):
        n = next(_sequence)
        user = User(email=email or f"user{n:05d}@example.com", name=name or f"User {n}")
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _insert


@pytest.fixture
def insert_site(session: Session):
    """Insert a site, optionally with member users and pending invitations

    Generated domains are zero-padded so domain order equals insertion order.
    Invitations are dicts of Invitation fields (site_id is filled in).
    """
    from sitehub.models.invitation import Invitation
    from sitehub.models.site import Site
    from sitehub.models.site_membership import ROLE_OWNER, SiteMembership

    def _insert(domain=None, timezone="Etc/UTC", members=(), invitations=()):
        n = next(_sequence)
        site = Site(domain=domain or f"site{n:05d}.example.com", timezone=timezone)
        session.add(site)
        session.commit()
        session.refresh(site)

        for user in members:
            session.add(SiteMembership(site_id=site.id, user_id=user.id, role=ROLE_OWNER))
        for invitation in invitations:
            session.add(Invitation(site_id=site.id, **invitation))
        session.commit()
        session.refresh(site)
        return site

    return _insert


@pytest.fixture
def insert_membership(session: Session):
    from sitehub.models.site_membership import SiteMembership

    def _insert(user, site, role="viewer"):
        membership = SiteMembership(user_id=user.id, site_id=site.id, role=role)
        session.add(membership)
        session.commit()
        session.refresh(membership)
        return membership

    return _insert


@pytest.fixture
def insert_invitation(session: Session):
    from sitehub.models.invitation import Invitation

    def _insert(site, email, inviter, role="viewer"):
        invitation = Invitation(site_id=site.id, email=email, inviter_id=inviter.id, role=role)
        session.add(invitation)
        session.commit()
        session.refresh(invitation)
        return invitation

    return _insert


@pytest.fixture
def populate_stats(session: Session):
    """Insert pageviews for a site; timestamps default to now; pass timezone-aware UTC values"""
    from sitehub.models.pageview import Pageview

    def _populate(site, timestamps=None):
        for ts in timestamps or [datetime.now(timezone.utc)]:
            session.add(Pageview(site_id=site.id, timestamp=ts))
        session.commit()

    return _populate

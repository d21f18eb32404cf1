import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from portfolio_authz.database import get_db
from portfolio_authz.models.base import Base, utcnow
# Import all model classes to ensure they're registered with SQLAlchemy
from portfolio_authz.models.portfolio import Portfolio
from portfolio_authz.models.property import Property
from portfolio_authz.models.portfolio_membership import PortfolioMembership
from portfolio_authz.models.permission_audit_log import PermissionAuditLog  # noqa: F401
from portfolio_authz.models.role import PortfolioRole
# Import FastAPI app AFTER model imports
from portfolio_authz.main import app

# Test database (SQLite in-memory for speed)
# Use StaticPool to ensure all connections share the same in-memory database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

OWNER_ID = "user-owner"
ADMIN_ID = "user-admin"
MEMBER_ID = "user-member"
VIEWER_ID = "user-viewer"
OUTSIDER_ID = "user-outsider"


@pytest.fixture(scope="function")
def db_session():
    """Create fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """FastAPI test client with test database"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def auth_headers_for(user_id: str) -> dict[str, str]:
    """Headers carrying the upstream-verified user id"""
    return {"Authorization": f"Bearer {user_id}"}


def add_membership(
    db_session,
    portfolio: Portfolio,
    user_id: str,
    role: PortfolioRole,
    property_access: dict | None = None,
    accepted: bool = True,
) -> PortfolioMembership:
    now = utcnow()
    membership = PortfolioMembership(
        portfolio_id=portfolio.id,
        user_id=user_id,
        role=role,
        property_access=property_access,
        invited_by=None if role == PortfolioRole.OWNER else OWNER_ID,
        invited_at=now,
        accepted_at=now if accepted else None,
    )
    db_session.add(membership)
    db_session.commit()
    db_session.refresh(membership)
    return membership


@pytest.fixture
def portfolio(db_session):
    """Shared portfolio with an owner membership"""
    portfolio = Portfolio(name="Test Portfolio")
    db_session.add(portfolio)
    db_session.commit()
    db_session.refresh(portfolio)
    add_membership(db_session, portfolio, OWNER_ID, PortfolioRole.OWNER)
    return portfolio


@pytest.fixture
def other_portfolio(db_session):
    """A second portfolio with a different owner, for isolation tests"""
    other = Portfolio(name="Other Portfolio")
    db_session.add(other)
    db_session.commit()
    db_session.refresh(other)
    add_membership(db_session, other, "user-other-owner", PortfolioRole.OWNER)
    return other


@pytest.fixture
def properties(db_session, portfolio):
    """Two properties in the shared portfolio"""
    first = Property(portfolio_id=portfolio.id, name="Maple Street Duplex")
    second = Property(portfolio_id=portfolio.id, name="Oak Avenue Condo")
    db_session.add_all([first, second])
    db_session.commit()
    db_session.refresh(first)
    db_session.refresh(second)
    return first, second


@pytest.fixture
def foreign_property(db_session, other_portfolio):
    prop = Property(portfolio_id=other_portfolio.id, name="Elsewhere Lot")
    db_session.add(prop)
    db_session.commit()
    db_session.refresh(prop)
    return prop


@pytest.fixture
def admin_membership(db_session, portfolio):
    return add_membership(db_session, portfolio, ADMIN_ID, PortfolioRole.ADMIN)


@pytest.fixture
def member_membership(db_session, portfolio):
    return add_membership(db_session, portfolio, MEMBER_ID, PortfolioRole.MEMBER)


@pytest.fixture
def viewer_membership(db_session, portfolio):
    return add_membership(db_session, portfolio, VIEWER_ID, PortfolioRole.VIEWER)


@pytest.fixture
def all_members(admin_membership, member_membership, viewer_membership):
    """Admin, member and viewer on top of the owner"""
    return admin_membership, member_membership, viewer_membership


@pytest.fixture
def owner_headers():
    return auth_headers_for(OWNER_ID)


@pytest.fixture
def admin_headers():
    return auth_headers_for(ADMIN_ID)


@pytest.fixture
def member_headers():
    return auth_headers_for(MEMBER_ID)


@pytest.fixture
def viewer_headers():
    return auth_headers_for(VIEWER_ID)


@pytest.fixture
def outsider_headers():
    return auth_headers_for(OUTSIDER_ID)

import os

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-tenant-auth-tests")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pyotp
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from tenant_auth.cache import MemoryCache, get_cache
from tenant_auth.core.device import DeviceInfo
from tenant_auth.core.rbac import DEFAULT_PERMISSIONS
from tenant_auth.core.security import hash_password
from tenant_auth.database import get_db
from tenant_auth.models.base import Base
# Import all model classes to ensure they're registered with SQLAlchemy
from tenant_auth.models.audit_log import AuditLog  # noqa: F401
from tenant_auth.models.invitation import Invitation  # noqa: F401
from tenant_auth.models.role import Role, SystemRole
from tenant_auth.models.session import UserSession  # noqa: F401
from tenant_auth.models.tenant import Tenant, TenantStatus
from tenant_auth.models.user import User, UserStatus
from tenant_auth.repositories.permission_repository import PermissionRepository
from tenant_auth.repositories.user_repository import UserRepository
from tenant_auth.services.role_service import RoleService
from tenant_auth.services.session_service import SessionService
from tenant_auth.services.two_factor_service import TwoFactorService
# Import FastAPI app AFTER model imports
from tenant_auth.main import app

TEST_PASSWORD = "Str0ng!Passw0rd"

# Test database (SQLite in-memory for speed)
# Use StaticPool to ensure all connections share the same in-memory database
SQLALCHEMY_TEST_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_DEVICE = DeviceInfo(
    device_type="Desktop",
    browser="Firefox",
    os="Linux",
    user_agent="Mozilla/5.0 (X11; Linux x86_64; rv:128.0) Gecko/20100101 Firefox/128.0",
    ip_address="203.0.113.10",
    fingerprint="test-fingerprint",
)


@pytest.fixture(scope="function")
def db_session():
    """Create fresh database with the permission catalog for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    PermissionRepository(db).seed_catalog(DEFAULT_PERMISSIONS)
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def cache():
    """Isolated in-memory cache"""
    return MemoryCache()


@pytest.fixture(scope="function")
def client(db_session, cache):
    """FastAPI test client with test database and cache"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cache] = lambda: cache
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create_tenant(db, cache, slug: str = "acme", company_name: str = "Acme Corp", status=TenantStatus.ACTIVE) -> Tenant:
    """Create a tenant with its system roles provisioned"""
    tenant = Tenant(
        slug=slug,
        company_name=company_name,
        email=f"contact@{slug}.example.com",
        status=status,
        email_verified=status == TenantStatus.ACTIVE,
    )
    db.add(tenant)
    db.flush()
    RoleService(db, cache).provision_system_roles(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


def get_role(db, tenant: Tenant, name: str) -> Role:
    return db.query(Role).filter(Role.tenant_id == tenant.id, Role.name == name).one()


def create_user(
    db,
    tenant: Tenant,
    email: str = "owner@acme.example.com",
    password: str = TEST_PASSWORD,
    roles: tuple[str, ...] = (SystemRole.OWNER.value,),
    status=UserStatus.ACTIVE,
    first_name: str = "Test",
    last_name: str = "User",
) -> User:
    """Create an active, verified user holding the named roles"""
    user = User(
        tenant_id=tenant.id,
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        status=status,
        email_verified=True,
    )
    db.add(user)
    db.flush()
    repo = UserRepository(db)
    for name in roles:
        repo.assign_role_no_commit(user.id, get_role(db, tenant, name).id)
    db.commit()
    db.refresh(user)
    return user


def login_headers(db, user: User, tenant: Tenant, remember_me: bool = False) -> dict:
    """Create a session for the user and return bearer headers"""
    issued = SessionService(db).create_session(user, tenant, TEST_DEVICE, remember_me)
    return {"Authorization": f"Bearer {issued.access_token}"}


def enable_two_factor(db, cache, user: User) -> tuple[str, list[str]]:
    """Turn on 2FA for a user, returning the secret and backup codes"""
    service = TwoFactorService(db, cache)
    setup = service.setup(user)
    service.enable(user, setup["secret"], pyotp.TOTP(setup["secret"]).now(), setup["backup_codes"])
    return setup["secret"], setup["backup_codes"]


@pytest.fixture
def tenant(db_session, cache):
    return create_tenant(db_session, cache)


@pytest.fixture
def owner(db_session, tenant):
    return create_user(db_session, tenant)


@pytest.fixture
def owner_headers(db_session, tenant, owner):
    return login_headers(db_session, owner, tenant)


@pytest.fixture
def member(db_session, tenant):
    """User holding only the read-only 'user' role"""
    return create_user(
        db_session,
        tenant,
        email="member@acme.example.com",
        roles=(SystemRole.USER.value,),
        first_name="Mem",
        last_name="Ber",
    )


@pytest.fixture
def member_headers(db_session, tenant, member):
    return login_headers(db_session, member, tenant)


@pytest.fixture
def other_tenant(db_session, cache):
    return create_tenant(db_session, cache, slug="globex", company_name="Globex Inc")

"""
PayDesk - Test Configuration

Pytest fixtures and configuration.

Every test gets its own application, built with ``create_app``, backed by a
fresh in-memory SQLite database and a temporary upload directory.
"""

import os
import tempfile

# Settings are read from the environment; set them before paydesk is imported.
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-paydesk")
os.environ.setdefault("DATABASE_URL_ASYNC", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("UPLOAD_DIR", tempfile.mkdtemp(prefix="paydesk-uploads-"))
os.environ.pop("ADMIN_EMAIL", None)
os.environ.pop("SMTP_HOST", None)
os.environ.pop("SENDGRID_API_KEY", None)

from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.config import Settings
from paydesk.models.user import User, UserRole
from paydesk.services.auth_service import AuthService
from paydesk.utils.security import create_access_token
from main import create_app


ADMIN_PASSWORD = "AdminPass123"
EMPLOYEE_PASSWORD = "EmployeePass123"


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings for one test, with its own upload directory."""
    return Settings(upload_dir=str(tmp_path / "uploads"))


@pytest_asyncio.fixture(scope="function")
async def app(settings: Settings) -> AsyncGenerator[FastAPI, None]:
    """
    Application with an initialised, empty database.

    ASGITransport does not run the lifespan, so the database is set up here.
    """
    application = create_app(settings)
    database = application.state.db
    database.init()
    await database.create_all()

    yield application

    await database.dispose()
    application.state.rate_limiter.reset()


@pytest_asyncio.fixture(scope="function")
async def db_session(app: FastAPI) -> AsyncGenerator[AsyncSession, None]:
    """A session on the test application's database."""
    async with app.state.db.session_maker() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client talking to the test application in-process."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


async def create_user(
    app: FastAPI,
    name: str,
    email: str,
    password: str,
    role: UserRole = UserRole.EMPLOYEE,
    **fields,
) -> User:
    """Register an account in its own session and return it detached."""
    async with app.state.db.session_maker() as session:
        return await AuthService(session).register_user(
            name=name,
            email=email,
            password=password,
            role=role,
            **fields,
        )


def auth_headers_for(user: User) -> dict:
    token = create_access_token({"sub": str(user.id)})
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(scope="function")
async def admin_user(app: FastAPI) -> User:
    """Create an admin account."""
    return await create_user(
        app,
        name="Asha Admin",
        email="admin@example.com",
        password=ADMIN_PASSWORD,
        role=UserRole.ADMIN,
        department="HR",
        position="HR Manager",
    )


@pytest_asyncio.fixture(scope="function")
async def employee_user(app: FastAPI) -> User:
    """Create an employee account with a salary base and bank details."""
    return await create_user(
        app,
        name="Ravi Kumar",
        email="ravi@example.com",
        password=EMPLOYEE_PASSWORD,
        department="Engineering",
        position="Developer",
        joining_date=date(2023, 4, 1),
        basic_salary=Decimal("40000.00"),
        bank_account_number="123456789012",
        bank_name="State Bank",
        bank_ifsc_code="SBIN0000123",
    )


@pytest_asyncio.fixture(scope="function")
async def other_employee(app: FastAPI) -> User:
    """A second employee, for ownership checks."""
    return await create_user(
        app,
        name="Meera Shah",
        email="meera@example.com",
        password=EMPLOYEE_PASSWORD,
        department="Finance",
        basic_salary=Decimal("30000.00"),
    )


@pytest.fixture
def admin_headers(admin_user: User) -> dict:
    """Authorization headers for the admin account."""
    return auth_headers_for(admin_user)


@pytest.fixture
def employee_headers(employee_user: User) -> dict:
    """Authorization headers for the employee account."""
    return auth_headers_for(employee_user)


@pytest.fixture
def other_employee_headers(other_employee: User) -> dict:
    return auth_headers_for(other_employee)

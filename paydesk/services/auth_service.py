"""
PayDesk - Authentication Service

Business logic for registration, login and password changes, plus the
employee code sequence assigned to new employee accounts.
"""

import re
import uuid
import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.models.base import utcnow
from paydesk.models.user import User, UserRole
from paydesk.utils.error_handling import (
    AuthenticationException,
    DuplicateEntryException,
    ErrorCode,
    ValidationException,
)
from paydesk.utils.security import get_password_hash, verify_password

logger = logging.getLogger(__name__)

EMPLOYEE_CODE_PREFIX = "EMP"
PASSWORD_MIN_LENGTH = 6
_STRONG_PASSWORD = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)")


def validate_new_password(password: str) -> None:
    """Password policy for password changes."""
    if len(password) < PASSWORD_MIN_LENGTH:
        raise ValidationException(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters long",
            field="new_password",
        )
    if not _STRONG_PASSWORD.match(password):
        raise ValidationException(
            "Password must contain at least one lowercase letter, one uppercase letter, and one number",
            field="new_password",
        )


class AuthService:
    """Service for authentication operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email address."""
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def next_employee_code(self) -> str:
        """
        Next code in the EMP0001 sequence.

        Starts from (number of coded accounts + 1) and skips forward past any
        code already taken.
        """
        count = (await self.db.execute(
            select(func.count(User.id)).where(User.employee_code.is_not(None))
        )).scalar() or 0
        candidate = count + 1
        while True:
            code = f"{EMPLOYEE_CODE_PREFIX}{candidate:04d}"
            taken = (await self.db.execute(
                select(User.id).where(User.employee_code == code)
            )).first()
            if taken is None:
                return code
            candidate += 1

    async def ensure_employee_code(self, user: User) -> None:
        """Assign an employee code once, to employees that have none."""
        if user.role == UserRole.EMPLOYEE and not user.employee_code:
            user.employee_code = await self.next_employee_code()

    async def authenticate_user(self, email: str, password: str) -> User:
        """
        Authenticate user with email and password.

        The bcrypt comparison runs whether or not the email exists.

        Raises:
            AuthenticationException: unknown email, wrong password, or deactivated
        """
        user = await self.get_user_by_email(email)
        password_ok = verify_password(password, user.hashed_password if user else None)

        if user is None or not password_ok:
            raise AuthenticationException(
                "Invalid email or password",
                code=ErrorCode.INVALID_CREDENTIALS,
            )

        if not user.is_active:
            raise AuthenticationException(
                "Account is deactivated. Please contact administrator.",
                code=ErrorCode.ACCOUNT_DISABLED,
            )

        user.last_login = utcnow()
        await self.db.commit()
        logger.info(f"User {user.id} logged in")
        return user

    async def register_user(
        self,
        name: str,
        email: str,
        password: str,
        role: UserRole = UserRole.EMPLOYEE,
        department: Optional[str] = None,
        position: Optional[str] = None,
        joining_date: Optional[date] = None,
        basic_salary: Decimal = Decimal("0"),
        salary_allowances: Decimal = Decimal("0"),
        bank_account_number: Optional[str] = None,
        bank_name: Optional[str] = None,
        bank_ifsc_code: Optional[str] = None,
    ) -> User:
        """
        Register a new account.

        Raises:
            DuplicateEntryException: email already registered
        """
        email = email.strip().lower()
        if len(password) < PASSWORD_MIN_LENGTH:
            raise ValidationException(
                f"Password must be at least {PASSWORD_MIN_LENGTH} characters long",
                field="password",
            )
        if await self.get_user_by_email(email):
            raise DuplicateEntryException(
                "User", "email", email, message="User already exists with this email"
            )

        user = User(
            name=name.strip(),
            email=email,
            hashed_password=get_password_hash(password),
            role=role,
            department=department,
            position=position,
            joining_date=joining_date,
            basic_salary=basic_salary,
            salary_allowances=salary_allowances,
            bank_account_number=bank_account_number,
            bank_name=bank_name,
            bank_ifsc_code=bank_ifsc_code,
            is_active=True,
        )
        await self.ensure_employee_code(user)
        self.db.add(user)

        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateEntryException(
                "User", "email", email, message="User already exists with this email"
            )

        logger.info(f"Registered {role.value} account {user.id} ({user.employee_code or 'no code'})")
        return user

    async def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        confirm_password: str,
    ) -> None:
        """Change a user's password after verifying the current one."""
        if not verify_password(current_password, user.hashed_password):
            raise ValidationException("Current password is incorrect", field="current_password")
        validate_new_password(new_password)
        if new_password != confirm_password:
            raise ValidationException("Password confirmation does not match", field="confirm_password")

        user.hashed_password = get_password_hash(new_password)
        await self.db.commit()
        logger.info(f"Password changed for user {user.id}")

    async def ensure_default_admin(self, email: str, password: str, name: str) -> User:
        """Create the configured admin account if it does not exist yet."""
        existing = await self.get_user_by_email(email)
        if existing:
            return existing
        return await self.register_user(
            name=name,
            email=email,
            password=password,
            role=UserRole.ADMIN,
            department="IT",
            position="System Administrator",
        )

"""
PayDesk - User Management Service

Admin-side account management: listing, profile updates, soft deletion,
role changes and headcount statistics.
"""

import uuid
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from paydesk.models.user import User, UserRole
from paydesk.services.auth_service import AuthService
from paydesk.utils.error_handling import (
    AuthorizationException,
    BusinessRuleException,
    DuplicateEntryException,
    UserNotFoundException,
)
from paydesk.utils.pagination import paginate

logger = logging.getLogger(__name__)

# Fields only an administrator may change
ADMIN_ONLY_FIELDS = {"basic_salary", "salary_allowances", "role", "is_active", "joining_date"}

PROFILE_FIELDS = {
    "name", "email", "department", "position", "joining_date",
    "basic_salary", "salary_allowances",
    "bank_account_number", "bank_name", "bank_ifsc_code",
}


class UserService:
    """Service for account management."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user(self, user_id: uuid.UUID) -> User:
        result = await self.db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        if user is None:
            raise UserNotFoundException(user_id)
        return user

    async def get_users(
        self,
        search: Optional[str] = None,
        role: Optional[UserRole] = None,
        department: Optional[str] = None,
        is_active: Optional[bool] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[User], int]:
        """List accounts with filters, newest first."""
        query = select(User)

        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                or_(
                    func.lower(User.name).like(pattern),
                    func.lower(User.email).like(pattern),
                    func.lower(User.employee_code).like(pattern),
                )
            )
        if role:
            query = query.where(User.role == role)
        if department:
            query = query.where(User.department == department)
        if is_active is not None:
            query = query.where(User.is_active == is_active)

        query = query.order_by(User.created_at.desc())
        return await paginate(self.db, query, page, limit)

    async def get_active_employees(self) -> List[User]:
        """Active employees, for salary slip and assignment pickers."""
        result = await self.db.execute(
            select(User)
            .where(User.role == UserRole.EMPLOYEE)
            .where(User.is_active.is_(True))
            .order_by(User.name)
        )
        return list(result.scalars().all())

    async def update_user(self, actor: User, user_id: uuid.UUID, changes: Dict[str, Any]) -> User:
        """
        Update a profile. Owners may edit their own non-financial fields;
        admins may edit everything.
        """
        if actor.role != UserRole.ADMIN and actor.id != user_id:
            raise AuthorizationException("You can only update your own profile")

        forbidden = set(changes) & ADMIN_ONLY_FIELDS
        if forbidden and actor.role != UserRole.ADMIN:
            raise AuthorizationException(
                f"Only administrators can change: {', '.join(sorted(forbidden))}",
                required_permission="admin",
            )

        user = await self.get_user(user_id)

        if "email" in changes and changes["email"]:
            email = changes["email"].strip().lower()
            if email != user.email:
                taken = (await self.db.execute(
                    select(User.id).where(User.email == email).where(User.id != user_id)
                )).first()
                if taken:
                    raise DuplicateEntryException("User", "email", email, message="Email is already taken")
            changes["email"] = email

        for field_name, value in changes.items():
            if field_name in PROFILE_FIELDS:
                setattr(user, field_name, value)

        await self.db.commit()
        logger.info(f"User {user_id} updated by {actor.id}: {sorted(changes)}")
        return user

    async def set_active(self, actor: User, user_id: uuid.UUID, active: bool) -> User:
        """Soft-delete (deactivate) or reactivate an account."""
        if not active and actor.id == user_id:
            raise BusinessRuleException("You cannot delete your own account", rule="NO_SELF_DEACTIVATION")

        user = await self.get_user(user_id)
        user.is_active = active
        await self.db.commit()

        logger.info(f"User {user_id} {'activated' if active else 'deactivated'} by {actor.id}")
        return user

    async def change_role(self, actor: User, user_id: uuid.UUID, role: UserRole) -> User:
        """Change an account's role. An admin cannot change their own role."""
        if actor.id == user_id:
            raise BusinessRuleException("You cannot change your own role", rule="NO_SELF_ROLE_CHANGE")

        user = await self.get_user(user_id)
        user.role = role
        await AuthService(self.db).ensure_employee_code(user)
        await self.db.commit()

        logger.info(f"User {user_id} role changed to {role.value} by {actor.id}")
        return user

    async def get_stats(self) -> Dict[str, Any]:
        """Headcount statistics."""
        rows = (await self.db.execute(
            select(User.role, User.is_active, func.count(User.id))
            .group_by(User.role, User.is_active)
        )).all()

        total = sum(count for _, _, count in rows)
        active = sum(count for _, is_active, count in rows if is_active)
        by_role = {role.value: 0 for role in UserRole}
        for role, _, count in rows:
            by_role[role.value] += count

        departments = (await self.db.execute(
            select(User.department, func.count(User.id))
            .where(User.role == UserRole.EMPLOYEE)
            .where(User.is_active.is_(True))
            .where(User.department.is_not(None))
            .group_by(User.department)
            .order_by(func.count(User.id).desc())
        )).all()

        recent = (await self.db.execute(
            select(func.count(User.id))
            .where(User.created_at >= datetime.utcnow() - timedelta(days=30))
        )).scalar() or 0

        return {
            "total_users": total,
            "active_users": active,
            "inactive_users": total - active,
            "admins": by_role[UserRole.ADMIN.value],
            "employees": by_role[UserRole.EMPLOYEE.value],
            "recent_registrations": recent,
            "departments": [{"department": d, "count": c} for d, c in departments],
        }
